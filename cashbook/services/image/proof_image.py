"""
Proof Image Service

Every submission carries a photo or screenshot as proof. This service is
the file-picker side of that: it checks what was picked and turns it into
a portable inline representation (a data URI) that travels inside the
transaction record.

CHECKS (in order):
1. MIME type is an allowed image type
2. Size is within the cap (1 MiB by default)
3. The bytes really decode as an image

CRITICAL: A refused image never reaches the submission. The user picks
another file; nothing is stored.
"""

import base64
import binascii
from io import BytesIO
from typing import Optional

from PIL import Image, UnidentifiedImageError

from cashbook.config import AppSettings, get_settings
from cashbook.models.transaction import ProofImage


class ProofImageError(Exception):
    """Base exception for proof image errors."""
    pass


class ProofImageTooLargeError(ProofImageError):
    """Image exceeds the configured size cap."""
    pass


class UnsupportedImageError(ProofImageError):
    """Not an allowed image type, or not an image at all."""
    pass


class ProofImageService:
    """Validates and encodes proof images."""

    def __init__(self, settings: Optional[AppSettings] = None):
        self._settings = settings or get_settings().app

    @property
    def max_bytes(self) -> int:
        return self._settings.max_proof_image_bytes

    def _check_decodes(self, image_bytes: bytes) -> str:
        """Make sure Pillow can read the image; return its detected format."""
        try:
            with Image.open(BytesIO(image_bytes)) as img:
                img.verify()
                return (img.format or "").lower()
        except (UnidentifiedImageError, OSError, SyntaxError) as e:
            raise UnsupportedImageError(f"File is not a readable image: {e}")

    def encode(
        self,
        image_bytes: bytes,
        filename: str,
        mime_type: str,
    ) -> ProofImage:
        """
        Check an uploaded proof image and encode it as a data URI.

        Raises:
            UnsupportedImageError: Wrong type or unreadable
            ProofImageTooLargeError: Larger than the cap
        """
        mime_type = (mime_type or "").lower()
        if mime_type not in self._settings.supported_mime_types:
            allowed = ", ".join(sorted(self._settings.supported_formats_list))
            raise UnsupportedImageError(
                f"Unsupported image type: {mime_type or 'unknown'}. Allowed: {allowed}"
            )

        if len(image_bytes) > self.max_bytes:
            raise ProofImageTooLargeError(
                f"Image is too large ({len(image_bytes) / 1024:.0f} KB). "
                f"Maximum is {self.max_bytes // 1024} KB."
            )

        self._check_decodes(image_bytes)

        payload = base64.b64encode(image_bytes).decode("ascii")
        return ProofImage(
            filename=filename,
            mime_type=mime_type,
            size_bytes=len(image_bytes),
            data_uri=f"data:{mime_type};base64,{payload}",
        )


def decode_data_uri(data_uri: str) -> bytes:
    """
    Bytes of a `data:<mime>;base64,...` proof, for display.

    Raises:
        ProofImageError: Not a base64 data URI
    """
    if not data_uri.startswith("data:") or ";base64," not in data_uri:
        raise ProofImageError("Proof is not an inline base64 image")
    try:
        return base64.b64decode(data_uri.split(",", 1)[1], validate=True)
    except (binascii.Error, ValueError) as e:
        raise ProofImageError(f"Proof image payload is corrupt: {e}")
