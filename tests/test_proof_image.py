"""
Tests for proof image checking and encoding.
"""

from io import BytesIO

import pytest
from PIL import Image

from cashbook.config import AppSettings
from cashbook.services.image import (
    ProofImageError,
    ProofImageService,
    ProofImageTooLargeError,
    UnsupportedImageError,
    decode_data_uri,
)


def png_bytes(size=(8, 8)) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, "red").save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def service(app_settings) -> ProofImageService:
    return ProofImageService(app_settings)


class TestProofImageService:

    def test_encodes_a_valid_png(self, service):
        image = png_bytes()
        proof = service.encode(image, "struk.png", "image/png")

        assert proof.data_uri.startswith("data:image/png;base64,")
        assert proof.size_bytes == len(image)
        assert proof.filename == "struk.png"
        assert decode_data_uri(proof.data_uri) == image

    def test_default_cap_is_one_mebibyte(self, service):
        assert service.max_bytes == 1024 * 1024

    def test_rejects_non_image_type(self, service):
        with pytest.raises(UnsupportedImageError):
            service.encode(b"%PDF-1.4", "struk.pdf", "application/pdf")

    def test_rejects_bytes_that_are_not_an_image(self, service):
        with pytest.raises(UnsupportedImageError):
            service.encode(b"definitely not a png", "struk.png", "image/png")

    def test_rejects_oversized_image(self):
        service = ProofImageService(AppSettings(max_proof_image_kb=1))
        with pytest.raises(ProofImageTooLargeError):
            service.encode(b"\x00" * 2048, "besar.png", "image/png")

    def test_errors_share_a_base_class(self):
        assert issubclass(ProofImageTooLargeError, ProofImageError)
        assert issubclass(UnsupportedImageError, ProofImageError)


class TestDecodeDataUri:

    def test_url_references_are_not_inline(self):
        with pytest.raises(ProofImageError):
            decode_data_uri("https://example.com/struk.png")

    def test_corrupt_payload(self):
        with pytest.raises(ProofImageError):
            decode_data_uri("data:image/png;base64,@@@not-base64@@@")
