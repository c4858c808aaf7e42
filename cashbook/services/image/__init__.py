"""Proof image services package."""

from cashbook.services.image.proof_image import (
    ProofImageError,
    ProofImageService,
    ProofImageTooLargeError,
    UnsupportedImageError,
    decode_data_uri,
)

__all__ = [
    "ProofImageError",
    "ProofImageService",
    "ProofImageTooLargeError",
    "UnsupportedImageError",
    "decode_data_uri",
]
