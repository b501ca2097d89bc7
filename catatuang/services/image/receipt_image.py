"""
Receipt Image Inspection using Pillow

DESIGN DECISION: Chat transports often report a wrong or generic
content type (`application/octet-stream`). We sniff the real format
with Pillow before sending bytes to the vision model, and reject
unreadable or unusable photos early. That way a bad upload never
spends the user's daily receipt quota.
"""

from io import BytesIO
from typing import Optional

from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel

from catatuang.config import AppSettings, get_settings


# Pillow format name -> MIME type
FORMAT_MIME_TYPES = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "WEBP": "image/webp",
}

FORMAT_EXTENSIONS = {
    "JPEG": {"jpg", "jpeg"},
    "PNG": {"png"},
    "WEBP": {"webp"},
}


class UnreadableImageError(Exception):
    """The uploaded bytes are not a usable receipt photo."""
    pass


class ReceiptImage(BaseModel):
    """A receipt photo that passed inspection."""

    content: bytes
    mime_type: str
    width: int
    height: int


def inspect_receipt_image(
    image_bytes: bytes,
    settings: Optional[AppSettings] = None,
) -> ReceiptImage:
    """
    Verify a receipt photo and detect its real MIME type.

    Args:
        image_bytes: Raw upload
        settings: Upload limits

    Raises:
        UnreadableImageError: Empty, oversized, unsupported or tiny image
    """
    settings = settings or get_settings().app

    if not image_bytes:
        raise UnreadableImageError("Image is empty")
    if len(image_bytes) > settings.max_upload_size_bytes:
        raise UnreadableImageError(
            f"Image is larger than {settings.max_upload_size_mb} MB"
        )

    try:
        with Image.open(BytesIO(image_bytes)) as img:
            img.verify()
        # verify() leaves the image unusable; reopen for size
        with Image.open(BytesIO(image_bytes)) as img:
            image_format = img.format
            width, height = img.size
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise UnreadableImageError(f"Image could not be read: {e}")

    allowed = set(settings.supported_formats_list)
    if image_format not in FORMAT_MIME_TYPES or not (FORMAT_EXTENSIONS[image_format] & allowed):
        raise UnreadableImageError(f"Unsupported image format: {image_format}")

    if min(width, height) < settings.min_receipt_dimension_px:
        raise UnreadableImageError(
            f"Image resolution too low ({width}x{height}); "
            f"minimum {settings.min_receipt_dimension_px}px on the smallest side"
        )

    return ReceiptImage(
        content=image_bytes,
        mime_type=FORMAT_MIME_TYPES[image_format],
        width=width,
        height=height,
    )
