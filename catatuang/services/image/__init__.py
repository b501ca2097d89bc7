"""Receipt image services package."""

from catatuang.services.image.receipt_image import (
    ReceiptImage,
    UnreadableImageError,
    inspect_receipt_image,
)

__all__ = [
    "ReceiptImage",
    "UnreadableImageError",
    "inspect_receipt_image",
]
