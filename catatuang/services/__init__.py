"""Services package."""

from catatuang.services.ai import (
    GeminiTransactionParser,
    TransactionParser,
)
from catatuang.services.image import (
    ReceiptImage,
    UnreadableImageError,
    inspect_receipt_image,
)
from catatuang.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    Database,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    SqlAuditStorage,
    SqlLedgerStorage,
    SqlUsageStorage,
    StorageError,
    UsageStorageInterface,
)

__all__ = [
    # AI services
    "GeminiTransactionParser",
    "TransactionParser",
    # Image services
    "ReceiptImage",
    "UnreadableImageError",
    "inspect_receipt_image",
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "Database",
    "DuplicateError",
    "LedgerStorageInterface",
    "NotFoundError",
    "SqlAuditStorage",
    "SqlLedgerStorage",
    "SqlUsageStorage",
    "StorageError",
    "UsageStorageInterface",
]
