"""
Storage Services Package

Provides abstract interfaces and the SQLAlchemy implementation
for the ledger, usage counters and the audit log.
"""

from catatuang.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
    UsageStorageInterface,
)
from catatuang.services.storage.sql_storage import (
    Database,
    SqlAuditStorage,
    SqlLedgerStorage,
    SqlUsageStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStorageInterface",
    "UsageStorageInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # SQL implementation
    "Database",
    "SqlAuditStorage",
    "SqlLedgerStorage",
    "SqlUsageStorage",
]
