"""Transaction engine package."""

from catatuang.ledger.engine import (
    RECEIPT_IMAGE_INPUT,
    WEB_DASHBOARD_INPUT,
    AccountNotFoundError,
    CategoryNotFoundError,
    InvalidAmountError,
    InvalidTransferError,
    LedgerError,
    PrimaryAccountConflictError,
    TransactionEngine,
)

__all__ = [
    "RECEIPT_IMAGE_INPUT",
    "WEB_DASHBOARD_INPUT",
    "AccountNotFoundError",
    "CategoryNotFoundError",
    "InvalidAmountError",
    "InvalidTransferError",
    "LedgerError",
    "PrimaryAccountConflictError",
    "TransactionEngine",
]
