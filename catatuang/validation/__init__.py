"""Manual transaction input validation."""

from catatuang.validation.validator import (
    InvalidTransactionInputError,
    ManualTransactionValidator,
    parse_effective_date,
)

__all__ = [
    "InvalidTransactionInputError",
    "ManualTransactionValidator",
    "parse_effective_date",
]
