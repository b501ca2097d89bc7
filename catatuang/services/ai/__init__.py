"""AI parsing services package."""

from catatuang.services.ai.interface import TransactionParser
from catatuang.services.ai.gemini_parser import (
    GeminiTransactionParser,
    parse_candidate_json,
)

__all__ = [
    "GeminiTransactionParser",
    "TransactionParser",
    "parse_candidate_json",
]
