"""
Tests for reading model replies.

Only the reply parsing is tested; no request ever reaches the API.
"""

from decimal import Decimal

from catatuang.models.ledger import CandidateType
from catatuang.services.ai import parse_candidate_json


class TestParseCandidateJson:
    """Tests for candidate extraction from model text."""

    def test_plain_json(self):
        """Test a clean JSON reply."""
        candidate = parse_candidate_json(
            '{"type": "expense", "amount": 20000, "category": "Food & Drinks", '
            '"description": "beli ayam", "confidence": 0.92}'
        )
        assert candidate.type == CandidateType.EXPENSE
        assert candidate.amount == Decimal("20000.00")
        assert candidate.description == "beli ayam"

    def test_fenced_json_with_prose(self):
        """Test that markdown fences and chatter are tolerated."""
        candidate = parse_candidate_json(
            '```json\nBerikut hasilnya:\n{"type": "INCOME", "amount": "5000000", '
            '"category": "Salary", "description": "gajian", "confidence": 0.8}\n```'
        )
        assert candidate.type == CandidateType.INCOME
        assert candidate.amount == Decimal("5000000.00")

    def test_invalid_candidates_are_none(self):
        """Test that unusable replies are failed parses, not patched up."""
        assert parse_candidate_json("") is None
        assert parse_candidate_json("maaf, saya tidak mengerti") is None
        assert parse_candidate_json('{"type": "expense", "amount": 0, "confidence": 0.9}') is None
        assert parse_candidate_json('{"type": "transfer", "amount": 10, "confidence": 0.9}') is None
        assert parse_candidate_json('{"type": "expense", "amount": 10}') is None
        assert parse_candidate_json('{"type": "expense", "amount": 10, "confidence": 0.9') is None

    def test_huge_amount_is_none(self):
        """Test that an amount too large for cents is a failed parse."""
        assert parse_candidate_json(
            '{"type": "expense", "amount": 1e30, "category": "Shopping", '
            '"description": "x", "confidence": 0.9}'
        ) is None
