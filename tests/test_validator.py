"""Tests for dashboard quick-add validation."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from catatuang.config import AppSettings
from catatuang.models.ledger import CategoryType
from catatuang.validation import (
    InvalidTransactionInputError,
    ManualTransactionValidator,
    parse_effective_date,
)


def valid_payload(**overrides) -> dict:
    payload = {
        "type": "expense",
        "amount": "25000",
        "description": "makan siang",
        "category": "Makan & Minum",
    }
    payload.update(overrides)
    return payload


class TestParseEffectiveDate:
    """Tests for ISO date parsing in the fixed zone."""

    def test_date_only_is_civil_midnight(self):
        """Test that a bare date means midnight UTC+7."""
        assert parse_effective_date("2025-02-01") == datetime(2025, 1, 31, 17, tzinfo=timezone.utc)

    def test_zulu_suffix(self):
        """Test that a trailing Z is UTC."""
        assert parse_effective_date("2025-02-01T10:00:00Z") == datetime(2025, 2, 1, 10, tzinfo=timezone.utc)

    def test_explicit_offset(self):
        """Test that explicit offsets are respected."""
        assert parse_effective_date("2025-02-01T10:00:00+09:00") == datetime(2025, 2, 1, 1, tzinfo=timezone.utc)

    def test_blank_is_none(self):
        """Test that no date means 'now' downstream."""
        assert parse_effective_date(None) is None
        assert parse_effective_date("  ") is None

    def test_garbage_raises(self):
        """Test that invalid strings raise ValueError."""
        with pytest.raises(ValueError):
            parse_effective_date("kemarin")


class TestManualTransactionValidator:
    """Tests for the two-stage pipeline."""

    def test_valid_payload(self):
        """Test a complete payload."""
        validator = ManualTransactionValidator(AppSettings())
        data, effective_date = validator.validate(valid_payload(date="2025-01-10"))
        assert data.type == CategoryType.EXPENSE
        assert data.amount == Decimal("25000.00")
        assert effective_date == datetime(2025, 1, 9, 17, tzinfo=timezone.utc)

    def test_schema_issues_are_collected(self):
        """Test that every schema problem is reported together."""
        validator = ManualTransactionValidator(AppSettings())
        with pytest.raises(InvalidTransactionInputError) as exc_info:
            validator.validate({"type": "TRANSFER", "amount": "-1", "category": "x"})
        fields = {issue.field for issue in exc_info.value.issues}
        assert {"type", "amount", "description"} <= fields

    def test_huge_amount_is_schema_issue(self):
        """Test that an amount too large for cents is reported on the amount field."""
        validator = ManualTransactionValidator(AppSettings())
        with pytest.raises(InvalidTransactionInputError) as exc_info:
            validator.validate(valid_payload(amount="1e30"))
        assert [issue.field for issue in exc_info.value.issues] == ["amount"]

    def test_invalid_date_is_semantic_issue(self):
        """Test that a malformed date is rejected with a clear message."""
        validator = ManualTransactionValidator(AppSettings())
        with pytest.raises(InvalidTransactionInputError) as exc_info:
            validator.validate(valid_payload(date="31/01/2025"))
        assert [(i.field, i.message) for i in exc_info.value.issues] == [("date", "Invalid date format")]

    def test_configured_maximum_amount(self):
        """Test the deployment-configured amount ceiling."""
        validator = ManualTransactionValidator(AppSettings(max_transaction_amount=100000))
        with pytest.raises(InvalidTransactionInputError) as exc_info:
            validator.validate(valid_payload(amount="150000"))
        assert exc_info.value.issues[0].issue_type == "out_of_range"

    def test_user_friendly_summary(self):
        """Test the summary text."""
        validator = ManualTransactionValidator(AppSettings())
        with pytest.raises(InvalidTransactionInputError) as exc_info:
            validator.validate(valid_payload(description=""))
        summary = ManualTransactionValidator.get_user_friendly_summary(exc_info.value.issues)
        assert summary.startswith("❌")
        assert "description" in summary
        assert ManualTransactionValidator.get_user_friendly_summary([]).startswith("✅")
