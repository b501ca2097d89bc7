"""
Two-Stage Validation for dashboard quick-add input

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Type checking (INCOME / EXPENSE)
- Required field presence
- Amount and length bounds
- This catches malformed payloads

STAGE 2 - SEMANTIC VALIDATION:
- Date string parsing
- Configured maximum transaction amount
- This catches well-formed but unusable data

IMPORTANT: Validation NEVER silently fixes issues. It raises
`InvalidTransactionInputError` carrying every issue found, and nothing
is written to the ledger.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional, Union

from pydantic import ValidationError

from catatuang.config import AppSettings, get_settings
from catatuang.models.ledger import ManualTransactionInput, ValidationIssue, ensure_utc


class InvalidTransactionInputError(Exception):
    """Manual transaction input failed validation."""

    def __init__(self, issues: list[ValidationIssue]):
        self.issues = issues
        super().__init__("; ".join(issue.message for issue in issues) or "Invalid payload")


def parse_effective_date(value: Optional[str], offset_hours: int = 7) -> Optional[datetime]:
    """
    Parse an ISO 8601 date or datetime string.

    A value without an offset is read as civil time in the fixed zone,
    so "2025-02-01" means midnight in that zone.

    Raises:
        ValueError: If the string is not a valid date
    """
    if value is None or not value.strip():
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone(timedelta(hours=offset_hours)))
    return ensure_utc(parsed)


class ManualTransactionValidator:
    """
    Validates quick-add payloads through a two-stage pipeline.

    Stage 2 only runs when stage 1 passes.
    """

    def __init__(self, settings: Optional[AppSettings] = None):
        self._settings = settings or get_settings().app

    def _validate_schema(
        self,
        payload: Union[dict, ManualTransactionInput],
    ) -> tuple[Optional[ManualTransactionInput], list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (parsed_input_or_None, list_of_issues)
        """
        if isinstance(payload, ManualTransactionInput):
            return payload, []

        try:
            return ManualTransactionInput.model_validate(payload), []
        except ValidationError as e:
            issues = [
                ValidationIssue(
                    field=".".join(str(part) for part in error["loc"]) or "payload",
                    issue_type=error["type"],
                    message=error["msg"],
                )
                for error in e.errors()
            ]
            return None, issues

    def _validate_semantic(
        self,
        data: ManualTransactionInput,
    ) -> tuple[Optional[datetime], list[ValidationIssue]]:
        """
        Stage 2: Semantic validation.

        Returns: (effective_date_or_None, list_of_issues)
        """
        issues = []

        max_amount = Decimal(str(self._settings.max_transaction_amount))
        if data.amount > max_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="out_of_range",
                message=f"Amount exceeds the maximum of {max_amount}",
            ))

        effective_date = None
        try:
            effective_date = parse_effective_date(data.date, self._settings.timezone_offset_hours)
        except ValueError:
            issues.append(ValidationIssue(
                field="date",
                issue_type="invalid_format",
                message="Invalid date format",
            ))

        return effective_date, issues

    def validate(
        self,
        payload: Union[dict, ManualTransactionInput],
    ) -> tuple[ManualTransactionInput, Optional[datetime]]:
        """
        Run the full pipeline.

        Returns:
            (validated input, parsed effective date or None)

        Raises:
            InvalidTransactionInputError: With every issue found
        """
        data, issues = self._validate_schema(payload)
        if data is None:
            raise InvalidTransactionInputError(issues)

        effective_date, issues = self._validate_semantic(data)
        if issues:
            raise InvalidTransactionInputError(issues)

        return data, effective_date

    @staticmethod
    def get_user_friendly_summary(issues: list[ValidationIssue]) -> str:
        if not issues:
            return "✅ Data transaksi valid."
        lines = ["❌ Data transaksi tidak valid:"]
        for issue in issues:
            lines.append(f"   • {issue.field}: {issue.message}")
        return "\n".join(lines)
