"""
Data Models Package

This package contains all Pydantic models used in Catatuang.
All data flowing through the system must conform to these schemas.
"""

from catatuang.models.ledger import (
    DEFAULT_CATEGORIES,
    FALLBACK_CATEGORY_NAMES,
    Account,
    AccountType,
    BalanceSnapshot,
    CandidateType,
    Category,
    CategoryTotal,
    CategoryType,
    CreatedTransaction,
    DashboardPeriod,
    DashboardSnapshot,
    DateField,
    DateRange,
    DayCashflow,
    ManualTransactionInput,
    ParsedCandidate,
    PeriodSummary,
    QuotaResult,
    Transaction,
    TransactionType,
    ValidationIssue,
    WeekCashflow,
    default_categories_for,
    quantize_money,
)
from catatuang.models.workflow import (
    BotReply,
    PendingCandidate,
    ReceiptOutcome,
    ReceiptOutcomeKind,
    ReceiptState,
    ReplyDeleteResult,
    ReplyDeleteStatus,
)
from catatuang.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "DEFAULT_CATEGORIES",
    "FALLBACK_CATEGORY_NAMES",
    "Account",
    "AccountType",
    "BalanceSnapshot",
    "CandidateType",
    "Category",
    "CategoryTotal",
    "CategoryType",
    "CreatedTransaction",
    "DashboardPeriod",
    "DashboardSnapshot",
    "DateField",
    "DateRange",
    "DayCashflow",
    "ManualTransactionInput",
    "ParsedCandidate",
    "PeriodSummary",
    "QuotaResult",
    "Transaction",
    "TransactionType",
    "ValidationIssue",
    "WeekCashflow",
    "default_categories_for",
    "quantize_money",
    # Workflow models
    "BotReply",
    "PendingCandidate",
    "ReceiptOutcome",
    "ReceiptOutcomeKind",
    "ReceiptState",
    "ReplyDeleteResult",
    "ReplyDeleteStatus",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
