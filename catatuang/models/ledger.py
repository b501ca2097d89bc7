"""
Core Ledger Models for Catatuang

These models define the strict schemas for all ledger data flowing
through the system: accounts, categories, transactions, and the read
models produced by the period aggregator.

DESIGN DECISION: Money is always `Decimal` quantized to two places.
Floats are converted through `str()` at the boundary so that 0.1 stays
0.10 and summing many small amounts never drifts by a cent.

DESIGN DECISION: Amounts are stored positive. Direction is encoded by
`TransactionType`, and `Transaction.balance_effects()` is the single
place that turns a type into signed balance deltas.
"""

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def quantize_money(value) -> Decimal:
    """
    Convert a number-like value to a 2-place Decimal.

    Raises:
        ValueError: If the value is not a finite number
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a monetary amount: {value!r}")
    try:
        amount = Decimal(str(value).strip())
        if not amount.is_finite():
            raise ValueError(f"Not a monetary amount: {value!r}")
        # quantize fails when the result needs more digits than the context holds
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, TypeError):
        raise ValueError(f"Not a monetary amount: {value!r}")


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and normalize aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Lowercase hex ids, so `tx_<id>` tokens survive case folding."""
    return uuid4().hex


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """
    Ledger entry direction.

    INCOME credits the account, EXPENSE debits it,
    TRANSFER debits the source and credits the destination.
    """
    EXPENSE = "EXPENSE"
    INCOME = "INCOME"
    TRANSFER = "TRANSFER"


class CategoryType(str, Enum):
    """Categories only classify income and expenses, never transfers."""
    EXPENSE = "EXPENSE"
    INCOME = "INCOME"


class AccountType(str, Enum):
    """Balance bucket kinds."""
    CASH = "CASH"
    BANK = "BANK"
    E_WALLET = "E_WALLET"
    CREDIT_CARD = "CREDIT_CARD"
    INVESTMENT = "INVESTMENT"
    OTHER = "OTHER"


class DateField(str, Enum):
    """
    Which timestamp a period query filters on.

    EFFECTIVE is the user-meaningful (possibly backdated) date,
    CREATED is the immutable system time the row was written.
    """
    EFFECTIVE = "effective_date"
    CREATED = "created_at"


class CandidateType(str, Enum):
    """Direction of an AI-parsed candidate."""
    EXPENSE = "expense"
    INCOME = "income"

    @property
    def transaction_type(self) -> TransactionType:
        return TransactionType.INCOME if self is CandidateType.INCOME else TransactionType.EXPENSE

    @property
    def category_type(self) -> CategoryType:
        return CategoryType.INCOME if self is CandidateType.INCOME else CategoryType.EXPENSE


# =============================================================================
# LEDGER ENTITIES
# =============================================================================

class Account(BaseModel):
    """
    One balance bucket owned by a user.

    CRITICAL: At most one active account per owner is the default
    ("primary account"). The store enforces this with a partial
    unique index; accounts are deactivated, never deleted.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    owner_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=80)
    type: AccountType = AccountType.CASH
    balance: Decimal = Field(default=ZERO, description="Current balance")
    is_default: bool = False
    is_active: bool = True
    icon: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator('balance', mode='before')
    @classmethod
    def coerce_balance(cls, v) -> Decimal:
        return quantize_money(v)

    @field_validator('created_at')
    @classmethod
    def normalize_created_at(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class Category(BaseModel):
    """
    A (user, type, name) classification tag.

    Carries two labels: the canonical `name` and a `localized_name`
    shown to Indonesian-speaking users. Lookups match either one.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    owner_id: str = Field(..., min_length=1)
    type: CategoryType
    name: str = Field(..., min_length=1, max_length=80)
    localized_name: Optional[str] = Field(default=None, max_length=80)
    icon: Optional[str] = None
    is_system: bool = False
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator('created_at')
    @classmethod
    def normalize_created_at(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @property
    def display_label(self) -> str:
        return self.localized_name or self.name


class Transaction(BaseModel):
    """
    A ledger entry.

    `amount` is always positive. `effective_date` defaults to
    `created_at`; `created_at` orders "most recent" deletes.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    owner_id: str = Field(..., min_length=1)
    account_id: str = Field(..., min_length=1)
    category_id: Optional[str] = None
    type: TransactionType
    amount: Decimal = Field(..., gt=0)
    description: Optional[str] = Field(default=None, max_length=500)
    raw_input: Optional[str] = None
    to_account_id: Optional[str] = None
    effective_date: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)

    # Populated by reads that join the category row
    category: Optional[Category] = None

    @field_validator('amount', mode='before')
    @classmethod
    def coerce_amount(cls, v) -> Decimal:
        return quantize_money(v)

    @field_validator('created_at')
    @classmethod
    def normalize_created_at(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @field_validator('effective_date')
    @classmethod
    def normalize_effective_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v) if v is not None else None

    @model_validator(mode='after')
    def validate_transfer(self) -> 'Transaction':
        """Only transfers have a destination, and it must differ from the source."""
        if self.type == TransactionType.TRANSFER:
            if not self.to_account_id:
                raise ValueError("Transfer requires a destination account")
            if self.to_account_id == self.account_id:
                raise ValueError("Transfer destination must differ from source")
        elif self.to_account_id is not None:
            raise ValueError("Only transfers may have a destination account")

        if self.effective_date is None:
            self.effective_date = self.created_at
        return self

    @property
    def reference_token(self) -> str:
        """Token embedded in chat replies so a later reply can find this row."""
        return f"tx_{self.id}"

    def balance_effects(self) -> list[tuple[str, Decimal]]:
        """
        Signed per-account deltas this transaction applies.

        Reversing a transaction applies the negation of each delta.
        """
        if self.type == TransactionType.INCOME:
            return [(self.account_id, self.amount)]
        if self.type == TransactionType.EXPENSE:
            return [(self.account_id, -self.amount)]
        return [(self.account_id, -self.amount), (self.to_account_id, self.amount)]

    def signed_amount(self) -> Decimal:
        """Net effect on the owner's total balance."""
        return sum((delta for _, delta in self.balance_effects()), ZERO)


# =============================================================================
# ENGINE RESULTS
# =============================================================================

class CreatedTransaction(BaseModel):
    """A freshly created row plus the source account's new balance."""

    transaction: Transaction
    updated_balance: Decimal


class BalanceSnapshot(BaseModel):
    """Balances of all active accounts of an owner."""

    accounts: list[Account] = Field(default_factory=list)
    total: Decimal = ZERO


# =============================================================================
# PERIOD / AGGREGATE MODELS
# =============================================================================

class DateRange(BaseModel):
    """
    Half-open instant range `[start, end)`.

    Both ends are UTC instants even when they were derived from
    civil midnights in the fixed offset.
    """

    start: datetime
    end: datetime

    @field_validator('start', 'end')
    @classmethod
    def normalize(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @model_validator(mode='after')
    def validate_order(self) -> 'DateRange':
        if self.end <= self.start:
            raise ValueError("Range end must be after range start")
        return self

    def contains(self, instant: datetime) -> bool:
        instant = ensure_utc(instant)
        return self.start <= instant < self.end


class PeriodSummary(BaseModel):
    """Income/expense totals over a range. Transfers only count toward `transaction_count`."""

    total_income: Decimal = ZERO
    total_expense: Decimal = ZERO
    transaction_count: int = Field(default=0, ge=0)

    @property
    def net(self) -> Decimal:
        return self.total_income - self.total_expense


class CategoryTotal(BaseModel):
    category: str
    amount: Decimal


class DayCashflow(BaseModel):
    """One row of the weekly cashflow chart."""

    day_key: str = Field(..., pattern=r"^\d{4}-\d{2}-\d{2}$")
    day_label: str
    day_date: str = Field(..., pattern=r"^\d{2}$")
    is_today: bool = False
    income: Decimal = ZERO
    expense: Decimal = ZERO


class WeekCashflow(BaseModel):
    """
    Seven zero-filled daily rows, Monday through Sunday.

    `range_end` is the last instant inside the week (end - 1 ms),
    which is what chart clients display.
    """

    rows: list[DayCashflow]
    range_start: datetime
    range_end: datetime

    @field_validator('rows')
    @classmethod
    def validate_rows(cls, v: list[DayCashflow]) -> list[DayCashflow]:
        if len(v) != 7:
            raise ValueError(f"A week has 7 rows, got {len(v)}")
        return v


class DashboardPeriod(BaseModel):
    """Resolved month/week selection for the dashboard."""

    month_key: str = Field(..., pattern=r"^\d{4}-(0[1-9]|1[0-2])$")
    year: int
    month: int = Field(..., ge=1, le=12)
    week: int = Field(..., ge=1)
    weeks_in_month: int = Field(..., ge=4, le=6)
    is_current_month: bool
    month_range: DateRange
    week_range: DateRange


class DashboardSnapshot(BaseModel):
    """Everything the dashboard page renders for one period."""

    period: DashboardPeriod
    balance: BalanceSnapshot
    month_summary: PeriodSummary
    recent_transactions: list[Transaction] = Field(default_factory=list)
    week_cashflow: WeekCashflow
    expense_categories: list[CategoryTotal] = Field(default_factory=list)


class QuotaResult(BaseModel):
    """Outcome of a quota check or consume."""

    ok: bool
    used: int = Field(..., ge=0)
    remaining: int = Field(..., ge=0)
    limit: int = Field(..., ge=0)
    day_key: str


# =============================================================================
# INPUT MODELS
# =============================================================================

class ParsedCandidate(BaseModel):
    """
    A transaction guess produced by the AI parser.

    CRITICAL: This is PROPOSED data. For receipts it is buffered in the
    correction workflow until the user confirms it.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    type: CandidateType
    amount: Decimal = Field(..., gt=0)
    category: str = Field(default="", max_length=80)
    description: str = Field(default="", max_length=500)
    confidence: float = Field(..., ge=0.0, le=1.0)

    @field_validator('type', mode='before')
    @classmethod
    def normalize_type(cls, v):
        return v.lower() if isinstance(v, str) else v

    @field_validator('amount', mode='before')
    @classmethod
    def coerce_amount(cls, v) -> Decimal:
        return quantize_money(v)

    @property
    def is_low_confidence(self) -> bool:
        return self.confidence < 0.7


class ManualTransactionInput(BaseModel):
    """Quick-add payload submitted from the dashboard."""
    model_config = ConfigDict(str_strip_whitespace=True)

    type: CategoryType
    amount: Decimal = Field(..., gt=0, le=Decimal("1000000000000"))
    description: str = Field(..., min_length=1, max_length=180)
    category: str = Field(..., min_length=1, max_length=80)
    date: Optional[str] = None

    @field_validator('type', mode='before')
    @classmethod
    def normalize_type(cls, v):
        return v.upper() if isinstance(v, str) else v

    @field_validator('amount', mode='before')
    @classmethod
    def coerce_amount(cls, v) -> Decimal:
        return quantize_money(v)


class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_format', 'out_of_range')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )


# =============================================================================
# DEFAULT CATEGORY SET
# =============================================================================

# (type, canonical name, localized name, icon)
DEFAULT_CATEGORIES: list[tuple[CategoryType, str, str, str]] = [
    (CategoryType.EXPENSE, "Food & Drinks", "Makan & Minum", "🍔"),
    (CategoryType.EXPENSE, "Transportation", "Transportasi", "🚗"),
    (CategoryType.EXPENSE, "Housing", "Tempat Tinggal", "🏠"),
    (CategoryType.EXPENSE, "Shopping", "Belanja", "🛒"),
    (CategoryType.EXPENSE, "Bills", "Tagihan", "🧾"),
    (CategoryType.EXPENSE, "Installments", "Cicilan", "💳"),
    (CategoryType.EXPENSE, "Health", "Kesehatan", "💊"),
    (CategoryType.EXPENSE, "Education", "Pendidikan", "📚"),
    (CategoryType.EXPENSE, "Entertainment", "Hiburan", "🎬"),
    (CategoryType.EXPENSE, "Lifestyle", "Gaya Hidup", "✨"),
    (CategoryType.EXPENSE, "Fashion", "Fashion", "👕"),
    (CategoryType.EXPENSE, "Personal Care", "Perawatan Diri", "🧴"),
    (CategoryType.EXPENSE, "Social", "Sosial", "🤝"),
    (CategoryType.EXPENSE, "Lost Money", "Uang Hilang", "❓"),
    (CategoryType.EXPENSE, "Donation", "Donasi", "🙏"),
    (CategoryType.EXPENSE, "Family", "Keluarga", "👨‍👩‍👧"),
    (CategoryType.EXPENSE, "Children", "Anak", "🧸"),
    (CategoryType.EXPENSE, "Work Needs", "Keperluan Kerja", "💼"),
    (CategoryType.EXPENSE, "Business", "Bisnis", "🏪"),
    (CategoryType.EXPENSE, "Investment", "Investasi", "📈"),
    (CategoryType.EXPENSE, "Savings", "Tabungan", "🐷"),
    (CategoryType.EXPENSE, "Insurance", "Asuransi", "🛡️"),
    (CategoryType.EXPENSE, "Tax", "Pajak", "🏛️"),
    (CategoryType.EXPENSE, "Gadget & Electronics", "Gadget & Elektronik", "📱"),
    (CategoryType.EXPENSE, "Subscription", "Langganan", "🔁"),
    (CategoryType.EXPENSE, "Travel", "Liburan", "✈️"),
    (CategoryType.EXPENSE, "Hobbies", "Hobi", "🎨"),
    (CategoryType.EXPENSE, "Sports", "Olahraga", "⚽"),
    (CategoryType.INCOME, "Salary", "Gaji", "💰"),
    (CategoryType.INCOME, "Bonus", "Bonus", "🎁"),
    (CategoryType.INCOME, "Investment Return", "Hasil Investasi", "📊"),
    (CategoryType.INCOME, "Gift", "Hadiah", "🎀"),
    (CategoryType.INCOME, "Other Income", "Pendapatan Lain", "💵"),
]

# Last-resort category names when nothing else resolves
FALLBACK_CATEGORY_NAMES: dict[CategoryType, str] = {
    CategoryType.EXPENSE: "Shopping",
    CategoryType.INCOME: "Other Income",
}


def default_categories_for(owner_id: str) -> list[Category]:
    """Build the system category set for one owner."""
    return [
        Category(
            owner_id=owner_id,
            type=category_type,
            name=name,
            localized_name=localized_name,
            icon=icon,
            is_system=True,
        )
        for category_type, name, localized_name, icon in DEFAULT_CATEGORIES
    ]
