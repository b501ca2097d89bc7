"""
Period Aggregator

DESIGN DECISION: Aggregation is DETERMINISTIC and read-only.
Every figure the dashboard or the chat bot shows is computed here from
stored rows; nothing is estimated or cached.

DESIGN DECISION: Callers choose which timestamp a period filters on
(`DateField.EFFECTIVE` or `DateField.CREATED`). A backdated row belongs
to a different day depending on that choice, so it is never implicit.

All sums are Decimal. Transfers move money between the owner's own
accounts, so they count toward `transaction_count` but never toward
income or expense.
"""

from collections import defaultdict
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, Union

from catatuang.clock import FixedOffsetClock
from catatuang.models.ledger import (
    ZERO,
    BalanceSnapshot,
    CategoryTotal,
    DashboardSnapshot,
    DateField,
    DateRange,
    DayCashflow,
    PeriodSummary,
    Transaction,
    TransactionType,
    WeekCashflow,
)
from catatuang.queries.periods import resolve_period
from catatuang.services.storage import LedgerStorageInterface


# Label for rows without a category
UNCATEGORIZED_LABEL = "Other"

# The inclusive end of a week, as chart clients display it
RANGE_END_PRECISION = timedelta(milliseconds=1)


class PeriodAggregator:
    """
    Computes balances and period aggregates for one owner.

    GUARANTEES:
    - Ranges are half-open `[start, end)`
    - A week always has exactly 7 rows, zero-filled
    - Empty periods return zero totals, never errors
    """

    def __init__(self, storage: LedgerStorageInterface, clock: FixedOffsetClock):
        self._storage = storage
        self._clock = clock

    async def total_balance(self, owner_id: str) -> BalanceSnapshot:
        """Sum of balances of all active accounts."""
        accounts = await self._storage.list_accounts(owner_id, active_only=True)
        total = sum((account.balance for account in accounts), ZERO)
        return BalanceSnapshot(accounts=accounts, total=total)

    async def summary(
        self,
        owner_id: str,
        date_range: DateRange,
        date_field: DateField = DateField.EFFECTIVE,
    ) -> PeriodSummary:
        transactions = await self._storage.list_transactions(
            owner_id, date_range=date_range, date_field=date_field
        )
        return summarize(transactions)

    async def today_summary(
        self,
        owner_id: str,
        date_field: DateField = DateField.CREATED,
    ) -> PeriodSummary:
        return await self.summary(owner_id, self._clock.day_range(), date_field)

    async def month_summary(
        self,
        owner_id: str,
        year: Optional[int] = None,
        month: Optional[int] = None,
        date_field: DateField = DateField.EFFECTIVE,
    ) -> PeriodSummary:
        """Summary of a calendar month; defaults to the current month."""
        if year is None or month is None:
            today = self._clock.civil_date()
            year, month = today.year, today.month
        return await self.summary(owner_id, self._clock.month_range(year, month), date_field)

    async def category_breakdown(
        self,
        owner_id: str,
        date_range: DateRange,
        transaction_type: TransactionType = TransactionType.EXPENSE,
        date_field: DateField = DateField.EFFECTIVE,
    ) -> list[CategoryTotal]:
        """
        Totals per category label, largest first.

        Rows are grouped by localized name, then canonical name, then
        "Other" for uncategorized rows. Equal totals sort by label.
        """
        transactions = await self._storage.list_transactions(
            owner_id,
            date_range=date_range,
            date_field=date_field,
            transaction_type=transaction_type,
        )

        totals: dict[str, Decimal] = defaultdict(lambda: ZERO)
        for tx in transactions:
            totals[category_label(tx)] += tx.amount

        ordered = sorted(totals.items(), key=lambda item: (-item[1], item[0]))
        return [CategoryTotal(category=label, amount=amount) for label, amount in ordered]

    async def daily_buckets_for_week(
        self,
        owner_id: str,
        week_range: DateRange,
    ) -> list[DayCashflow]:
        """
        Income and expense per civil day, Monday through Sunday.

        Days without transactions are present with zero totals.
        """
        transactions = await self._storage.list_transactions(
            owner_id, date_range=week_range, date_field=DateField.EFFECTIVE
        )

        income: dict[str, Decimal] = defaultdict(lambda: ZERO)
        expense: dict[str, Decimal] = defaultdict(lambda: ZERO)
        for tx in transactions:
            key = self._clock.day_key(tx.effective_date)
            if tx.type == TransactionType.INCOME:
                income[key] += tx.amount
            elif tx.type == TransactionType.EXPENSE:
                expense[key] += tx.amount

        today_key = self._clock.day_key()
        monday = self._clock.civil_date(week_range.start)
        rows = []
        for offset in range(7):
            day = monday + timedelta(days=offset)
            key = day.isoformat()
            rows.append(DayCashflow(
                day_key=key,
                day_label=self._clock.weekday_label(day),
                day_date=f"{day.day:02d}",
                is_today=key == today_key,
                income=income[key],
                expense=expense[key],
            ))
        return rows

    async def week_cashflow(
        self,
        owner_id: str,
        reference: Optional[datetime] = None,
    ) -> WeekCashflow:
        """Daily rows of the Monday-to-Sunday week containing `reference` (default now)."""
        week_range = self._clock.week_range_containing(reference)
        return await self._week_cashflow(owner_id, week_range)

    async def _week_cashflow(self, owner_id: str, week_range: DateRange) -> WeekCashflow:
        rows = await self.daily_buckets_for_week(owner_id, week_range)
        return WeekCashflow(
            rows=rows,
            range_start=week_range.start,
            range_end=week_range.end - RANGE_END_PRECISION,
        )

    async def today_transactions(self, owner_id: str) -> list[Transaction]:
        """Rows written today, newest first."""
        return await self._storage.list_transactions(
            owner_id, date_range=self._clock.day_range(), date_field=DateField.CREATED
        )

    async def dashboard(
        self,
        owner_id: str,
        month_key: Optional[str] = None,
        week: Union[int, str, None] = None,
        recent_limit: int = 8,
    ) -> DashboardSnapshot:
        """Everything the dashboard shows for one month and one of its weeks."""
        period = resolve_period(self._clock, month_key, week)

        balance = await self.total_balance(owner_id)
        month_summary = await self.summary(owner_id, period.month_range, DateField.EFFECTIVE)
        recent = await self._storage.list_transactions(
            owner_id,
            date_range=period.month_range,
            date_field=DateField.EFFECTIVE,
            limit=recent_limit,
        )
        week_cashflow = await self._week_cashflow(owner_id, period.week_range)
        expense_categories = await self.category_breakdown(owner_id, period.month_range)

        return DashboardSnapshot(
            period=period,
            balance=balance,
            month_summary=month_summary,
            recent_transactions=recent,
            week_cashflow=week_cashflow,
            expense_categories=expense_categories,
        )


def summarize(transactions: list[Transaction]) -> PeriodSummary:
    income = ZERO
    expense = ZERO
    for tx in transactions:
        if tx.type == TransactionType.INCOME:
            income += tx.amount
        elif tx.type == TransactionType.EXPENSE:
            expense += tx.amount
    return PeriodSummary(
        total_income=income,
        total_expense=expense,
        transaction_count=len(transactions),
    )


def category_label(tx: Transaction) -> str:
    if tx.category is None:
        return UNCATEGORIZED_LABEL
    return tx.category.localized_name or tx.category.name or UNCATEGORIZED_LABEL
