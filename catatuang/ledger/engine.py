"""
Transaction Engine

DESIGN DECISION: The engine validates, the store mutates. Every check
that can fail (amount, transfer shape, ownership) runs before the store
is touched, and the store applies the row and its balance change as one
atomic unit. The engine never adjusts a balance itself.

DESIGN DECISION: Category resolution is an explicit, ordered lookup
instead of an implicit OR query:
1. canonical name, case-insensitive, oldest first
2. localized name, case-insensitive, oldest first
3. oldest category of the requested type
4. the fallback name ("Shopping" / "Other Income") among all of the
   owner's categories
A miss at every step is not an error; the transaction is saved
uncategorized.

DESIGN DECISION: "Exactly one primary account" is enforced by a partial
unique index in the store. The engine's job is to react to losing the
race (re-read), and to fail loudly if the index ever lets two through.
"""

from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional
from uuid import UUID

import structlog

from catatuang.audit import AuditLogger
from catatuang.clock import FixedOffsetClock
from catatuang.config import AppSettings, get_settings
from catatuang.models.ledger import (
    FALLBACK_CATEGORY_NAMES,
    Account,
    AccountType,
    Category,
    CategoryType,
    CreatedTransaction,
    DateRange,
    ManualTransactionInput,
    ParsedCandidate,
    Transaction,
    TransactionType,
    default_categories_for,
    quantize_money,
)
from catatuang.services.storage import (
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
)


logger = structlog.get_logger(__name__)

# Raw-input markers for rows that did not come from a chat message
WEB_DASHBOARD_INPUT = "WEB_DASHBOARD"
RECEIPT_IMAGE_INPUT = "receipt-image"


class LedgerError(Exception):
    """Base exception for rejected ledger operations."""
    pass


class InvalidAmountError(LedgerError):
    """Amount is not a number, is not positive, or is too large."""
    pass


class InvalidTransferError(LedgerError):
    """Transfer without a distinct destination, or destination on a non-transfer."""
    pass


class AccountNotFoundError(LedgerError):
    """Account does not exist, is inactive, or belongs to someone else."""
    pass


class CategoryNotFoundError(LedgerError):
    """Category does not exist for this owner."""
    pass


class PrimaryAccountConflictError(LedgerError):
    """The owner ended up with zero or several primary accounts."""
    pass


class TransactionEngine:
    """
    Creates and deletes ledger entries with consistent balances.

    Delete listeners are called after every successful delete,
    whichever path triggered it.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        clock: Optional[FixedOffsetClock] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._storage = storage
        self._settings = settings or get_settings().app
        self._clock = clock or FixedOffsetClock(self._settings.timezone_offset_hours)
        self._audit_logger = audit_logger
        self._delete_listeners: list[Callable[[Transaction], None]] = []

    @property
    def storage(self) -> LedgerStorageInterface:
        return self._storage

    def add_delete_listener(self, listener: Callable[[Transaction], None]) -> None:
        self._delete_listeners.append(listener)

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    async def create_transaction(
        self,
        owner_id: str,
        account_id: str,
        type: TransactionType,
        amount,
        category_id: Optional[str] = None,
        description: Optional[str] = None,
        raw_input: Optional[str] = None,
        effective_date: Optional[datetime] = None,
        to_account_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> CreatedTransaction:
        """
        Insert a transaction and apply its balance delta atomically.

        Raises:
            InvalidAmountError: Amount not a number, <= 0 or above the maximum
            InvalidTransferError: Transfer without a distinct destination
            AccountNotFoundError: An account is not the owner's active account
            CategoryNotFoundError: Category is not the owner's
        """
        amount = self._validate_amount(amount)
        self._validate_transfer(type, account_id, to_account_id)

        now = self._clock.now()
        transaction = Transaction(
            owner_id=owner_id,
            account_id=account_id,
            category_id=category_id,
            type=type,
            amount=amount,
            description=description,
            raw_input=raw_input,
            to_account_id=to_account_id,
            effective_date=effective_date or now,
            created_at=now,
        )

        try:
            created = await self._storage.insert_transaction(transaction)
        except NotFoundError as e:
            if e.entity_type == "category":
                raise CategoryNotFoundError(str(e)) from e
            raise AccountNotFoundError(str(e)) from e

        logger.info(
            "transaction_created",
            owner_id=owner_id,
            transaction_id=created.transaction.id,
            type=type.value,
            amount=str(amount),
        )
        if self._audit_logger:
            await self._audit_logger.log_transaction_created(created.transaction, correlation_id)
        return created

    def _validate_amount(self, amount) -> Decimal:
        try:
            value = quantize_money(amount)
        except ValueError as e:
            raise InvalidAmountError(str(e)) from e
        if value <= 0:
            raise InvalidAmountError(f"Amount must be greater than zero, got {value}")
        if value > Decimal(str(self._settings.max_transaction_amount)):
            raise InvalidAmountError(f"Amount {value} exceeds the maximum allowed")
        return value

    @staticmethod
    def _validate_transfer(
        type: TransactionType,
        account_id: str,
        to_account_id: Optional[str],
    ) -> None:
        if type == TransactionType.TRANSFER:
            if not to_account_id:
                raise InvalidTransferError("Transfer requires a destination account")
            if to_account_id == account_id:
                raise InvalidTransferError("Transfer destination must differ from source")
        elif to_account_id is not None:
            raise InvalidTransferError("Only transfers may have a destination account")

    # -------------------------------------------------------------------------
    # Delete
    # -------------------------------------------------------------------------

    async def delete_most_recent(
        self,
        owner_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[Transaction]:
        """Undo the owner's latest transaction. None when there is nothing to undo."""
        deleted = await self._storage.delete_most_recent_transaction(owner_id)
        if deleted is not None:
            await self._after_delete(deleted, "delete_most_recent", correlation_id)
        return deleted

    async def delete_by_id(
        self,
        owner_id: str,
        transaction_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[Transaction]:
        """Delete one transaction. None if it is missing or not the owner's."""
        deleted = await self._storage.delete_transaction(transaction_id, owner_id)
        if deleted is not None:
            await self._after_delete(deleted, "delete_by_id", correlation_id)
        return deleted

    async def _after_delete(
        self,
        deleted: Transaction,
        via: str,
        correlation_id: Optional[UUID],
    ) -> None:
        logger.info(
            "transaction_deleted",
            owner_id=deleted.owner_id,
            transaction_id=deleted.id,
            via=via,
        )
        for listener in self._delete_listeners:
            listener(deleted)
        if self._audit_logger:
            await self._audit_logger.log_transaction_deleted(deleted, via, correlation_id)

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    async def resolve_category(
        self,
        owner_id: str,
        category_type: CategoryType,
        name: Optional[str] = None,
    ) -> Optional[Category]:
        """
        Find the category a parsed name refers to.

        Returns:
            The matching category, or None if the owner has none usable
        """
        of_type = await self._storage.list_categories(owner_id, category_type)

        wanted = (name or "").strip().casefold()
        if wanted:
            for category in of_type:
                if category.name.casefold() == wanted:
                    return category
            for category in of_type:
                if category.localized_name and category.localized_name.casefold() == wanted:
                    return category

        if of_type:
            return of_type[0]

        fallback = FALLBACK_CATEGORY_NAMES[category_type]
        for category in await self._storage.list_categories(owner_id):
            if category.name == fallback:
                return category
        return None

    async def ensure_default_categories(self, owner_id: str) -> int:
        """
        Seed the system category set for an owner.

        Safe to call repeatedly; existing (type, name) pairs are skipped.

        Returns:
            Number of categories inserted
        """
        try:
            inserted = await self._storage.add_categories(default_categories_for(owner_id))
        except DuplicateError:
            # A concurrent seed inserted some rows first; the rest still need adding
            inserted = await self._storage.add_categories(default_categories_for(owner_id))

        if inserted and self._audit_logger:
            await self._audit_logger.log_categories_seeded(owner_id, inserted)
        return inserted

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    async def get_or_create_primary_account(self, owner_id: str) -> Account:
        """
        Return the owner's primary account, creating one if needed.

        Order: existing default+active account, then the oldest active
        account promoted to default, then a new zero-balance cash account.

        Raises:
            PrimaryAccountConflictError: If no primary account exists even
                                         after a concurrent writer won
        """
        primary = await self._storage.get_primary_account(owner_id)
        if primary is not None:
            return primary

        try:
            promoted = await self._storage.promote_oldest_active_account(owner_id)
            if promoted is not None:
                await self._log_primary_created(owner_id, promoted.id, promoted=True)
                return promoted

            account = await self._storage.create_account(Account(
                owner_id=owner_id,
                name=self._settings.primary_account_name,
                type=AccountType.CASH,
                is_default=True,
                icon="💰",
                created_at=self._clock.now(),
            ))
            await self._log_primary_created(owner_id, account.id, promoted=False)
            return account
        except DuplicateError:
            logger.info("primary_account_race_lost", owner_id=owner_id)

        primary = await self._storage.get_primary_account(owner_id)
        if primary is None:
            raise PrimaryAccountConflictError(
                f"Owner {owner_id} has no primary account after a conflicting write"
            )
        return primary

    async def _log_primary_created(self, owner_id: str, account_id: str, promoted: bool) -> None:
        logger.info("primary_account_created", owner_id=owner_id, account_id=account_id, promoted=promoted)
        if self._audit_logger:
            await self._audit_logger.log_primary_account_created(owner_id, account_id, promoted)

    # -------------------------------------------------------------------------
    # Recording helpers for the chat and dashboard flows
    # -------------------------------------------------------------------------

    async def record_candidate(
        self,
        owner_id: str,
        candidate: ParsedCandidate,
        raw_input: Optional[str],
        effective_date: Optional[datetime] = None,
        correlation_id: Optional[UUID] = None,
    ) -> CreatedTransaction:
        """Save an AI-parsed candidate to the primary account."""
        account = await self.get_or_create_primary_account(owner_id)
        category = await self.resolve_category(
            owner_id, candidate.type.category_type, candidate.category
        )
        return await self.create_transaction(
            owner_id=owner_id,
            account_id=account.id,
            type=candidate.type.transaction_type,
            amount=candidate.amount,
            category_id=category.id if category else None,
            description=candidate.description or None,
            raw_input=raw_input,
            effective_date=effective_date,
            correlation_id=correlation_id,
        )

    async def record_manual(
        self,
        owner_id: str,
        payload: ManualTransactionInput,
        effective_date: Optional[datetime] = None,
    ) -> CreatedTransaction:
        """
        Save a dashboard quick-add entry.

        `effective_date` is the already-parsed `payload.date`; see
        `catatuang.validation.parse_effective_date`.
        """
        account = await self.get_or_create_primary_account(owner_id)
        category = await self.resolve_category(owner_id, payload.type, payload.category)
        return await self.create_transaction(
            owner_id=owner_id,
            account_id=account.id,
            type=TransactionType(payload.type.value),
            amount=payload.amount,
            category_id=category.id if category else None,
            description=payload.description,
            raw_input=WEB_DASHBOARD_INPUT,
            effective_date=effective_date,
        )

    async def recent_transactions(
        self,
        owner_id: str,
        limit: Optional[int] = None,
        date_range: Optional[DateRange] = None,
    ) -> list[Transaction]:
        return await self._storage.list_transactions(
            owner_id,
            date_range=date_range,
            limit=limit or self._settings.recent_transactions_limit,
        )
