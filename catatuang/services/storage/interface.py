"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap SQLite for PostgreSQL without touching the engine
2. Keep business logic decoupled from SQL
3. Test the engine against a throwaway database file

CRITICAL: Every mutating method here is ONE atomic unit. A transaction
row and the balance change it implies are written (or removed)
together or not at all. Callers never apply balance deltas themselves.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from catatuang.models.audit import AuditEvent
from catatuang.models.ledger import (
    Account,
    Category,
    CategoryType,
    CreatedTransaction,
    DateField,
    DateRange,
    Transaction,
    TransactionType,
)


class LedgerStorageInterface(ABC):
    """
    Abstract interface for accounts, categories and transactions.

    Any storage implementation must implement these methods.
    """

    # -------------------------------------------------------------------------
    # Transactions (mutating)
    # -------------------------------------------------------------------------

    @abstractmethod
    async def insert_transaction(self, transaction: Transaction) -> CreatedTransaction:
        """
        Insert a transaction and apply its balance delta atomically.

        Args:
            transaction: Fully validated row to insert

        Returns:
            The stored row and the source account's new balance

        Raises:
            NotFoundError: If an account is missing, inactive or
                           owned by someone else (nothing is written)
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete_transaction(
        self,
        transaction_id: str,
        owner_id: str,
    ) -> Optional[Transaction]:
        """
        Delete a transaction and reverse its balance delta atomically.

        Returns:
            The deleted row, or None if it does not exist for this owner
        """
        pass

    @abstractmethod
    async def delete_most_recent_transaction(
        self,
        owner_id: str,
    ) -> Optional[Transaction]:
        """
        Delete the owner's latest transaction by creation time.

        Ties on `created_at` are broken by insertion order (last
        inserted wins). Same atomicity as `delete_transaction`.

        Returns:
            The deleted row, or None if the owner has no transactions
        """
        pass

    # -------------------------------------------------------------------------
    # Transactions (reads)
    # -------------------------------------------------------------------------

    @abstractmethod
    async def find_transaction(
        self,
        transaction_id: str,
        owner_id: str,
    ) -> Optional[Transaction]:
        pass

    @abstractmethod
    async def find_most_recent_transaction(self, owner_id: str) -> Optional[Transaction]:
        pass

    @abstractmethod
    async def find_most_recent_transaction_by_raw_input(
        self,
        owner_id: str,
        raw_input: str,
    ) -> Optional[Transaction]:
        """Latest transaction whose stored raw input equals `raw_input` exactly."""
        pass

    @abstractmethod
    async def list_transactions(
        self,
        owner_id: str,
        date_range: Optional[DateRange] = None,
        date_field: DateField = DateField.EFFECTIVE,
        transaction_type: Optional[TransactionType] = None,
        limit: Optional[int] = None,
    ) -> list[Transaction]:
        """
        List transactions, newest first by the filtered date field.

        Args:
            owner_id: Ledger owner
            date_range: Half-open range applied to `date_field`
            date_field: Which timestamp the range filters on
            transaction_type: Optional type filter
            limit: Maximum number of results

        Returns:
            Rows with `category` populated when they have one
        """
        pass

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_account(self, account_id: str, owner_id: str) -> Optional[Account]:
        pass

    @abstractmethod
    async def list_accounts(self, owner_id: str, active_only: bool = True) -> list[Account]:
        """Accounts oldest first."""
        pass

    @abstractmethod
    async def get_primary_account(self, owner_id: str) -> Optional[Account]:
        """The owner's default and active account, if any."""
        pass

    @abstractmethod
    async def promote_oldest_active_account(self, owner_id: str) -> Optional[Account]:
        """
        Mark the oldest active account as default.

        Returns:
            The promoted account, or None if the owner has no active account

        Raises:
            DuplicateError: If another writer already set a default
        """
        pass

    @abstractmethod
    async def create_account(self, account: Account) -> Account:
        """
        Raises:
            DuplicateError: If `account.is_default` and the owner already
                            has a default active account
        """
        pass

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    @abstractmethod
    async def list_categories(
        self,
        owner_id: str,
        category_type: Optional[CategoryType] = None,
    ) -> list[Category]:
        """Categories oldest first."""
        pass

    @abstractmethod
    async def add_categories(self, categories: list[Category]) -> int:
        """
        Insert categories, skipping any (owner, type, name) that exists.

        Returns:
            Number of categories actually inserted
        """
        pass


class UsageStorageInterface(ABC):
    """
    Per-(owner, counter, day) usage counters backing the daily quotas.
    """

    @abstractmethod
    async def get_usage(self, owner_id: str, counter: str, day_key: str) -> int:
        """Current count, 0 if no row exists. Never increments."""
        pass

    @abstractmethod
    async def try_increment(
        self,
        owner_id: str,
        counter: str,
        day_key: str,
        limit: int,
    ) -> Optional[int]:
        """
        Increment the counter if it is below `limit`, atomically.

        Returns:
            The new count, or None if the limit was already reached
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Events of one flow in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Events of one entity in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Most recent events, newest first."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""

    def __init__(self, message: str, entity_type: Optional[str] = None):
        super().__init__(message)
        self.entity_type = entity_type


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
