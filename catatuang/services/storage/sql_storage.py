"""
SQLAlchemy Storage Implementation

DESIGN DECISION: The ledger lives in a relational database because a
transaction row and its balance change must commit together. Balance
updates are relative (`balance = balance + :delta`) and run in the same
database transaction as the row insert or delete, so two concurrent
deltas on one account can never lose an update.

The SQLAlchemy session API is synchronous. Async callers go through
`Database.run`, which executes the unit of work on the default executor.

TRADEOFFS:
- SQLite serializes writers. Every SQLite transaction starts with
  BEGIN IMMEDIATE so concurrent writers queue on the busy timeout
  instead of failing on lock upgrade.
- PostgreSQL works unchanged (the partial unique index has both
  dialect predicates).
"""

import asyncio
import functools
import json
from contextlib import contextmanager
from typing import Callable, Iterator, Optional, TypeVar
from uuid import UUID

from sqlalchemy import create_engine, delete, event, select, text, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from tenacity import retry, stop_after_attempt, wait_exponential

import structlog

from catatuang.config import DatabaseSettings, get_settings
from catatuang.models.audit import AuditEvent, AuditEventType, AuditSeverity
from catatuang.models.ledger import (
    Account,
    AccountType,
    Category,
    CategoryType,
    CreatedTransaction,
    DateField,
    DateRange,
    Transaction,
    TransactionType,
    utc_now,
)
from catatuang.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
    UsageStorageInterface,
)
from catatuang.services.storage.tables import (
    AccountRow,
    AuditEventRow,
    Base,
    CategoryRow,
    TransactionRow,
    UsageCounterRow,
    from_cents,
    to_cents,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Attempts for delete-most-recent when a concurrent delete wins the race
MAX_DELETE_ATTEMPTS = 3


class Database:
    """
    Engine and session factory wrapper.

    Handles connection bootstrap with retry logic and provides the
    unit-of-work context used by every storage class.
    """

    def __init__(self, settings: Optional[DatabaseSettings] = None):
        self._settings = settings or get_settings().database
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> Engine:
        """
        Create the engine and verify the database answers.
        """
        if self._engine is None:
            try:
                engine = self._create_engine()
                with engine.connect() as conn:
                    conn.execute(text("SELECT 1"))
            except SQLAlchemyError as e:
                raise ConnectionError(f"Failed to connect to database: {e}")

            self._engine = engine
            self._session_factory = sessionmaker(
                bind=engine,
                autoflush=False,
                expire_on_commit=False,
            )
            logger.info("database_connected", dialect=engine.dialect.name)

        return self._engine

    def _create_engine(self) -> Engine:
        if not self._settings.is_sqlite:
            return create_engine(
                self._settings.url,
                echo=self._settings.echo,
                pool_pre_ping=True,
                connect_args={"connect_timeout": self._settings.connect_timeout_seconds},
            )

        engine = create_engine(
            self._settings.url,
            echo=self._settings.echo,
            connect_args={
                "check_same_thread": False,
                "timeout": self._settings.connect_timeout_seconds,
            },
        )

        # Let SQLAlchemy own transaction boundaries, then take the
        # write lock up front so writers wait instead of deadlocking.
        @event.listens_for(engine, "connect")
        def _disable_pysqlite_transactions(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        return engine

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def create_schema(self) -> None:
        """Create all tables and indexes that do not exist yet."""
        Base.metadata.create_all(self.connect())

    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._session_factory = None

    @contextmanager
    def session(self) -> Iterator[Session]:
        """
        One unit of work: commit on success, roll back on any error.

        Integrity violations surface as DuplicateError, an unavailable or
        locked database as ConnectionError, and any other driver failure
        as StorageError.
        """
        self.connect()
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except IntegrityError as e:
            session.rollback()
            raise DuplicateError(str(e.orig)) from e
        except OperationalError as e:
            session.rollback()
            raise ConnectionError(str(e.orig)) from e
        except SQLAlchemyError as e:
            session.rollback()
            raise StorageError(str(e)) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    async def run(self, fn: Callable[..., T], *args) -> T:
        """Run a blocking unit of work without blocking the event loop."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(fn, *args))


# =============================================================================
# Row <-> model conversion
# =============================================================================

def _to_account(row: AccountRow) -> Account:
    return Account(
        id=row.id,
        owner_id=row.owner_id,
        name=row.name,
        type=AccountType(row.type),
        balance=from_cents(row.balance_cents),
        is_default=row.is_default,
        is_active=row.is_active,
        icon=row.icon,
        created_at=row.created_at,
    )


def _to_category(row: CategoryRow) -> Category:
    return Category(
        id=row.id,
        owner_id=row.owner_id,
        type=CategoryType(row.type),
        name=row.name,
        localized_name=row.localized_name,
        icon=row.icon,
        is_system=row.is_system,
        created_at=row.created_at,
    )


def _to_transaction(row: TransactionRow) -> Transaction:
    return Transaction(
        id=row.id,
        owner_id=row.owner_id,
        account_id=row.account_id,
        category_id=row.category_id,
        type=TransactionType(row.type),
        amount=from_cents(row.amount_cents),
        description=row.description,
        raw_input=row.raw_input,
        to_account_id=row.to_account_id,
        effective_date=row.effective_date,
        created_at=row.created_at,
        category=_to_category(row.category) if row.category is not None else None,
    )


def _shift_balance(session: Session, owner_id: str, account_id: str, delta_cents: int,
                   require_active: bool) -> int:
    """Relative balance update scoped by owner. Returns matched row count."""
    stmt = (
        update(AccountRow)
        .where(AccountRow.id == account_id, AccountRow.owner_id == owner_id)
        .values(balance_cents=AccountRow.balance_cents + delta_cents)
        .execution_options(synchronize_session=False)
    )
    if require_active:
        stmt = stmt.where(AccountRow.is_active.is_(True))
    return session.execute(stmt).rowcount


# =============================================================================
# Ledger storage
# =============================================================================

class SqlLedgerStorage(LedgerStorageInterface):
    """
    SQL implementation of ledger storage.
    """

    def __init__(self, database: Database):
        self._db = database

    # -------------------------------------------------------------------------
    # Transactions (mutating)
    # -------------------------------------------------------------------------

    async def insert_transaction(self, transaction: Transaction) -> CreatedTransaction:
        return await self._db.run(self._insert_transaction, transaction)

    def _insert_transaction(self, tx: Transaction) -> CreatedTransaction:
        with self._db.session() as session:
            if tx.category_id is not None:
                owned = session.execute(
                    select(CategoryRow.seq).where(
                        CategoryRow.id == tx.category_id,
                        CategoryRow.owner_id == tx.owner_id,
                    )
                ).scalar_one_or_none()
                if owned is None:
                    raise NotFoundError(f"Category {tx.category_id} not found", entity_type="category")

            for account_id, delta in tx.balance_effects():
                matched = _shift_balance(
                    session, tx.owner_id, account_id, to_cents(delta), require_active=True
                )
                if matched != 1:
                    raise NotFoundError(f"Account {account_id} not found", entity_type="account")

            session.add(TransactionRow(
                id=tx.id,
                owner_id=tx.owner_id,
                account_id=tx.account_id,
                category_id=tx.category_id,
                type=tx.type.value,
                amount_cents=to_cents(tx.amount),
                description=tx.description,
                raw_input=tx.raw_input,
                to_account_id=tx.to_account_id,
                effective_date=tx.effective_date,
                created_at=tx.created_at,
            ))
            session.flush()

            balance_cents = session.execute(
                select(AccountRow.balance_cents).where(AccountRow.id == tx.account_id)
            ).scalar_one()
            category = None
            if tx.category_id is not None:
                category = _to_category(session.execute(
                    select(CategoryRow).where(CategoryRow.id == tx.category_id)
                ).scalar_one())

        return CreatedTransaction(
            transaction=tx.model_copy(update={"category": category}),
            updated_balance=from_cents(balance_cents),
        )

    async def delete_transaction(
        self,
        transaction_id: str,
        owner_id: str,
    ) -> Optional[Transaction]:
        return await self._db.run(self._delete_transaction, transaction_id, owner_id)

    def _delete_transaction(self, transaction_id: str, owner_id: str) -> Optional[Transaction]:
        with self._db.session() as session:
            row = session.execute(
                select(TransactionRow).where(
                    TransactionRow.id == transaction_id,
                    TransactionRow.owner_id == owner_id,
                )
            ).unique().scalar_one_or_none()
            if row is None:
                return None
            return self._remove(session, row)

    async def delete_most_recent_transaction(self, owner_id: str) -> Optional[Transaction]:
        return await self._db.run(self._delete_most_recent, owner_id)

    def _delete_most_recent(self, owner_id: str) -> Optional[Transaction]:
        with self._db.session() as session:
            for _ in range(MAX_DELETE_ATTEMPTS):
                row = session.execute(
                    select(TransactionRow)
                    .where(TransactionRow.owner_id == owner_id)
                    .order_by(TransactionRow.created_at.desc(), TransactionRow.seq.desc())
                    .limit(1)
                ).unique().scalar_one_or_none()
                if row is None:
                    return None
                deleted = self._remove(session, row)
                if deleted is not None:
                    return deleted
                # A concurrent delete took this row; pick the next most recent
                session.expunge(row)
            return None

    @staticmethod
    def _remove(session: Session, row: TransactionRow) -> Optional[Transaction]:
        """Delete a loaded row and reverse its balance effect. None if already gone."""
        tx = _to_transaction(row)
        result = session.execute(
            delete(TransactionRow)
            .where(TransactionRow.seq == row.seq)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None
        for account_id, delta in tx.balance_effects():
            # Reversal applies even if the account was deactivated since
            _shift_balance(session, tx.owner_id, account_id, -to_cents(delta), require_active=False)
        return tx

    # -------------------------------------------------------------------------
    # Transactions (reads)
    # -------------------------------------------------------------------------

    async def find_transaction(self, transaction_id: str, owner_id: str) -> Optional[Transaction]:
        return await self._db.run(self._find_one, [
            TransactionRow.id == transaction_id,
            TransactionRow.owner_id == owner_id,
        ])

    async def find_most_recent_transaction(self, owner_id: str) -> Optional[Transaction]:
        return await self._db.run(self._find_one, [TransactionRow.owner_id == owner_id])

    async def find_most_recent_transaction_by_raw_input(
        self,
        owner_id: str,
        raw_input: str,
    ) -> Optional[Transaction]:
        return await self._db.run(self._find_one, [
            TransactionRow.owner_id == owner_id,
            TransactionRow.raw_input == raw_input,
        ])

    def _find_one(self, conditions: list) -> Optional[Transaction]:
        with self._db.session() as session:
            row = session.execute(
                select(TransactionRow)
                .where(*conditions)
                .order_by(TransactionRow.created_at.desc(), TransactionRow.seq.desc())
                .limit(1)
            ).unique().scalar_one_or_none()
            return _to_transaction(row) if row is not None else None

    async def list_transactions(
        self,
        owner_id: str,
        date_range: Optional[DateRange] = None,
        date_field: DateField = DateField.EFFECTIVE,
        transaction_type: Optional[TransactionType] = None,
        limit: Optional[int] = None,
    ) -> list[Transaction]:
        return await self._db.run(
            self._list_transactions, owner_id, date_range, date_field, transaction_type, limit
        )

    def _list_transactions(
        self,
        owner_id: str,
        date_range: Optional[DateRange],
        date_field: DateField,
        transaction_type: Optional[TransactionType],
        limit: Optional[int],
    ) -> list[Transaction]:
        column = (
            TransactionRow.created_at
            if date_field == DateField.CREATED
            else TransactionRow.effective_date
        )
        stmt = select(TransactionRow).where(TransactionRow.owner_id == owner_id)
        if date_range is not None:
            stmt = stmt.where(column >= date_range.start, column < date_range.end)
        if transaction_type is not None:
            stmt = stmt.where(TransactionRow.type == transaction_type.value)
        stmt = stmt.order_by(column.desc(), TransactionRow.seq.desc())
        if limit is not None:
            stmt = stmt.limit(limit)

        with self._db.session() as session:
            rows = session.execute(stmt).unique().scalars().all()
            return [_to_transaction(row) for row in rows]

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    async def get_account(self, account_id: str, owner_id: str) -> Optional[Account]:
        accounts = await self._db.run(self._select_accounts, [
            AccountRow.id == account_id,
            AccountRow.owner_id == owner_id,
        ])
        return accounts[0] if accounts else None

    async def list_accounts(self, owner_id: str, active_only: bool = True) -> list[Account]:
        conditions = [AccountRow.owner_id == owner_id]
        if active_only:
            conditions.append(AccountRow.is_active.is_(True))
        return await self._db.run(self._select_accounts, conditions)

    async def get_primary_account(self, owner_id: str) -> Optional[Account]:
        accounts = await self._db.run(self._select_accounts, [
            AccountRow.owner_id == owner_id,
            AccountRow.is_default.is_(True),
            AccountRow.is_active.is_(True),
        ])
        return accounts[0] if accounts else None

    def _select_accounts(self, conditions: list) -> list[Account]:
        with self._db.session() as session:
            rows = session.execute(
                select(AccountRow)
                .where(*conditions)
                .order_by(AccountRow.created_at, AccountRow.seq)
            ).scalars().all()
            return [_to_account(row) for row in rows]

    async def promote_oldest_active_account(self, owner_id: str) -> Optional[Account]:
        return await self._db.run(self._promote_oldest_active, owner_id)

    def _promote_oldest_active(self, owner_id: str) -> Optional[Account]:
        with self._db.session() as session:
            row = session.execute(
                select(AccountRow)
                .where(AccountRow.owner_id == owner_id, AccountRow.is_active.is_(True))
                .order_by(AccountRow.created_at, AccountRow.seq)
                .limit(1)
            ).scalar_one_or_none()
            if row is None:
                return None
            row.is_default = True
            session.flush()
            return _to_account(row)

    async def create_account(self, account: Account) -> Account:
        return await self._db.run(self._create_account, account)

    def _create_account(self, account: Account) -> Account:
        with self._db.session() as session:
            session.add(AccountRow(
                id=account.id,
                owner_id=account.owner_id,
                name=account.name,
                type=account.type.value,
                balance_cents=to_cents(account.balance),
                is_default=account.is_default,
                is_active=account.is_active,
                icon=account.icon,
                created_at=account.created_at,
            ))
            session.flush()
        return account

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    async def list_categories(
        self,
        owner_id: str,
        category_type: Optional[CategoryType] = None,
    ) -> list[Category]:
        return await self._db.run(self._list_categories, owner_id, category_type)

    def _list_categories(self, owner_id: str, category_type: Optional[CategoryType]) -> list[Category]:
        stmt = select(CategoryRow).where(CategoryRow.owner_id == owner_id)
        if category_type is not None:
            stmt = stmt.where(CategoryRow.type == category_type.value)
        stmt = stmt.order_by(CategoryRow.created_at, CategoryRow.seq)
        with self._db.session() as session:
            return [_to_category(row) for row in session.execute(stmt).scalars().all()]

    async def add_categories(self, categories: list[Category]) -> int:
        return await self._db.run(self._add_categories, categories)

    def _add_categories(self, categories: list[Category]) -> int:
        inserted = 0
        with self._db.session() as session:
            for category in categories:
                exists = session.execute(
                    select(CategoryRow.seq).where(
                        CategoryRow.owner_id == category.owner_id,
                        CategoryRow.type == category.type.value,
                        CategoryRow.name == category.name,
                    )
                ).scalar_one_or_none()
                if exists is not None:
                    continue
                session.add(CategoryRow(
                    id=category.id,
                    owner_id=category.owner_id,
                    type=category.type.value,
                    name=category.name,
                    localized_name=category.localized_name,
                    icon=category.icon,
                    is_system=category.is_system,
                    created_at=category.created_at,
                ))
                session.flush()
                inserted += 1
        return inserted


# =============================================================================
# Usage counters
# =============================================================================

class SqlUsageStorage(UsageStorageInterface):
    """
    Daily usage counters with an atomic conditional increment.
    """

    def __init__(self, database: Database):
        self._db = database

    async def get_usage(self, owner_id: str, counter: str, day_key: str) -> int:
        return await self._db.run(self._get_usage, owner_id, counter, day_key)

    def _get_usage(self, owner_id: str, counter: str, day_key: str) -> int:
        with self._db.session() as session:
            return self._current(session, owner_id, counter, day_key) or 0

    @staticmethod
    def _current(session: Session, owner_id: str, counter: str, day_key: str) -> Optional[int]:
        return session.execute(
            select(UsageCounterRow.count).where(
                UsageCounterRow.owner_id == owner_id,
                UsageCounterRow.counter == counter,
                UsageCounterRow.day_key == day_key,
            )
        ).scalar_one_or_none()

    async def try_increment(
        self,
        owner_id: str,
        counter: str,
        day_key: str,
        limit: int,
    ) -> Optional[int]:
        try:
            return await self._db.run(self._try_increment, owner_id, counter, day_key, limit)
        except DuplicateError:
            # Lost the first-insert race for this day; the row exists now
            return await self._db.run(self._try_increment, owner_id, counter, day_key, limit)

    def _try_increment(self, owner_id: str, counter: str, day_key: str, limit: int) -> Optional[int]:
        with self._db.session() as session:
            result = session.execute(
                update(UsageCounterRow)
                .where(
                    UsageCounterRow.owner_id == owner_id,
                    UsageCounterRow.counter == counter,
                    UsageCounterRow.day_key == day_key,
                    UsageCounterRow.count < limit,
                )
                .values(count=UsageCounterRow.count + 1, updated_at=utc_now())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                return self._current(session, owner_id, counter, day_key)

            if self._current(session, owner_id, counter, day_key) is not None or limit < 1:
                return None

            session.add(UsageCounterRow(
                owner_id=owner_id,
                counter=counter,
                day_key=day_key,
                count=1,
                updated_at=utc_now(),
            ))
            session.flush()
            return 1


# =============================================================================
# Audit storage
# =============================================================================

class SqlAuditStorage(AuditStorageInterface):
    """
    SQL implementation of audit log storage.

    Append-only - no update or delete operations.
    """

    def __init__(self, database: Database):
        self._db = database

    async def append_event(self, event: AuditEvent) -> bool:
        await self._db.run(self._append, event)
        return True

    def _append(self, event: AuditEvent) -> None:
        with self._db.session() as session:
            session.add(AuditEventRow(
                event_id=str(event.event_id),
                timestamp=event.timestamp,
                event_type=event.event_type.value,
                severity=event.severity.value,
                owner_id=event.owner_id,
                entity_type=event.entity_type,
                entity_id=event.entity_id,
                correlation_id=str(event.correlation_id) if event.correlation_id else None,
                description=event.description,
                details_json=json.dumps(event.details, default=str) if event.details else None,
                error_message=event.error_message,
                is_user_action=event.is_user_action,
            ))

    async def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        return await self._db.run(
            self._select_events,
            [AuditEventRow.correlation_id == str(correlation_id)],
            False,
            None,
        )

    async def get_events_by_entity(self, entity_type: str, entity_id: str) -> list[AuditEvent]:
        return await self._db.run(
            self._select_events,
            [AuditEventRow.entity_type == entity_type, AuditEventRow.entity_id == entity_id],
            False,
            None,
        )

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return await self._db.run(self._select_events, [], True, limit)

    def _select_events(self, conditions: list, newest_first: bool, limit: Optional[int]) -> list[AuditEvent]:
        order = AuditEventRow.seq.desc() if newest_first else AuditEventRow.seq
        stmt = select(AuditEventRow).where(*conditions).order_by(order)
        if limit is not None:
            stmt = stmt.limit(limit)
        with self._db.session() as session:
            return [self._to_event(row) for row in session.execute(stmt).scalars().all()]

    @staticmethod
    def _to_event(row: AuditEventRow) -> AuditEvent:
        return AuditEvent(
            event_id=UUID(row.event_id),
            timestamp=row.timestamp,
            event_type=AuditEventType(row.event_type),
            severity=AuditSeverity(row.severity),
            owner_id=row.owner_id,
            entity_type=row.entity_type,
            entity_id=row.entity_id,
            correlation_id=UUID(row.correlation_id) if row.correlation_id else None,
            description=row.description,
            details=json.loads(row.details_json) if row.details_json else {},
            error_message=row.error_message,
            is_user_action=row.is_user_action,
        )
