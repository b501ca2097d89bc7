"""
SQLAlchemy table definitions for the ledger store.

Money columns hold integer cents (`*_cents`) so that balance updates
run as exact integer arithmetic inside the database.

Every table has an autoincrement `seq` primary key next to its public
string `id`; `seq` is the insertion order used to break `created_at`
ties ("last inserted wins").
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.types import TypeDecorator

from catatuang.models.ledger import CENT, ensure_utc, quantize_money

Base = declarative_base()


def to_cents(amount) -> int:
    return int(quantize_money(amount) * 100)


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)


class UtcDateTime(TypeDecorator):
    """
    Stores UTC instants and always hands back aware UTC datetimes.

    SQLite has no timezone support, so values are normalized to UTC
    before binding; comparisons against range bounds stay consistent.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = ensure_utc(value)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, str):
            value = datetime.fromisoformat(value)
        return ensure_utc(value)


class AccountRow(Base):
    __tablename__ = "accounts"
    __table_args__ = (
        # At most one default, active account per owner
        Index(
            "uq_accounts_primary_per_owner",
            "owner_id",
            unique=True,
            sqlite_where=text("is_default = 1 AND is_active = 1"),
            postgresql_where=text("is_default AND is_active"),
        ),
    )

    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(32), unique=True, nullable=False)
    owner_id = Column(String(64), nullable=False, index=True)
    name = Column(String(80), nullable=False)
    type = Column(String(20), nullable=False)
    balance_cents = Column(BigInteger, nullable=False, default=0)
    is_default = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    icon = Column(String(16))
    created_at = Column(UtcDateTime, nullable=False)


class CategoryRow(Base):
    __tablename__ = "categories"
    __table_args__ = (
        UniqueConstraint("owner_id", "type", "name", name="uq_categories_owner_type_name"),
    )

    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(32), unique=True, nullable=False)
    owner_id = Column(String(64), nullable=False, index=True)
    type = Column(String(10), nullable=False)
    name = Column(String(80), nullable=False)
    localized_name = Column(String(80))
    icon = Column(String(16))
    is_system = Column(Boolean, nullable=False, default=False)
    created_at = Column(UtcDateTime, nullable=False)


class TransactionRow(Base):
    __tablename__ = "transactions"
    __table_args__ = (
        Index("ix_transactions_owner_created", "owner_id", "created_at"),
        Index("ix_transactions_owner_effective", "owner_id", "effective_date"),
    )

    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(32), unique=True, nullable=False)
    owner_id = Column(String(64), nullable=False)
    account_id = Column(String(32), ForeignKey("accounts.id"), nullable=False)
    category_id = Column(String(32), ForeignKey("categories.id"))
    type = Column(String(10), nullable=False)
    amount_cents = Column(BigInteger, nullable=False)
    description = Column(Text)
    raw_input = Column(Text)
    to_account_id = Column(String(32), ForeignKey("accounts.id"))
    effective_date = Column(UtcDateTime, nullable=False)
    created_at = Column(UtcDateTime, nullable=False)

    category = relationship(CategoryRow, lazy="joined")


class UsageCounterRow(Base):
    __tablename__ = "usage_counters"
    __table_args__ = (
        UniqueConstraint("owner_id", "counter", "day_key", name="uq_usage_owner_counter_day"),
    )

    seq = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(String(64), nullable=False)
    counter = Column(String(20), nullable=False)
    day_key = Column(String(10), nullable=False)
    count = Column(Integer, nullable=False, default=0)
    updated_at = Column(UtcDateTime, nullable=False)


class AuditEventRow(Base):
    __tablename__ = "audit_events"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(String(36), unique=True, nullable=False)
    timestamp = Column(UtcDateTime, nullable=False)
    event_type = Column(String(40), nullable=False)
    severity = Column(String(10), nullable=False)
    owner_id = Column(String(64), index=True)
    entity_type = Column(String(20))
    entity_id = Column(String(64))
    correlation_id = Column(String(36), index=True)
    description = Column(String(500), nullable=False)
    details_json = Column(Text)
    error_message = Column(Text)
    is_user_action = Column(Boolean, nullable=False, default=False)
