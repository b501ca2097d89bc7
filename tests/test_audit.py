"""
Tests for audit persistence failures.

A broken audit table must never undo or mask a committed ledger write.
"""

import asyncio
from decimal import Decimal

import pytest

from catatuang.models.audit import AuditEventBuilder
from catatuang.models.ledger import TransactionType
from catatuang.services.storage import ConnectionError, StorageError
from catatuang.services.storage.tables import AuditEventRow


def drop_audit_table(database) -> None:
    AuditEventRow.__table__.drop(database.connect())


class TestSqlAuditStorageErrors:
    """Driver errors surface as storage errors."""

    def test_missing_table_is_connection_error(self, database, audit_storage):
        """Test that an operational failure is mapped, not raised raw."""
        drop_audit_table(database)

        async def scenario():
            with pytest.raises(ConnectionError):
                await audit_storage.append_event(AuditEventBuilder.categories_seeded("u1", 3))

        asyncio.run(scenario())

    def test_connection_error_is_storage_error(self):
        """Test the exception hierarchy callers rely on."""
        assert issubclass(ConnectionError, StorageError)


class TestAuditLoggerFailures:
    """Tests for the logger's no-raise contract."""

    def test_log_reports_failure(self, database, audit_logger):
        """Test that a failed persist returns False."""
        drop_audit_table(database)
        ok = asyncio.run(audit_logger.log(AuditEventBuilder.categories_seeded("u1", 3)))
        assert ok is False

    def test_ledger_write_survives_audit_failure(self, database, engine, ledger_storage):
        """Test that a transaction is committed once even if its audit event is lost."""
        async def scenario():
            account = await engine.get_or_create_primary_account("u1")
            drop_audit_table(database)
            created = await engine.create_transaction(
                "u1", account.id, TransactionType.INCOME, "1000"
            )
            rows = await ledger_storage.list_transactions("u1")
            return created, rows

        created, rows = asyncio.run(scenario())
        assert created.updated_balance == Decimal("1000.00")
        assert [row.id for row in rows] == [created.transaction.id]
