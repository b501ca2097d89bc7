"""
Shared fixtures for Catatuang tests.

Test strategy:
1. Unit tests for pure components (models, clock, currency, validator)
2. Integration tests against a throwaway SQLite file per test
3. No real AI calls in tests (a scripted parser stands in)
"""

from datetime import datetime, timezone
from decimal import Decimal
from io import BytesIO
from typing import Optional

import pytest
from PIL import Image

from catatuang.audit import AuditLogger
from catatuang.clock import FixedOffsetClock
from catatuang.config import AppSettings, DatabaseSettings
from catatuang.ledger import TransactionEngine
from catatuang.models.ledger import CandidateType, ParsedCandidate
from catatuang.queries import PeriodAggregator
from catatuang.services.ai import TransactionParser
from catatuang.services.storage import (
    Database,
    SqlAuditStorage,
    SqlLedgerStorage,
    SqlUsageStorage,
)
from catatuang.workflow import (
    InMemorySessionStore,
    MessageIndex,
    QuotaService,
    ReceiptWorkflow,
    ReplyDeleteResolver,
)


# Wednesday 2025-01-15 10:00 in UTC+7
DEFAULT_NOW = datetime(2025, 1, 15, 3, 0, tzinfo=timezone.utc)


def candidate(
    amount="20000",
    type: CandidateType = CandidateType.EXPENSE,
    category: str = "Food & Drinks",
    description: str = "makan siang",
    confidence: float = 0.9,
) -> ParsedCandidate:
    return ParsedCandidate(
        type=type,
        amount=Decimal(str(amount)),
        category=category,
        description=description,
        confidence=confidence,
    )


class ScriptedParser(TransactionParser):
    """Returns queued candidates in order; None once the queue is empty."""

    def __init__(self):
        self.text_results: list[Optional[ParsedCandidate]] = []
        self.image_results: list[Optional[ParsedCandidate]] = []
        self.revise_results: list[Optional[ParsedCandidate]] = []
        self.calls: list[tuple[str, object]] = []

    async def parse_text(self, text: str) -> Optional[ParsedCandidate]:
        self.calls.append(("parse_text", text))
        return self.text_results.pop(0) if self.text_results else None

    async def parse_image(self, image_bytes: bytes, mime_type: str) -> Optional[ParsedCandidate]:
        self.calls.append(("parse_image", mime_type))
        return self.image_results.pop(0) if self.image_results else None

    async def revise(self, previous: ParsedCandidate, feedback: str) -> Optional[ParsedCandidate]:
        self.calls.append(("revise", feedback))
        return self.revise_results.pop(0) if self.revise_results else None


class MutableNow:
    """Callable clock source that tests can move forward."""

    def __init__(self, value: datetime = DEFAULT_NOW):
        self.value = value

    def __call__(self) -> datetime:
        return self.value


@pytest.fixture
def now() -> MutableNow:
    return MutableNow()


@pytest.fixture
def clock(now) -> FixedOffsetClock:
    return FixedOffsetClock(7, now=now)


@pytest.fixture
def app_settings() -> AppSettings:
    return AppSettings(
        daily_chat_limit=5,
        daily_receipt_limit=3,
        pending_receipt_ttl_minutes=30,
        min_receipt_dimension_px=100,
    )


@pytest.fixture
def database(tmp_path):
    db = Database(DatabaseSettings(url=f"sqlite:///{tmp_path / 'ledger.db'}"))
    db.create_schema()
    yield db
    db.dispose()


@pytest.fixture
def ledger_storage(database) -> SqlLedgerStorage:
    return SqlLedgerStorage(database)


@pytest.fixture
def audit_storage(database) -> SqlAuditStorage:
    return SqlAuditStorage(database)


@pytest.fixture
def audit_logger(audit_storage) -> AuditLogger:
    return AuditLogger(audit_storage)


@pytest.fixture
def engine(ledger_storage, clock, audit_logger, app_settings) -> TransactionEngine:
    return TransactionEngine(ledger_storage, clock, audit_logger, app_settings)


@pytest.fixture
def aggregator(ledger_storage, clock) -> PeriodAggregator:
    return PeriodAggregator(ledger_storage, clock)


@pytest.fixture
def quota(database, clock, app_settings, audit_logger) -> QuotaService:
    return QuotaService(SqlUsageStorage(database), clock, app_settings, audit_logger)


@pytest.fixture
def parser() -> ScriptedParser:
    return ScriptedParser()


@pytest.fixture
def sessions() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def index(sessions, engine) -> MessageIndex:
    message_index = MessageIndex(sessions)
    engine.add_delete_listener(message_index.on_transaction_deleted)
    return message_index


@pytest.fixture
def receipts(sessions, parser, engine, quota, clock, app_settings, audit_logger) -> ReceiptWorkflow:
    return ReceiptWorkflow(sessions, parser, engine, quota, clock, app_settings, audit_logger)


@pytest.fixture
def reply_delete(index, engine, audit_logger) -> ReplyDeleteResolver:
    return ReplyDeleteResolver(index, engine, audit_logger)


@pytest.fixture
def receipt_png() -> bytes:
    return image_bytes("PNG", (400, 600))


def image_bytes(image_format: str, size: tuple[int, int]) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, color=(255, 255, 255)).save(buffer, format=image_format)
    return buffer.getvalue()
