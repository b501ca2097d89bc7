"""
Daily AI-usage quotas.

Two counters per owner and civil day: chat messages parsed and receipt
photos scanned. Querying never consumes; consuming is one atomic
conditional increment in the store, so concurrent consumes can never
exceed the limit. Counters reset naturally when the day key changes.
"""

from datetime import datetime
from typing import Optional

import structlog

from catatuang.audit import AuditLogger
from catatuang.clock import FixedOffsetClock
from catatuang.config import AppSettings, get_settings
from catatuang.models.ledger import QuotaResult
from catatuang.services.storage import UsageStorageInterface


logger = structlog.get_logger(__name__)

CHAT_COUNTER = "chat"
RECEIPT_COUNTER = "receipt"


class QuotaService:
    """Per-owner daily limits for chat and receipt parsing."""

    def __init__(
        self,
        storage: UsageStorageInterface,
        clock: FixedOffsetClock,
        settings: Optional[AppSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._clock = clock
        self._settings = settings or get_settings().app
        self._audit_logger = audit_logger

    @property
    def receipt_limit(self) -> int:
        return self._settings.daily_receipt_limit

    async def get_chat_quota(self, owner_id: str, now: Optional[datetime] = None) -> QuotaResult:
        return await self._get(owner_id, CHAT_COUNTER, self._settings.daily_chat_limit, now)

    async def consume_chat_quota(self, owner_id: str, now: Optional[datetime] = None) -> QuotaResult:
        return await self._consume(owner_id, CHAT_COUNTER, self._settings.daily_chat_limit, now)

    async def get_receipt_quota(self, owner_id: str, now: Optional[datetime] = None) -> QuotaResult:
        return await self._get(owner_id, RECEIPT_COUNTER, self._settings.daily_receipt_limit, now)

    async def consume_receipt_quota(self, owner_id: str, now: Optional[datetime] = None) -> QuotaResult:
        return await self._consume(owner_id, RECEIPT_COUNTER, self._settings.daily_receipt_limit, now)

    async def _get(self, owner_id: str, counter: str, limit: int, now: Optional[datetime]) -> QuotaResult:
        day_key = self._clock.day_key(now)
        used = await self._storage.get_usage(owner_id, counter, day_key)
        return QuotaResult(
            ok=used < limit,
            used=used,
            remaining=max(limit - used, 0),
            limit=limit,
            day_key=day_key,
        )

    async def _consume(self, owner_id: str, counter: str, limit: int, now: Optional[datetime]) -> QuotaResult:
        day_key = self._clock.day_key(now)
        count = await self._storage.try_increment(owner_id, counter, day_key, limit)

        if count is None:
            used = await self._storage.get_usage(owner_id, counter, day_key)
            logger.info("quota_exceeded", owner_id=owner_id, counter=counter, day_key=day_key)
            if self._audit_logger:
                await self._audit_logger.log_quota_exceeded(owner_id, counter, limit, day_key)
            return QuotaResult(ok=False, used=used, remaining=0, limit=limit, day_key=day_key)

        return QuotaResult(
            ok=True,
            used=count,
            remaining=max(limit - count, 0),
            limit=limit,
            day_key=day_key,
        )
