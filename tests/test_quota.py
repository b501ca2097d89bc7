"""Tests for daily chat and receipt quotas."""

import asyncio
from datetime import datetime, timedelta, timezone

from catatuang.models.audit import AuditEventType
from catatuang.workflow import CHAT_COUNTER


class TestReceiptQuota:
    """Three receipt scans per civil day."""

    def test_fourth_consume_fails_until_next_day(self, quota, clock):
        """Test that the counter resets when the day key changes."""
        tomorrow = clock.now() + timedelta(days=1)

        async def scenario():
            today = [await quota.consume_receipt_quota("u1") for _ in range(4)]
            next_day = await quota.consume_receipt_quota("u1", now=tomorrow)
            return today, next_day

        today, next_day = asyncio.run(scenario())
        assert [r.ok for r in today] == [True, True, True, False]
        assert [r.remaining for r in today] == [2, 1, 0, 0]
        assert today[3].used == 3
        assert next_day.ok
        assert next_day.used == 1
        assert next_day.day_key == "2025-01-16"

    def test_get_does_not_consume(self, quota):
        """Test that querying leaves the counter alone."""
        async def scenario():
            await quota.get_receipt_quota("u1")
            await quota.get_receipt_quota("u1")
            return await quota.get_receipt_quota("u1")

        result = asyncio.run(scenario())
        assert result.ok
        assert result.used == 0
        assert result.remaining == 3

    def test_day_key_follows_civil_midnight(self, quota):
        """Test that 17:00 UTC already counts toward the next civil day."""
        before = datetime(2025, 1, 15, 16, 59, tzinfo=timezone.utc)
        after = datetime(2025, 1, 15, 17, 0, tzinfo=timezone.utc)

        async def scenario():
            return (
                await quota.consume_receipt_quota("u1", now=before),
                await quota.consume_receipt_quota("u1", now=after),
            )

        first, second = asyncio.run(scenario())
        assert first.day_key == "2025-01-15"
        assert second.day_key == "2025-01-16"
        assert first.used == second.used == 1

    def test_counters_are_per_owner(self, quota):
        """Test that one owner's usage does not affect another."""
        async def scenario():
            for _ in range(3):
                await quota.consume_receipt_quota("u1")
            return await quota.consume_receipt_quota("u2")

        assert asyncio.run(scenario()).ok


class TestChatQuota:
    """Chat message quota."""

    def test_chat_and_receipt_counters_are_independent(self, quota):
        """Test that receipts do not eat chat quota."""
        async def scenario():
            for _ in range(3):
                await quota.consume_receipt_quota("u1")
            return await quota.get_chat_quota("u1")

        result = asyncio.run(scenario())
        assert result.used == 0
        assert result.limit == 5

    def test_concurrent_consumes_never_exceed_limit(self, quota):
        """Test the atomic conditional increment under contention."""
        async def scenario():
            return await asyncio.gather(*[quota.consume_chat_quota("u1") for _ in range(12)])

        results = asyncio.run(scenario())
        assert sum(1 for r in results if r.ok) == 5
        assert sorted(r.used for r in results if r.ok) == [1, 2, 3, 4, 5]

    def test_exceeded_quota_is_audited(self, quota, audit_storage):
        """Test that a refused consume leaves an audit event."""
        async def scenario():
            for _ in range(6):
                await quota.consume_chat_quota("u1")
            return await audit_storage.get_recent_events(10)

        events = asyncio.run(scenario())
        exceeded = [e for e in events if e.event_type == AuditEventType.QUOTA_EXCEEDED]
        assert len(exceeded) == 1
        assert exceeded[0].details["counter"] == CHAT_COUNTER
