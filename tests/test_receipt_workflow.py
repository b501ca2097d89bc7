"""
Tests for the receipt correction state machine.

Each test drives one whole conversation inside a single event loop,
so the per-user locks are created and used on the same loop.
"""

import asyncio
import gc
from datetime import timedelta
from decimal import Decimal

import pytest

from catatuang.ledger import RECEIPT_IMAGE_INPUT
from catatuang.models.workflow import ReceiptOutcomeKind, ReceiptState
from catatuang.workflow import ReceiptWorkflow

from conftest import ScriptedParser, candidate, image_bytes


class TestHappyPath:
    """Photo, verdict, commit."""

    def test_photo_then_confirm_commits(self, receipts, parser, engine, quota, receipt_png):
        """Test that confirming saves exactly the previewed candidate."""
        parser.image_results.append(candidate("87500", description="Indomaret"))

        async def scenario():
            preview = await receipts.start_from_photo("c1", "u1", receipt_png, source_message_id="m1")
            state_after_preview = receipts.state("c1")
            committed = await receipts.handle_reply("c1", "Benar")
            rows = await engine.storage.list_transactions("u1")
            used = await quota.get_receipt_quota("u1")
            return preview, state_after_preview, committed, rows, used

        preview, state_after_preview, committed, rows, used = asyncio.run(scenario())
        assert preview.kind == ReceiptOutcomeKind.PREVIEW
        assert state_after_preview == ReceiptState.AWAITING_CONFIRMATION
        assert parser.calls[0] == ("parse_image", "image/png")

        assert committed.kind == ReceiptOutcomeKind.COMMITTED
        assert committed.state == ReceiptState.NONE
        assert committed.source_message_id == "m1"
        assert committed.created.updated_balance == Decimal("-87500.00")
        assert receipts.state("c1") == ReceiptState.NONE

        assert len(rows) == 1
        assert rows[0].raw_input == RECEIPT_IMAGE_INPUT
        assert rows[0].description == "Indomaret"
        assert used.used == 1

    def test_nothing_saved_before_confirmation(self, receipts, parser, engine, receipt_png):
        """Test that a parsed receipt does not touch the ledger by itself."""
        parser.image_results.append(candidate())

        async def scenario():
            await receipts.start_from_photo("c1", "u1", receipt_png)
            return await engine.storage.list_transactions("u1")

        assert asyncio.run(scenario()) == []


class TestCorrection:
    """Reject, revise, confirm."""

    def test_reject_revise_confirm(self, receipts, parser, engine, receipt_png):
        """Test the full correction loop."""
        parser.image_results.append(candidate("87500", description="Indomaret"))
        parser.revise_results.append(candidate("25000", category="Transportation", description="parkir"))

        async def scenario():
            await engine.ensure_default_categories("u1")
            await receipts.start_from_photo("c1", "u1", receipt_png)
            rejected = await receipts.handle_reply("c1", "salah")
            revised = await receipts.handle_reply("c1", "jumlahnya 25rb, kategori transportasi")
            committed = await receipts.handle_reply("c1", "ya")
            return rejected, revised, committed

        rejected, revised, committed = asyncio.run(scenario())
        assert rejected.kind == ReceiptOutcomeKind.AWAITING_CORRECTION
        assert rejected.state == ReceiptState.AWAITING_CORRECTION

        assert revised.kind == ReceiptOutcomeKind.PREVIEW
        assert revised.state == ReceiptState.AWAITING_CONFIRMATION
        assert revised.candidate.amount == Decimal("25000.00")
        assert parser.calls[-1] == ("revise", "jumlahnya 25rb, kategori transportasi")

        assert committed.kind == ReceiptOutcomeKind.COMMITTED
        assert committed.created.transaction.amount == Decimal("25000.00")
        assert committed.created.transaction.category.name == "Transportation"

    def test_failed_revision_keeps_waiting_for_correction(self, receipts, parser, receipt_png):
        """Test that an unusable correction leaves the candidate unchanged."""
        parser.image_results.append(candidate("87500"))

        async def scenario():
            await receipts.start_from_photo("c1", "u1", receipt_png)
            await receipts.reject("c1")
            failed = await receipts.handle_reply("c1", "???")
            return failed, receipts.pending("c1")

        failed, pending = asyncio.run(scenario())
        assert failed.kind == ReceiptOutcomeKind.REVISION_FAILED
        assert pending.stage == ReceiptState.AWAITING_CORRECTION
        assert pending.candidate.amount == Decimal("87500.00")

    def test_confirm_is_illegal_while_awaiting_correction(self, receipts, parser, receipt_png):
        """Test that the confirm button does nothing during correction."""
        parser.image_results.append(candidate())

        async def scenario():
            await receipts.start_from_photo("c1", "u1", receipt_png)
            await receipts.reject("c1")
            return await receipts.confirm("c1")

        outcome = asyncio.run(scenario())
        assert outcome.kind == ReceiptOutcomeKind.NOTHING_PENDING
        assert outcome.state == ReceiptState.AWAITING_CORRECTION

    def test_unrecognized_reply_reprompts(self, receipts, parser, receipt_png):
        """Test that free text while awaiting confirmation asks again."""
        parser.image_results.append(candidate())

        async def scenario():
            await receipts.start_from_photo("c1", "u1", receipt_png)
            return await receipts.handle_reply("c1", "hmm mungkin")

        outcome = asyncio.run(scenario())
        assert outcome.kind == ReceiptOutcomeKind.REPROMPT
        assert receipts.state("c1") == ReceiptState.AWAITING_CONFIRMATION

    @pytest.mark.parametrize("stage_steps", [0, 1])
    def test_cancel_from_any_pending_state(self, receipts, parser, engine, receipt_png, stage_steps):
        """Test that 'batal' discards the candidate without saving."""
        parser.image_results.append(candidate())

        async def scenario():
            await receipts.start_from_photo("c1", "u1", receipt_png)
            if stage_steps:
                await receipts.reject("c1")
            cancelled = await receipts.handle_reply("c1", "Batal")
            return cancelled, await engine.storage.list_transactions("u1")

        cancelled, rows = asyncio.run(scenario())
        assert cancelled.kind == ReceiptOutcomeKind.CANCELLED
        assert receipts.state("c1") == ReceiptState.NONE
        assert rows == []


class TestNothingPending:
    """Inputs without a pending receipt."""

    def test_text_without_pending_is_not_consumed(self, receipts):
        """Test that handle_reply yields None so the text is parsed normally."""
        assert asyncio.run(receipts.handle_reply("c1", "benar")) is None

    def test_buttons_without_pending(self, receipts):
        """Test confirm and reject without a candidate."""
        async def scenario():
            return await receipts.confirm("c1"), await receipts.reject("c1"), await receipts.cancel("c1")

        for outcome in asyncio.run(scenario()):
            assert outcome.kind == ReceiptOutcomeKind.NOTHING_PENDING
            assert outcome.state == ReceiptState.NONE

    def test_pending_candidate_expires(self, receipts, parser, now, receipt_png):
        """Test that candidates older than the TTL are dropped."""
        parser.image_results.append(candidate())

        async def scenario():
            await receipts.start_from_photo("c1", "u1", receipt_png)
            now.value += timedelta(minutes=31)
            return await receipts.handle_reply("c1", "benar")

        assert asyncio.run(scenario()) is None
        assert receipts.state("c1") == ReceiptState.NONE


class TestPhotoIntake:
    """Quota and image checks before parsing."""

    def test_invalid_image_does_not_spend_quota(self, receipts, parser, quota):
        """Test that garbage bytes are rejected before the model is called."""
        async def scenario():
            outcome = await receipts.start_from_photo("c1", "u1", b"definitely not a jpeg")
            return outcome, await quota.get_receipt_quota("u1")

        outcome, used = asyncio.run(scenario())
        assert outcome.kind == ReceiptOutcomeKind.INVALID_IMAGE
        assert outcome.message
        assert used.used == 0
        assert parser.calls == []

    def test_tiny_image_is_rejected(self, receipts, parser):
        """Test the minimum resolution."""
        outcome = asyncio.run(receipts.start_from_photo("c1", "u1", image_bytes("PNG", (50, 50))))
        assert outcome.kind == ReceiptOutcomeKind.INVALID_IMAGE
        assert parser.calls == []

    def test_parse_failure_does_not_spend_quota(self, receipts, quota, receipt_png):
        """Test that an unreadable receipt is free."""
        async def scenario():
            outcome = await receipts.start_from_photo("c1", "u1", receipt_png)
            return outcome, await quota.get_receipt_quota("u1")

        outcome, used = asyncio.run(scenario())
        assert outcome.kind == ReceiptOutcomeKind.PARSE_FAILED
        assert used.used == 0
        assert receipts.state("c1") == ReceiptState.NONE

    def test_fourth_receipt_of_the_day_is_refused(self, receipts, parser, receipt_png):
        """Test the daily receipt limit of three."""
        parser.image_results.extend([candidate() for _ in range(4)])

        async def scenario():
            return [await receipts.start_from_photo("c1", "u1", receipt_png) for _ in range(4)]

        outcomes = asyncio.run(scenario())
        assert [o.kind for o in outcomes[:3]] == [ReceiptOutcomeKind.PREVIEW] * 3
        assert outcomes[3].kind == ReceiptOutcomeKind.QUOTA_EXCEEDED
        assert outcomes[3].quota.remaining == 0
        assert len(parser.calls) == 3

    def test_new_photo_replaces_pending_candidate(self, receipts, parser, receipt_png):
        """Test that the latest photo wins."""
        parser.image_results.extend([candidate("1000"), candidate("2000")])

        async def scenario():
            await receipts.start_from_photo("c1", "u1", receipt_png)
            await receipts.start_from_photo("c1", "u1", receipt_png)
            return receipts.pending("c1")

        assert asyncio.run(scenario()).candidate.amount == Decimal("2000.00")


class TestConcurrency:
    """Races between steps of one user's workflow."""

    def test_double_confirm_commits_once(self, receipts, parser, engine, receipt_png):
        """Test that two confirms for one candidate save one row."""
        parser.image_results.append(candidate())

        async def scenario():
            await receipts.start_from_photo("c1", "u1", receipt_png)
            outcomes = await asyncio.gather(receipts.confirm("c1"), receipts.confirm("c1"))
            return outcomes, await engine.storage.list_transactions("u1")

        outcomes, rows = asyncio.run(scenario())
        kinds = sorted(o.kind.value for o in outcomes)
        assert kinds == sorted([ReceiptOutcomeKind.COMMITTED.value, ReceiptOutcomeKind.NOTHING_PENDING.value])
        assert len(rows) == 1

    def test_superseded_revision_is_discarded(
        self, sessions, engine, quota, clock, app_settings, receipt_png
    ):
        """Test that a slow revision cannot overwrite a newer photo."""
        class SlowParser(ScriptedParser):
            async def revise(self, previous, feedback):
                await self.gate.wait()
                return candidate("999")

        slow = SlowParser()
        slow.image_results.extend([candidate("1000"), candidate("2000")])
        receipts = ReceiptWorkflow(sessions, slow, engine, quota, clock, app_settings)

        async def scenario():
            slow.gate = asyncio.Event()
            await receipts.start_from_photo("c1", "u1", receipt_png)
            await receipts.reject("c1")
            revision = asyncio.create_task(receipts.handle_reply("c1", "jumlahnya 999"))
            await asyncio.sleep(0)
            await receipts.start_from_photo("c1", "u1", receipt_png)
            slow.gate.set()
            return await revision, receipts.pending("c1")

        outcome, pending = asyncio.run(scenario())
        assert outcome.kind == ReceiptOutcomeKind.NOTHING_PENDING
        assert pending.candidate.amount == Decimal("2000.00")
        assert pending.stage == ReceiptState.AWAITING_CONFIRMATION

    def test_failed_commit_restores_candidate(self, receipts, parser, engine, receipt_png, monkeypatch):
        """Test that a store failure during confirm keeps the candidate for a retry."""
        parser.image_results.append(candidate())

        async def broken(*args, **kwargs):
            raise RuntimeError("database unavailable")

        async def scenario():
            await receipts.start_from_photo("c1", "u1", receipt_png)
            monkeypatch.setattr(engine, "record_candidate", broken)
            with pytest.raises(RuntimeError):
                await receipts.confirm("c1")
            return receipts.pending("c1")

        pending = asyncio.run(scenario())
        assert pending is not None
        assert pending.stage == ReceiptState.AWAITING_CONFIRMATION

    def test_idle_users_do_not_keep_locks(self, receipts, parser, receipt_png):
        """Test that per-user locks are released once a conversation is over."""
        parser.image_results.extend(candidate() for _ in range(5))

        async def scenario():
            for i in range(5):
                await receipts.start_from_photo(f"c{i}", f"u{i}", receipt_png)
                await receipts.cancel(f"c{i}")

        asyncio.run(scenario())
        gc.collect()
        assert len(receipts._locks) == 0
