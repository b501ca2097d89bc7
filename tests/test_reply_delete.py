"""Tests for reply-to-delete and the message index."""

import asyncio
from decimal import Decimal

import pytest

from catatuang.models.audit import AuditEventType
from catatuang.models.workflow import ReplyDeleteStatus
from catatuang.workflow import InMemorySessionStore, MessageIndex, ReplyDeleteResolver

from conftest import candidate


async def record(engine, raw_input="beli kopi 20rb"):
    return await engine.record_candidate("u1", candidate(), raw_input=raw_input)


class TestMessageIndex:
    """Tests for the message <-> transaction mapping."""

    def test_consume_removes_entry(self):
        """Test that a message resolves once."""
        index = MessageIndex(InMemorySessionStore())
        index.register("c1", "100", "tx1")
        assert index.lookup("c1", "100") == "tx1"
        assert index.consume("c1", "100") == "tx1"
        assert index.consume("c1", "100") is None

    def test_entries_are_per_chat_user(self):
        """Test that message ids from different chats do not collide."""
        index = MessageIndex(InMemorySessionStore())
        index.register("c1", "100", "tx1")
        assert index.lookup("c2", "100") is None

    def test_clear_transaction_removes_all_messages(self):
        """Test the reverse cleanup when a transaction goes away."""
        store = InMemorySessionStore()
        index = MessageIndex(store)
        index.register("c1", "100", "tx1")
        index.register("c1", 101, "tx1")
        index.register("c1", "102", "tx2")
        assert index.clear_transaction("tx1") == 2
        assert index.lookup("c1", "100") is None
        assert index.lookup("c1", "101") is None
        assert index.lookup("c1", "102") == "tx2"

    def test_consume_keeps_other_messages_of_transaction(self):
        """Test that consuming one message leaves its siblings."""
        index = MessageIndex(InMemorySessionStore())
        index.register("c1", "100", "tx1")
        index.register("c1", "200", "tx1")
        index.consume("c1", "100")
        assert index.clear_transaction("tx1") == 1


class TestResolution:
    """Tests for the three lookup methods and their order."""

    def test_delete_keywords(self):
        """Test the recognized delete words."""
        for word in ("hapus", "DEL", " undo ", "Batal"):
            assert ReplyDeleteResolver.is_delete_keyword(word)
        for word in ("hapus dong", "", None, "delete it"):
            assert not ReplyDeleteResolver.is_delete_keyword(word)

    def test_resolves_through_message_index(self, engine, index, reply_delete):
        """Test that a registered bot message deletes its transaction."""
        async def scenario():
            created = await record(engine)
            index.register("c1", "500", created.transaction.id)
            result = await reply_delete.delete_from_reply("c1", "u1", "500", "anything")
            account = await engine.get_or_create_primary_account("u1")
            return created, result, account

        created, result, account = asyncio.run(scenario())
        assert result.status == ReplyDeleteStatus.DELETED
        assert result.resolved_by == "message_index"
        assert result.transaction_id == created.transaction.id
        assert account.balance == Decimal("0.00")

    def test_resolves_through_reference_token(self, engine, reply_delete):
        """Test that the tx token in a bot reply is found even in upper case."""
        async def scenario():
            created = await record(engine)
            text = f"✅ Tercatat\n🔖 {created.transaction.reference_token.upper()}"
            return created, await reply_delete.delete_from_reply("c1", "u1", "unknown", text)

        created, result = asyncio.run(scenario())
        assert result.status == ReplyDeleteStatus.DELETED
        assert result.resolved_by == "reference_token"
        assert result.transaction.id == created.transaction.id

    def test_resolves_through_raw_input(self, engine, reply_delete):
        """Test that replying to the user's own message finds the newest matching row."""
        async def scenario():
            await record(engine, "beli kopi 20rb")
            newest = await record(engine, "beli kopi 20rb")
            return newest, await reply_delete.delete_from_reply("c1", "u1", "9", "  beli kopi 20rb ")

        newest, result = asyncio.run(scenario())
        assert result.resolved_by == "raw_input"
        assert result.transaction_id == newest.transaction.id

    def test_message_index_wins_over_token(self, engine, index, reply_delete):
        """Test the lookup order."""
        async def scenario():
            first = await record(engine)
            second = await record(engine)
            index.register("c1", "500", first.transaction.id)
            text = f"🔖 {second.transaction.reference_token}"
            return first, await reply_delete.delete_from_reply("c1", "u1", "500", text)

        first, result = asyncio.run(scenario())
        assert result.transaction_id == first.transaction.id

    def test_unresolved_reply_is_not_found(self, engine, reply_delete, audit_storage):
        """Test that an unknown message is reported, never raised."""
        async def scenario():
            await record(engine)
            result = await reply_delete.delete_from_reply("c1", "u1", "42", "halo")
            return result, await audit_storage.get_recent_events(5)

        result, events = asyncio.run(scenario())
        assert result.status == ReplyDeleteStatus.NOT_FOUND
        assert events[0].event_type == AuditEventType.REPLY_DELETE_UNRESOLVED

    @pytest.mark.parametrize("replied_text", [None, "   "])
    def test_empty_reply_text_is_not_found(self, reply_delete, replied_text):
        """Test that nothing is looked up without an id or text."""
        result = asyncio.run(reply_delete.delete_from_reply("c1", "u1", None, replied_text))
        assert result.status == ReplyDeleteStatus.NOT_FOUND

    def test_second_delete_reports_already_deleted(self, engine, reply_delete):
        """Test deleting through a token twice."""
        async def scenario():
            created = await record(engine)
            text = created.transaction.reference_token
            first = await reply_delete.delete_from_reply("c1", "u1", None, text)
            second = await reply_delete.delete_from_reply("c1", "u1", None, text)
            return first, second

        first, second = asyncio.run(scenario())
        assert first.status == ReplyDeleteStatus.DELETED
        assert second.status == ReplyDeleteStatus.ALREADY_DELETED

    def test_other_owner_cannot_delete(self, engine, reply_delete):
        """Test that a token from someone else's transaction deletes nothing."""
        async def scenario():
            created = await record(engine)
            result = await reply_delete.delete_from_reply(
                "c2", "u2", None, created.transaction.reference_token
            )
            return result, await engine.storage.find_transaction(created.transaction.id, "u1")

        result, still_there = asyncio.run(scenario())
        assert result.status == ReplyDeleteStatus.ALREADY_DELETED
        assert still_there is not None

    def test_any_delete_path_clears_index(self, engine, index):
        """Test that /hapus-style deletes also drop index entries."""
        async def scenario():
            created = await record(engine)
            index.register("c1", "500", created.transaction.id)
            await engine.delete_most_recent("u1")
            return index.lookup("c1", "500")

        assert asyncio.run(scenario()) is None
