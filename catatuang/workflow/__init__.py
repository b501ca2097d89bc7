"""Per-user chat workflow: sessions, receipts, quotas and reply-to-delete."""

from catatuang.workflow.message_index import MessageIndex
from catatuang.workflow.quota import CHAT_COUNTER, RECEIPT_COUNTER, QuotaService
from catatuang.workflow.receipt import (
    CANCEL_PATTERN,
    CONFIRM_PATTERN,
    REJECT_PATTERN,
    ReceiptWorkflow,
)
from catatuang.workflow.reply_delete import ReplyDeleteResolver
from catatuang.workflow.sessions import InMemorySessionStore, SessionStore

__all__ = [
    "CANCEL_PATTERN",
    "CHAT_COUNTER",
    "CONFIRM_PATTERN",
    "InMemorySessionStore",
    "MessageIndex",
    "QuotaService",
    "RECEIPT_COUNTER",
    "REJECT_PATTERN",
    "ReceiptWorkflow",
    "ReplyDeleteResolver",
    "SessionStore",
]
