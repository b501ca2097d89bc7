"""
Reply-to-delete

A user replies "hapus" (or "del", "undo", ...) to a message that
produced a transaction. The transaction id is resolved by, in order:

1. the message index (the bot registered the message when it replied)
2. a `tx_<id>` reference token inside the replied text
3. the replied text matching a transaction's raw input

The first method that yields an id wins. This is best-effort: when
nothing resolves the result is NOT_FOUND, never an exception.
"""

import re
from typing import Optional

import structlog

from catatuang.audit import AuditLogger
from catatuang.ledger import TransactionEngine
from catatuang.models.workflow import ReplyDeleteResult, ReplyDeleteStatus
from catatuang.workflow.message_index import MessageIndex


logger = structlog.get_logger(__name__)

DELETE_KEYWORD_PATTERN = re.compile(r"^(del|hapus|delete|undo|batal|cancel)$", re.IGNORECASE)
REFERENCE_TOKEN_PATTERN = re.compile(r"tx_([a-z0-9]+)", re.IGNORECASE)


class ReplyDeleteResolver:
    """Resolves a replied-to message to a transaction and deletes it."""

    def __init__(
        self,
        index: MessageIndex,
        engine: TransactionEngine,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._index = index
        self._engine = engine
        self._audit_logger = audit_logger

    @staticmethod
    def is_delete_keyword(text: Optional[str]) -> bool:
        return bool(text) and DELETE_KEYWORD_PATTERN.match(text.strip()) is not None

    async def resolve(
        self,
        chat_user_id: str,
        owner_id: str,
        replied_message_id: Optional[str],
        replied_text: Optional[str],
    ) -> tuple[Optional[str], Optional[str]]:
        """
        Returns:
            (transaction_id, method) or (None, None)
        """
        if replied_message_id is not None:
            transaction_id = self._index.consume(chat_user_id, str(replied_message_id))
            if transaction_id:
                return transaction_id, "message_index"

        text = (replied_text or "").strip()
        if not text:
            return None, None

        match = REFERENCE_TOKEN_PATTERN.search(text)
        if match:
            return match.group(1).lower(), "reference_token"

        by_raw_input = await self._engine.storage.find_most_recent_transaction_by_raw_input(
            owner_id, text
        )
        if by_raw_input is not None:
            return by_raw_input.id, "raw_input"
        return None, None

    async def delete_from_reply(
        self,
        chat_user_id: str,
        owner_id: str,
        replied_message_id: Optional[str],
        replied_text: Optional[str] = None,
    ) -> ReplyDeleteResult:
        transaction_id, method = await self.resolve(
            chat_user_id, owner_id, replied_message_id, replied_text
        )
        if transaction_id is None:
            logger.info("reply_delete_unresolved", chat_user_id=chat_user_id,
                        replied_message_id=replied_message_id)
            if self._audit_logger:
                await self._audit_logger.log_reply_delete_unresolved(
                    owner_id, str(replied_message_id) if replied_message_id is not None else None
                )
            return ReplyDeleteResult(status=ReplyDeleteStatus.NOT_FOUND)

        deleted = await self._engine.delete_by_id(owner_id, transaction_id)
        if deleted is None:
            return ReplyDeleteResult(
                status=ReplyDeleteStatus.ALREADY_DELETED,
                transaction_id=transaction_id,
                resolved_by=method,
            )
        return ReplyDeleteResult(
            status=ReplyDeleteStatus.DELETED,
            transaction_id=transaction_id,
            resolved_by=method,
            transaction=deleted,
        )
