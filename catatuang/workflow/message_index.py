"""
Message <-> transaction index for reply-to-delete.

When the bot confirms a transaction, the chat layer reports the id of
the message it sent (and of the user's message that produced it). A
later reply to either message can then find the transaction.

Entries are removed when the transaction is deleted through any path;
register `on_transaction_deleted` as an engine delete listener.
"""

import threading
from typing import Optional

from catatuang.models.ledger import Transaction
from catatuang.workflow.sessions import SessionStore


def _message_key(chat_user_id: str, message_id: str) -> str:
    return f"msg:{chat_user_id}:{message_id}"


def _transaction_key(transaction_id: str) -> str:
    return f"tx:{transaction_id}"


class MessageIndex:
    """Bidirectional (chat user, message id) <-> transaction id mapping."""

    def __init__(self, store: SessionStore):
        self._store = store
        # Guards the read-modify-write of the reverse key sets
        self._lock = threading.Lock()

    def register(self, chat_user_id: str, message_id: str, transaction_id: str) -> None:
        message_key = _message_key(chat_user_id, str(message_id))
        with self._lock:
            self._store.set(message_key, transaction_id)
            keys = set(self._store.get(_transaction_key(transaction_id)) or ())
            keys.add(message_key)
            self._store.set(_transaction_key(transaction_id), keys)

    def lookup(self, chat_user_id: str, message_id: str) -> Optional[str]:
        return self._store.get(_message_key(chat_user_id, str(message_id)))

    def consume(self, chat_user_id: str, message_id: str) -> Optional[str]:
        """Look up a message's transaction and drop the entry."""
        message_key = _message_key(chat_user_id, str(message_id))
        with self._lock:
            transaction_id = self._store.pop(message_key)
            if transaction_id is None:
                return None
            keys = set(self._store.get(_transaction_key(transaction_id)) or ())
            keys.discard(message_key)
            if keys:
                self._store.set(_transaction_key(transaction_id), keys)
            else:
                self._store.delete(_transaction_key(transaction_id))
        return transaction_id

    def clear_transaction(self, transaction_id: str) -> int:
        """
        Remove every message entry pointing at a transaction.

        Returns:
            Number of message entries removed
        """
        with self._lock:
            keys = self._store.pop(_transaction_key(transaction_id)) or set()
            for message_key in keys:
                self._store.delete(message_key)
        return len(keys)

    def on_transaction_deleted(self, transaction: Transaction) -> None:
        self.clear_transaction(transaction.id)
