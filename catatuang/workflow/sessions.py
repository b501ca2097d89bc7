"""
Ephemeral Session Store

DESIGN DECISION: Per-chat-user state (pending receipts, the message
index) lives behind a small key/value interface that is injected into
the workflow, never held in module globals. The default implementation
is an in-process dict.

CAVEAT: `InMemorySessionStore` is NOT durable. Its contents are lost on
restart and are not shared between processes. A host that runs several
workers needs a shared implementation (e.g. a cache server) instead.
"""

import threading
from abc import ABC, abstractmethod
from typing import Any, Optional


class SessionStore(ABC):
    """Key/value store for ephemeral per-user workflow state."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        pass

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a key. Missing keys are ignored."""
        pass

    @abstractmethod
    def pop(self, key: str) -> Optional[Any]:
        """Remove a key and return its value, atomically."""
        pass


class InMemorySessionStore(SessionStore):
    """
    Thread-safe dict-backed session store.

    Safe to share between concurrent handlers of one process.
    """

    def __init__(self):
        self._data: dict[str, Any] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def pop(self, key: str) -> Optional[Any]:
        with self._lock:
            return self._data.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)
