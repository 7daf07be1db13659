"""In-process chat history store implementing the engine's history protocol."""

from __future__ import annotations

from typing import Any, Iterable, Sequence

from .message_model import ChatMessage, Session


class InMemoryHistoryStore:
    """Keeps every session's messages in insertion order.

    Useful for tests and for hosts without a database. ``max_messages`` caps
    each session; older messages are dropped first.
    """

    def __init__(self, *, max_messages: int = 500) -> None:
        self._max_messages = max(1, max_messages)
        self._messages: dict[str, list[ChatMessage]] = {}

    async def get_history(self, session: Session, limit: int) -> Sequence[ChatMessage]:
        messages = self._messages.get(session.session_id, [])
        if limit <= 0:
            return []
        return list(messages[-limit:])

    async def record(self, session: Session, message: ChatMessage) -> None:
        bucket = self._messages.setdefault(session.session_id, [])
        bucket.append(message)
        if len(bucket) > self._max_messages:
            del bucket[: len(bucket) - self._max_messages]

    def extend(self, session: Session, messages: Iterable[ChatMessage]) -> None:
        bucket = self._messages.setdefault(session.session_id, [])
        bucket.extend(messages)
        if len(bucket) > self._max_messages:
            del bucket[: len(bucket) - self._max_messages]

    async def clear(self, session_id: str) -> None:
        self._messages.pop(session_id, None)

    def messages(self, session_id: str) -> list[ChatMessage]:
        return list(self._messages.get(session_id, []))

    def snapshot(self) -> dict[str, Any]:
        return {
            "sessions": len(self._messages),
            "message_count": sum(len(bucket) for bucket in self._messages.values()),
            "max_messages": self._max_messages,
        }


__all__ = ["InMemoryHistoryStore"]
