"""Chat message and session data models."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional


def _utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""

    return datetime.now(timezone.utc)

ChatRole = Literal["user", "assistant", "system"]


def new_message_id(prefix: str = "msg") -> str:
    """Return a unique message identifier such as ``msg_3f2c...``."""

    return f"{prefix}_{uuid.uuid4().hex}"


def new_session_id() -> str:
    """Return a unique chat session identifier."""

    return f"session_{uuid.uuid4().hex}"


@dataclass(slots=True, frozen=True)
class ChatMessage:
    """Represents a row inside the chat history list.

    ``hidden_content`` carries internal context (for example the confirmed
    intent payload) that is persisted but never rendered in the UI.
    """

    role: ChatRole
    content: str
    hidden_content: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)
    message_id: str = field(default_factory=new_message_id)

    def as_prompt_message(self) -> Dict[str, str]:
        """Return the role/content pair sent to the model."""

        return {"role": self.role, "content": self.content}

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the message for persistence."""

        payload: Dict[str, Any] = {
            "id": self.message_id,
            "role": self.role,
            "content": self.content,
            "timestamp": self.created_at.isoformat(),
        }
        if self.hidden_content:
            payload["hidden_content"] = self.hidden_content
        return payload


@dataclass(slots=True)
class Session:
    """A chat session for one (project, endpoint) pair, owned by the host application."""

    session_id: str
    subject_id: str
    endpoint_id: str
    model: str = ""
    messages: list[ChatMessage] = field(default_factory=list)
    created_at: datetime = field(default_factory=_utcnow)

    def append(self, message: ChatMessage) -> None:
        self.messages.append(message)


__all__ = ["ChatRole", "ChatMessage", "Session", "new_message_id", "new_session_id"]
