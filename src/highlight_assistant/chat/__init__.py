"""Chat data models."""

from .history import InMemoryHistoryStore
from .message_model import ChatMessage, ChatRole, Session, new_message_id, new_session_id

__all__ = ["ChatMessage", "ChatRole", "Session", "InMemoryHistoryStore", "new_message_id", "new_session_id"]
