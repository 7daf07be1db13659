"""Request, response and collaborator types for chat turns.

Requests arrive from the host application, responses go back to it. The
collaborator protocols describe what the host injects: chat history, the
API key and the callback that persists a new highlight order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Mapping, Protocol, Sequence, Union

from ...chat.message_model import ChatMessage, Session
from ..tools.highlights import OrderItem
from ..tools.types import FunctionExecutionResult
from .intents import Intent

if TYPE_CHECKING:
    from ..agents.structured_output import StructuredExecutionOutput

__all__ = [
    "ChatRequest",
    "ChatResponse",
    "ExecutionResult",
    "HistoryProvider",
    "ApplyCallback",
    "ApiKeyProvider",
]


# -----------------------------------------------------------------------------
# Collaborators
# -----------------------------------------------------------------------------


class HistoryProvider(Protocol):
    """Read access to persisted chat history, oldest message first."""

    async def get_history(self, session: Session, limit: int) -> Sequence[ChatMessage]:
        ...


ApplyCallback = Callable[[str, Sequence[OrderItem]], Union[None, Awaitable[None]]]
"""``apply(subject_id, new_order)``; raising signals that nothing was saved."""

ApiKeyProvider = Callable[[], Union[str, None, Awaitable[Union[str, None]]]]


# -----------------------------------------------------------------------------
# Request / response
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class ChatRequest:
    """One inbound user message.

    Attributes:
        subject_id: Project the conversation is about.
        endpoint_id: Registry key of the assistant being addressed.
        message: The user's text.
        session_id: Existing session, or ``None`` to start a new one.
        model: Model override; defaults to the endpoint's model.
        context_data: Extra data from the UI, logged but not sent to the model.
    """

    subject_id: str
    endpoint_id: str
    message: str
    session_id: str | None = None
    model: str | None = None
    context_data: Mapping[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ChatResponse:
    session_id: str
    message_id: str
    message: str
    model: str = ""
    success: bool = True
    error: str | None = None
    has_actions: bool = False
    action_summary: str | None = None
    function_results: list[FunctionExecutionResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "sessionId": self.session_id,
            "messageId": self.message_id,
            "message": self.message,
            "model": self.model,
            "success": self.success,
            "hasActions": self.has_actions,
        }
        if self.error:
            data["error"] = self.error
        if self.action_summary:
            data["actionSummary"] = self.action_summary
        if self.function_results:
            data["functionResults"] = [result.to_dict() for result in self.function_results]
        return data


@dataclass(slots=True)
class ExecutionResult:
    """Outcome of one execution attempt.

    ``error_kind`` is one of the :class:`~highlight_assistant.ai.errors.ErrorKind`
    values when ``success`` is false. ``applied`` is true only when the
    apply-callback returned without raising.
    """

    success: bool
    summary: str = ""
    error: str | None = None
    error_kind: str | None = None
    intent: Intent | None = None
    output: "StructuredExecutionOutput | None" = None
    reasoning: str = ""
    applied: bool = False
    user_message: str = ""

    @property
    def display_message(self) -> str:
        if self.success:
            return self.summary
        return self.user_message or self.error or "Something went wrong"
