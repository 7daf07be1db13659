"""Shared test helpers and stub classes.

Import from here instead of duplicating these classes in individual test files.
"""

from __future__ import annotations

import json
from typing import Any, Iterable, Mapping, Sequence

from highlight_assistant.ai.ai_types import AIResponse, ToolInvocation
from highlight_assistant.ai.tools.highlights import CachedSuggestion, Highlight, HighlightSource, OrderItem


class FakeChatClient:
    """Scripted ``ChatCompletionClient``.

    Each reply is a string (returned as content), an :class:`AIResponse`, or an
    exception instance to raise. Every call is recorded in ``calls``.
    """

    def __init__(self, replies: Iterable[Any] = ()) -> None:
        self.replies = list(replies)
        self.calls: list[dict[str, Any]] = []

    async def complete(self, messages: Sequence[Mapping[str, Any]], **kwargs: Any) -> AIResponse:
        self.calls.append({"messages": [dict(message) for message in messages], **kwargs})
        if not self.replies:
            raise AssertionError("Unexpected completion call")
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, AIResponse):
            return reply
        return AIResponse(content=reply, model=kwargs.get("model"))

    @property
    def call_count(self) -> int:
        return len(self.calls)


class StaticHighlightProvider:
    """In-memory highlight provider with optional failure switches."""

    def __init__(
        self,
        sources: Sequence[HighlightSource],
        order: Sequence[OrderItem] | None = None,
        suggestion: CachedSuggestion | None = None,
        *,
        fail_highlights: bool = False,
        fail_order: bool = False,
    ) -> None:
        self.sources = list(sources)
        self.order = list(order) if order is not None else None
        self.suggestion = suggestion
        self.fail_highlights = fail_highlights
        self.fail_order = fail_order

    def get_highlights(self, subject_id: str) -> list[HighlightSource]:
        if self.fail_highlights:
            raise RuntimeError("database offline")
        return list(self.sources)

    def get_current_order(self, subject_id: str) -> list[OrderItem]:
        if self.fail_order:
            raise RuntimeError("order lookup failed")
        if self.order is not None:
            return list(self.order)
        return [highlight.id for source in self.sources for highlight in source.highlights]

    def get_cached_suggestion(self, subject_id: str) -> CachedSuggestion | None:
        return self.suggestion


class RecordingApply:
    """Apply-callback that records calls and can be told to fail."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[tuple[str, list[OrderItem]]] = []

    def __call__(self, subject_id: str, new_order: Sequence[OrderItem]) -> None:
        self.calls.append((subject_id, list(new_order)))
        if self.error is not None:
            raise self.error


def make_source(name: str, *pairs: tuple[str, str], duration: float = 0.0, file_path: str = "") -> HighlightSource:
    return HighlightSource(
        name=name,
        highlights=[Highlight(id=highlight_id, text=text) for highlight_id, text in pairs],
        duration=duration,
        file_path=file_path,
    )


def fenced(payload: Any) -> str:
    return f"```json\n{json.dumps(payload, indent=2)}\n```"


def summary_reply(
    intent: str = "reorder",
    *,
    confirmed: bool = True,
    use_current_order: bool = False,
    preamble: str = "Great, I'll get started.",
) -> str:
    summary = {
        "conversation_summary": {
            "intent": intent,
            "userWantsCurrentOrder": use_current_order,
            "optimizationGoals": ["engagement"],
            "specificRequests": ["strong hook"],
            "userContext": "Tutorial video",
            "confirmed": confirmed,
        }
    }
    return f"{preamble}\n\n{fenced(summary)}"


def execution_reply(
    new_order: Sequence[OrderItem],
    *,
    success: bool = True,
    reasoning: str = "Stronger opening",
    changes: Sequence[str] = ("Moved hook first",),
    section_count: int | None = None,
    error: str | None = None,
) -> str:
    payload: dict[str, Any] = {
        "success": success,
        "newOrder": list(new_order),
        "reasoning": reasoning,
        "changes": list(changes),
    }
    if section_count is not None:
        payload["sectionCount"] = section_count
    if error is not None:
        payload["error"] = error
    return json.dumps(payload)


def tool_call_response(name: str, arguments: Any = "", *, content: str | None = None) -> AIResponse:
    if not isinstance(arguments, str):
        arguments = json.dumps(arguments)
    return AIResponse(content=content, tool_calls=[ToolInvocation(name=name, arguments=arguments, call_id="call_1")])
