"""Shared typing contracts for AI infrastructure."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol, Sequence


class TokenCounterProtocol(Protocol):
    """Protocol describing tokenizer implementations."""

    model_name: str | None

    def count(self, text: str) -> int:
        """Return the precise token count for *text*."""
        ...

    def estimate(self, text: str) -> int:
        """Return a deterministic fallback estimate when precise counts fail."""
        ...


@dataclass(slots=True, frozen=True)
class ToolInvocation:
    """Provider-neutral tool call emitted by the model."""

    name: str
    arguments: str = ""
    call_id: str | None = None

    def as_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"name": self.name, "arguments": self.arguments}
        if self.call_id:
            payload["id"] = self.call_id
        return payload


@dataclass(slots=True)
class AIResponse:
    """Minimal normalized chat completion: plain text and/or tool invocations."""

    content: str | None = None
    tool_calls: list[ToolInvocation] = field(default_factory=list)
    model: str | None = None
    finish_reason: str | None = None
    usage: dict[str, int] = field(default_factory=dict)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


class ChatCompletionClient(Protocol):
    """Transport used by the agents to reach an OpenAI-compatible chat endpoint."""

    async def complete(
        self,
        messages: Sequence[Mapping[str, Any]],
        *,
        api_key: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        tools: Sequence[Mapping[str, Any]] | None = None,
        tool_choice: str | None = None,
    ) -> AIResponse:
        """Send ``messages`` and return the normalized reply."""
        ...


__all__ = ["TokenCounterProtocol", "ToolInvocation", "AIResponse", "ChatCompletionClient"]
