"""Deterministic summarizer for chat history trimmed out of the context window."""

from __future__ import annotations

from typing import Any, Mapping, Sequence

_MESSAGE_CHAR_CAP = 200
_INTENT_MARKER = "conversation_summary"
SUMMARY_PREFIX = "Previous conversation summary: "


def _role_and_content(message: Any) -> tuple[str, str]:
    if isinstance(message, Mapping):
        return str(message.get("role") or ""), str(message.get("content") or "")
    return str(getattr(message, "role", "") or ""), str(getattr(message, "content", "") or "")


def _truncate(text: str, *, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return f"{text[:max_chars]}..."


def summarize_history(messages: Sequence[Any], *, max_chars: int = _MESSAGE_CHAR_CAP) -> str:
    """Condense ``messages`` into a short plain-text recap.

    User turns are listed as requests and assistant turns as responses, each
    capped at ``max_chars`` characters. Assistant replies carrying an intent
    payload are skipped since they are machine-readable JSON.
    """

    if not messages:
        return ""

    user_requests: list[str] = []
    assistant_responses: list[str] = []
    for message in messages:
        role, content = _role_and_content(message)
        content = content.strip()
        if not content:
            continue
        content = _truncate(content, max_chars=max_chars)
        if role == "user":
            user_requests.append(content)
        elif role == "assistant" and _INTENT_MARKER not in content:
            assistant_responses.append(content)

    parts: list[str] = []
    if user_requests:
        parts.append(f"User requests: {'; '.join(user_requests)}")
    if assistant_responses:
        parts.append(f"Assistant responses: {'; '.join(assistant_responses)}")
    if not parts:
        return f"Previous conversation with {len(messages)} messages"
    return ". ".join(parts)


def summary_message(summary: str) -> dict[str, str]:
    """Wrap ``summary`` as the synthetic system message placed after the system prompt."""

    return {"role": "system", "content": f"{SUMMARY_PREFIX}{summary}"}


__all__ = ["SUMMARY_PREFIX", "summarize_history", "summary_message"]
