"""Token-budgeted context window assembly for chat turns."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from .summarizer import summarize_history, summary_message
from .token_budget import TokenBudgetEstimator

LOGGER = logging.getLogger(__name__)

_HISTORY_ROLES = frozenset({"user", "assistant", "system"})


@dataclass(slots=True)
class ContextWindow:
    """Bounded, ordered message list sent to the model for one turn.

    Attributes:
        system_prompt: The system prompt placed first.
        messages: Role/content dictionaries in send order.
        total_tokens: Estimated cost of ``messages``.
        budget: ``limit(model) - reserve`` at build time.
        trimmed_messages: Number of older history messages left out.
        summary: Recap of the trimmed messages, when one was produced.
        summary_included: Whether the recap made it into ``messages``.
    """

    system_prompt: str
    messages: list[dict[str, str]] = field(default_factory=list)
    total_tokens: int = 0
    budget: int = 0
    trimmed_messages: int = 0
    summary: str | None = None
    summary_included: bool = False

    @property
    def within_budget(self) -> bool:
        return self.total_tokens <= self.budget

    def as_payload(self) -> dict[str, object]:
        """Return a telemetry-friendly dictionary for this window."""

        return {
            "message_count": len(self.messages),
            "total_tokens": int(self.total_tokens),
            "budget": int(self.budget),
            "trimmed_messages": int(self.trimmed_messages),
            "summary_included": bool(self.summary_included),
        }


class ContextWindowBuilder:
    """Fits system prompt, recent history and the new user message into a model budget.

    History is included newest-first as a sliding window and stops at the
    first message that would overflow. Older messages are replaced by a
    synthetic summary message when the recap itself fits in the leftover
    slack; otherwise they are dropped and only counted.
    """

    def __init__(self, estimator: TokenBudgetEstimator | None = None) -> None:
        self._estimator = estimator or TokenBudgetEstimator()

    @property
    def estimator(self) -> TokenBudgetEstimator:
        return self._estimator

    def build(
        self,
        model: str | None,
        system_prompt: str,
        history: Sequence[Any] | None,
        new_user_message: str,
        reserve_tokens: int = 0,
    ) -> ContextWindow:
        estimator = self._estimator
        budget = estimator.limit_for(model) - max(0, int(reserve_tokens))
        system_tokens = estimator.estimate_message("system", system_prompt)
        user_tokens = estimator.estimate_message("user", new_user_message)
        available = budget - system_tokens - user_tokens
        if available < 0:
            LOGGER.warning(
                "System prompt and user message alone exceed the budget for %s (%s > %s)",
                model,
                system_tokens + user_tokens,
                budget,
            )

        candidates = self._normalize_history(history)
        included, history_tokens = self._select_recent(candidates, available)
        trimmed = candidates[: len(candidates) - len(included)]

        summary: str | None = None
        summary_msg: dict[str, str] | None = None
        summary_tokens = 0
        if trimmed:
            summary = summarize_history(trimmed)
            candidate = summary_message(summary)
            cost = estimator.estimate_message(candidate["role"], candidate["content"])
            if cost <= available - history_tokens:
                summary_msg = candidate
                summary_tokens = cost

        messages: list[dict[str, str]] = [{"role": "system", "content": system_prompt}]
        if summary_msg is not None:
            messages.append(summary_msg)
        messages.extend(included)
        messages.append({"role": "user", "content": new_user_message})

        return ContextWindow(
            system_prompt=system_prompt,
            messages=messages,
            total_tokens=system_tokens + summary_tokens + history_tokens + user_tokens,
            budget=budget,
            trimmed_messages=len(trimmed),
            summary=summary,
            summary_included=summary_msg is not None,
        )

    def _select_recent(
        self, candidates: Sequence[dict[str, str]], available: int
    ) -> tuple[list[dict[str, str]], int]:
        total = 0
        start = len(candidates)
        for index in range(len(candidates) - 1, -1, -1):
            message = candidates[index]
            cost = self._estimator.estimate_message(message["role"], message["content"])
            if total + cost > available:
                break
            total += cost
            start = index
        return list(candidates[start:]), total

    @staticmethod
    def _normalize_history(history: Sequence[Any] | None) -> list[dict[str, str]]:
        normalized: list[dict[str, str]] = []
        for item in history or ():
            if isinstance(item, Mapping):
                role = str(item.get("role") or "")
                content = str(item.get("content") or "")
            else:
                role = str(getattr(item, "role", "") or "")
                content = str(getattr(item, "content", "") or "")
            if role not in _HISTORY_ROLES:
                continue
            normalized.append({"role": role, "content": content})
        return normalized


def log_context_usage(model: str | None, window: ContextWindow, *, limit: int) -> None:
    """Log how much of the model's context window a turn consumes."""

    usage = (window.total_tokens / limit * 100) if limit > 0 else 0.0
    LOGGER.info(
        "Context usage for %s: %d/%d tokens (%.1f%%), trimmed %d messages",
        model,
        window.total_tokens,
        limit,
        usage,
        window.trimmed_messages,
    )
    if window.trimmed_messages and window.summary:
        LOGGER.debug("Conversation summary: %s", window.summary)


__all__ = ["ContextWindow", "ContextWindowBuilder", "log_context_usage"]
