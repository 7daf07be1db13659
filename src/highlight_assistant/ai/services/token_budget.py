"""Token budget estimation with a pluggable counting strategy."""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from ..ai_types import TokenCounterProtocol
from ..client import ApproxCharCounter
from ..utils import tokens


class TokenBudgetEstimator:
    """Approximates token costs of text and chat messages and exposes model limits.

    The default counter is the ~4 characters per token heuristic; pass any
    :class:`TokenCounterProtocol` (for example ``TiktokenCounter``) to swap in
    a real tokenizer without touching the window-building algorithm.
    """

    def __init__(
        self,
        counter: TokenCounterProtocol | None = None,
        *,
        model_limits: Mapping[str, int] | None = None,
        message_overhead: int = tokens.MESSAGE_OVERHEAD,
    ) -> None:
        self._counter = counter or ApproxCharCounter()
        self._limits = dict(tokens.MODEL_CONTEXT_LIMITS if model_limits is None else model_limits)
        self._limits.setdefault("default", tokens.DEFAULT_MODEL_LIMIT)
        self._message_overhead = max(0, int(message_overhead))

    @property
    def counter(self) -> TokenCounterProtocol:
        return self._counter

    @property
    def message_overhead(self) -> int:
        return self._message_overhead

    def estimate(self, text: str) -> int:
        if not text:
            return 0
        return self._counter.count(text)

    def estimate_message(self, role: str, content: str) -> int:
        return self.estimate(content) + self._message_overhead

    def estimate_messages(self, messages: Iterable[Mapping[str, Any]]) -> int:
        total = 0
        for message in messages:
            total += self.estimate_message(str(message.get("role") or ""), str(message.get("content") or ""))
        return total

    def limit_for(self, model: str | None) -> int:
        return tokens.get_model_limit(model, self._limits)

    def optimal_history_limit(self, model: str | None) -> int:
        return tokens.get_optimal_history_limit(model, self._limits)


__all__ = ["TokenBudgetEstimator"]
