"""Token estimation utilities for AI operations."""

from __future__ import annotations

import math
from typing import Any, Mapping

# Average characters per token for English prose (GPT-style tokenization)
CHARS_PER_TOKEN = 4.0

# Role/formatting cost added to every chat message
MESSAGE_OVERHEAD = 5

DEFAULT_MODEL_LIMIT = 32_000

MODEL_CONTEXT_LIMITS: Mapping[str, int] = {
    "anthropic/claude-sonnet-4": 200_000,
    "anthropic/claude-3.5-sonnet": 200_000,
    "anthropic/claude-3-haiku": 200_000,
    "openai/gpt-4o": 128_000,
    "openai/gpt-4o-mini": 128_000,
    "openai/gpt-4-turbo": 128_000,
}

# History retrieval sizing
HISTORY_SHARE_OF_LIMIT = 0.65
AVERAGE_TOKENS_PER_MESSAGE = 50
MIN_HISTORY_MESSAGES = 10
MAX_HISTORY_MESSAGES = 200


def estimate_tokens(text: str) -> int:
    """Estimate the number of tokens in a text string.

    Uses a simple character-based heuristic of ~4 characters per token,
    rounded up. The result is an upper-bound approximation, not an exact
    tokenizer count.

    Args:
        text: The text to estimate tokens for.

    Returns:
        Estimated token count (0 for empty text).
    """
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def estimate_message_tokens(role: str, content: str) -> int:
    """Estimate a chat message: content tokens plus the fixed per-message overhead."""
    return estimate_tokens(content) + MESSAGE_OVERHEAD


def estimate_messages_tokens(messages: Any) -> int:
    """Sum :func:`estimate_message_tokens` over role/content mappings."""
    total = 0
    for message in messages or ():
        role = str(message.get("role") or "")
        content = message.get("content") or ""
        total += estimate_message_tokens(role, str(content))
    return total


def get_model_limit(model: str | None, limits: Mapping[str, int] | None = None) -> int:
    """Return the context window size for ``model``, falling back to a conservative default."""
    table = MODEL_CONTEXT_LIMITS if limits is None else limits
    key = (model or "").strip()
    if key in table:
        return int(table[key])
    return int(table.get("default", DEFAULT_MODEL_LIMIT))


def get_optimal_history_limit(model: str | None, limits: Mapping[str, int] | None = None) -> int:
    """Return how many prior messages are worth fetching for ``model``."""
    available = int(get_model_limit(model, limits) * HISTORY_SHARE_OF_LIMIT)
    optimal = available // AVERAGE_TOKENS_PER_MESSAGE
    return max(MIN_HISTORY_MESSAGES, min(optimal, MAX_HISTORY_MESSAGES))


__all__ = [
    "CHARS_PER_TOKEN",
    "MESSAGE_OVERHEAD",
    "DEFAULT_MODEL_LIMIT",
    "MODEL_CONTEXT_LIMITS",
    "estimate_tokens",
    "estimate_message_tokens",
    "estimate_messages_tokens",
    "get_model_limit",
    "get_optimal_history_limit",
]
