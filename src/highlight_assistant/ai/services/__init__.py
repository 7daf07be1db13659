"""AI service helpers (token budgeting and context windows)."""

from .context_window import ContextWindow, ContextWindowBuilder, log_context_usage
from .summarizer import SUMMARY_PREFIX, summarize_history, summary_message
from .token_budget import TokenBudgetEstimator

__all__ = [
    "TokenBudgetEstimator",
    "ContextWindow",
    "ContextWindowBuilder",
    "log_context_usage",
    "SUMMARY_PREFIX",
    "summarize_history",
    "summary_message",
]
