"""Tests for context window assembly and history summaries."""

from __future__ import annotations

import logging
from types import SimpleNamespace

import pytest

from highlight_assistant.ai.services.context_window import ContextWindowBuilder, log_context_usage
from highlight_assistant.ai.services.summarizer import SUMMARY_PREFIX, summarize_history, summary_message
from highlight_assistant.ai.services.token_budget import TokenBudgetEstimator
from highlight_assistant.chat.message_model import ChatMessage


def _builder(limit: int) -> ContextWindowBuilder:
    return ContextWindowBuilder(TokenBudgetEstimator(model_limits={"tiny": limit}))


# ----------------------------------------------------------------------
# Budgeting
# ----------------------------------------------------------------------
class TestContextWindowBuilder:
    def test_everything_fits(self) -> None:
        history = [
            {"role": "user", "content": "a" * 40},
            {"role": "assistant", "content": "b" * 40},
            {"role": "user", "content": "c" * 40},
        ]
        window = _builder(100).build("tiny", "s" * 160, history, "u" * 20, reserve_tokens=0)

        assert window.trimmed_messages == 0
        assert window.summary is None
        assert [message["content"] for message in window.messages] == ["s" * 160, "a" * 40, "b" * 40, "c" * 40, "u" * 20]
        assert window.total_tokens == 100
        assert window.within_budget

    def test_older_messages_are_summarized_when_the_recap_fits(self) -> None:
        history = [
            {"role": "user", "content": "x" * 800},
            {"role": "assistant", "content": "Sure thing"},
        ]
        window = _builder(100).build("tiny", "Be brief.", history, "Go")

        assert window.trimmed_messages == 1
        assert window.summary_included
        assert window.messages[0] == {"role": "system", "content": "Be brief."}
        assert window.messages[1]["role"] == "system"
        assert window.messages[1]["content"].startswith(SUMMARY_PREFIX)
        assert window.messages[2] == {"role": "assistant", "content": "Sure thing"}
        assert window.messages[-1] == {"role": "user", "content": "Go"}
        assert window.total_tokens == 90
        assert window.total_tokens <= window.budget

    def test_summary_is_dropped_when_it_does_not_fit(self) -> None:
        history = [
            {"role": "user", "content": "x" * 800},
            {"role": "assistant", "content": "Sure thing"},
        ]
        window = _builder(80).build("tiny", "Be brief.", history, "Go")

        assert window.trimmed_messages == 1
        assert window.summary
        assert not window.summary_included
        assert [message["role"] for message in window.messages] == ["system", "assistant", "user"]
        assert window.total_tokens <= window.budget

    def test_sliding_window_stops_at_first_overflow(self) -> None:
        history = [
            {"role": "user", "content": "short"},
            {"role": "assistant", "content": "y" * 400},
            {"role": "user", "content": "recent"},
        ]
        window = _builder(60).build("tiny", "sys", history, "next")

        contents = [message["content"] for message in window.messages]
        assert "recent" in contents
        assert "short" not in contents
        assert window.trimmed_messages == 2

    def test_empty_history(self) -> None:
        window = _builder(100).build("tiny", "sys", [], "hello")
        assert window.messages == [{"role": "system", "content": "sys"}, {"role": "user", "content": "hello"}]
        assert window.trimmed_messages == 0

    def test_reserve_reduces_budget(self) -> None:
        window = _builder(1_000).build("tiny", "sys", None, "hello", reserve_tokens=250)
        assert window.budget == 750

    def test_oversized_prompt_never_raises(self, caplog: pytest.LogCaptureFixture) -> None:
        history = [{"role": "user", "content": "earlier"}]
        with caplog.at_level(logging.WARNING):
            window = _builder(10).build("tiny", "s" * 400, history, "hello")
        assert [message["role"] for message in window.messages] == ["system", "user"]
        assert window.trimmed_messages == 1
        assert "exceed the budget" in caplog.text

    def test_unknown_roles_and_objects_are_normalized(self) -> None:
        history = [
            ChatMessage(role="user", content="first"),
            SimpleNamespace(role="tool", content="ignored"),
            {"role": "assistant", "content": "second"},
        ]
        window = _builder(1_000).build("tiny", "sys", history, "third")
        assert [message["content"] for message in window.messages] == ["sys", "first", "second", "third"]

    def test_payload_reports_usage(self) -> None:
        window = _builder(1_000).build("tiny", "sys", [], "hello")
        payload = window.as_payload()
        assert payload["message_count"] == 2
        assert payload["budget"] == 1_000
        assert payload["summary_included"] is False

    @pytest.mark.parametrize("reserve", [0, 15])
    @pytest.mark.parametrize("history_size", [0, 1, 4, 12, 40])
    @pytest.mark.parametrize("limit", [30, 64, 100, 257, 1_000])
    def test_budget_holds_across_sizes(self, limit: int, history_size: int, reserve: int) -> None:
        history = [
            {"role": "user" if index % 2 == 0 else "assistant", "content": f"turn {index} " + "w" * (index * 13 % 90)}
            for index in range(history_size)
        ]
        builder = _builder(limit)
        estimator = builder.estimator

        window = builder.build("tiny", "You reorder highlights.", history, "Put the reveal first", reserve_tokens=reserve)

        fixed = estimator.estimate_message("system", "You reorder highlights.")
        fixed += estimator.estimate_message("user", "Put the reveal first")
        if fixed <= window.budget:
            assert window.total_tokens <= window.budget
        assert window.total_tokens == estimator.estimate_messages(window.messages)
        assert window.messages[0]["content"] == "You reorder highlights."
        assert window.messages[-1] == {"role": "user", "content": "Put the reveal first"}

        body = window.messages[1:-1]
        if window.summary_included:
            assert body[0]["content"].startswith(SUMMARY_PREFIX)
            body = body[1:]
        assert body == history[len(history) - len(body) :]
        assert window.trimmed_messages + len(body) == history_size


# ----------------------------------------------------------------------
# Summaries
# ----------------------------------------------------------------------
class TestSummarizeHistory:
    def test_requests_and_responses(self) -> None:
        summary = summarize_history(
            [
                {"role": "user", "content": " reorder please "},
                {"role": "assistant", "content": "Start fresh?"},
                {"role": "user", "content": "yes"},
            ]
        )
        assert summary == "User requests: reorder please; yes. Assistant responses: Start fresh?"

    def test_long_messages_are_truncated(self) -> None:
        summary = summarize_history([{"role": "user", "content": "z" * 250}])
        assert summary == f"User requests: {'z' * 200}..."

    def test_intent_payloads_are_skipped(self) -> None:
        summary = summarize_history(
            [
                {"role": "user", "content": "go"},
                {"role": "assistant", "content": '{"conversation_summary": {"intent": "reorder"}}'},
            ]
        )
        assert summary == "User requests: go"

    def test_fallback_counts_messages(self) -> None:
        summary = summarize_history([{"role": "user", "content": "  "}, {"role": "system", "content": "note"}])
        assert summary == "Previous conversation with 2 messages"

    def test_empty(self) -> None:
        assert summarize_history([]) == ""

    def test_summary_message_shape(self) -> None:
        assert summary_message("recap") == {"role": "system", "content": "Previous conversation summary: recap"}


def test_log_context_usage(caplog: pytest.LogCaptureFixture) -> None:
    window = _builder(1_000).build("tiny", "sys", [], "hello")
    with caplog.at_level(logging.INFO, logger="highlight_assistant.ai.services.context_window"):
        log_context_usage("tiny", window, limit=1_000)
    assert "Context usage for tiny" in caplog.text
