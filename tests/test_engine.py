"""End-to-end tests for the chat engine with scripted model replies."""

from __future__ import annotations

import json

import pytest

from highlight_assistant.ai.errors import TransportError
from highlight_assistant.ai.orchestration.context_builders import GenericContextBuilder
from highlight_assistant.ai.orchestration.engine import HighlightChatEngine
from highlight_assistant.ai.orchestration.flow import Phase, SUMMARY_KEY
from highlight_assistant.ai.orchestration.registry import (
    HIGHLIGHT_ORDERING,
    HIGHLIGHT_SUGGESTIONS,
    EndpointConfig,
    EndpointRegistry,
    build_default_registry,
)
from highlight_assistant.ai.orchestration.types import ChatRequest
from highlight_assistant.ai.tools.highlight_tools import build_highlight_tools
from highlight_assistant.ai.tools.highlights import CachedSuggestion, HighlightSource
from highlight_assistant.chat.history import InMemoryHistoryStore
from highlight_assistant.services.progress import InMemoryProgressSink
from highlight_assistant.services.settings import Settings

from tests.helpers import (
    FakeChatClient,
    RecordingApply,
    StaticHighlightProvider,
    execution_reply,
    summary_reply,
    tool_call_response,
)

TOOLS_CHAT = "tools_chat"


def _engine(
    highlights: StaticHighlightProvider,
    client: FakeChatClient,
    *,
    registry: EndpointRegistry | None = None,
    history: InMemoryHistoryStore | None = None,
    apply: RecordingApply | None = None,
    sink: InMemoryProgressSink | None = None,
    api_key: str | None = "sk-test",
) -> HighlightChatEngine:
    return HighlightChatEngine(
        registry or build_default_registry(highlights),
        client,
        highlights,
        history=history,
        api_key_provider=lambda: api_key,
        apply_callback=apply,
        progress_sink=sink,
    )


def _tools_registry(highlights: StaticHighlightProvider) -> EndpointRegistry:
    return EndpointRegistry(
        [
            EndpointConfig(
                endpoint_id=TOOLS_CHAT,
                name="Tool Chat",
                context_builder=GenericContextBuilder(highlights),
                system_prompt="You help with highlights.",
                tools=build_highlight_tools(highlights),
            )
        ]
    )


def _request(message: str, endpoint_id: str = HIGHLIGHT_ORDERING, **kwargs: object) -> ChatRequest:
    return ChatRequest(subject_id="p1", endpoint_id=endpoint_id, message=message, session_id="s1", **kwargs)


# ----------------------------------------------------------------------
# Action endpoints
# ----------------------------------------------------------------------
class TestActionFlow:
    @pytest.mark.asyncio
    async def test_clarify_then_confirm_then_execute(self, highlights: StaticHighlightProvider) -> None:
        client = FakeChatClient(
            [
                "Would you like to start from the current order or start fresh?",
                summary_reply("reorder"),
                execution_reply(["h3", "h1", "h2"]),
            ]
        )
        history = InMemoryHistoryStore()
        apply = RecordingApply()
        sink = InMemoryProgressSink()
        engine = _engine(highlights, client, history=history, apply=apply, sink=sink)

        first = await engine.handle_message(_request("Reorder my highlights for engagement"))
        assert first.success
        assert not first.has_actions
        assert first.message.startswith("Would you like")
        assert apply.calls == []

        second = await engine.handle_message(_request("Start fresh, go ahead"))
        assert second.success
        assert second.has_actions
        assert second.action_summary == "Stronger opening"
        assert second.message.startswith("✅ **Success!**")
        assert apply.calls == [("p1", ["h3", "h1", "h2"])]
        assert client.call_count == 3

        # second conversation call saw the first exchange, then the new message
        contents = [message["content"] for message in client.calls[1]["messages"][1:]]
        assert contents == [
            "Reorder my highlights for engagement",
            "Would you like to start from the current order or start fresh?",
            "Start fresh, go ahead",
        ]

        flow = engine.flows.get("s1")
        assert flow is not None and flow.phase is Phase.CONVERSATION
        assert sink.steps()[-7:] == [
            "conversation",
            "summary_confirmed",
            "preparing",
            "processing",
            "parsing",
            "applying",
            "completed",
        ]

        stored = history.messages("s1")
        assert [message.role for message in stored] == ["user", "assistant", "user", "assistant"]
        assert stored[1].hidden_content is None
        assert json.loads(stored[3].hidden_content or "{}")[SUMMARY_KEY]["intent"] == "reorder"

    @pytest.mark.asyncio
    async def test_invalid_execution_reports_failure(self, highlights: StaticHighlightProvider) -> None:
        client = FakeChatClient([summary_reply("reorder"), execution_reply(["h1", "h2"])])
        apply = RecordingApply()
        engine = _engine(highlights, client, apply=apply)

        response = await engine.handle_message(_request("Yes, reorder now"))

        assert not response.success
        assert not response.has_actions
        assert "missing h3" in (response.error or "")
        assert response.message == "The AI's proposed order didn't include every highlight exactly once, so nothing was changed."
        assert apply.calls == []
        assert engine.flows.get("s1").phase is Phase.CONVERSATION

    @pytest.mark.asyncio
    async def test_analyze_has_no_actions(self, highlights: StaticHighlightProvider) -> None:
        client = FakeChatClient(
            [summary_reply("analyze"), json.dumps({"success": True, "newOrder": [], "reasoning": "Strong middle"})]
        )
        apply = RecordingApply()
        engine = _engine(highlights, client, apply=apply)

        response = await engine.handle_message(_request("Just analyze"))

        assert response.success
        assert not response.has_actions
        assert "Analysis Complete" in response.message
        assert apply.calls == []

    @pytest.mark.asyncio
    async def test_missing_key_makes_no_calls(self, highlights: StaticHighlightProvider) -> None:
        client = FakeChatClient()
        engine = _engine(highlights, client, api_key="")

        response = await engine.handle_message(_request("Reorder please"))

        assert not response.success
        assert response.error == "OpenRouter API key not configured"
        assert client.call_count == 0

    @pytest.mark.asyncio
    async def test_transport_failure_is_reported(self, highlights: StaticHighlightProvider) -> None:
        client = FakeChatClient([TransportError(message="AI API call failed: timeout", timed_out=True)])
        history = InMemoryHistoryStore()
        engine = _engine(highlights, client, history=history)

        response = await engine.handle_message(_request("Hello"))

        assert not response.success
        assert response.message == "The AI service took too long to respond. Please try again."
        assert [message.role for message in history.messages("s1")] == ["user"]


# ----------------------------------------------------------------------
# Request validation
# ----------------------------------------------------------------------
class TestRequestValidation:
    @pytest.mark.asyncio
    async def test_subject_is_required(self, highlights: StaticHighlightProvider) -> None:
        client = FakeChatClient()
        response = await _engine(highlights, client).handle_message(
            ChatRequest(subject_id="", endpoint_id=HIGHLIGHT_ORDERING, message="hi")
        )
        assert not response.success
        assert response.error == "Project ID is required"
        assert response.session_id.startswith("session_")
        assert client.call_count == 0

    @pytest.mark.asyncio
    async def test_unknown_endpoint(self, highlights: StaticHighlightProvider) -> None:
        response = await _engine(highlights, FakeChatClient()).handle_message(_request("hi", endpoint_id="nope"))
        assert response.error == "Endpoint not found: nope"


# ----------------------------------------------------------------------
# Plain endpoints
# ----------------------------------------------------------------------
class TestPlainFlow:
    @pytest.mark.asyncio
    async def test_plain_reply(self, highlights: StaticHighlightProvider) -> None:
        client = FakeChatClient(["Open with the bug reveal."])
        response = await _engine(highlights, client).handle_message(_request("Ideas?", HIGHLIGHT_SUGGESTIONS))

        assert response.success
        assert response.message == "Open with the bug reveal."
        assert response.model == "anthropic/claude-sonnet-4"
        assert client.calls[0]["messages"][0]["content"].startswith("You are an expert at identifying compelling moments")

    @pytest.mark.asyncio
    async def test_request_model_override(self, highlights: StaticHighlightProvider) -> None:
        client = FakeChatClient(["ok"])
        await _engine(highlights, client).handle_message(_request("Ideas?", HIGHLIGHT_SUGGESTIONS, model="openai/gpt-4o"))
        assert client.calls[0]["model"] == "openai/gpt-4o"

    @pytest.mark.asyncio
    async def test_tool_call_is_applied(self, highlights: StaticHighlightProvider) -> None:
        client = FakeChatClient([tool_call_response("reorder_highlights", {"new_order": ["h2", "h1", "h3"], "reason": "hook"})])
        apply = RecordingApply()
        engine = _engine(highlights, client, registry=_tools_registry(highlights), apply=apply)

        response = await engine.handle_message(_request("Move the fix first", TOOLS_CHAT))

        assert response.success
        assert response.has_actions
        assert apply.calls == [("p1", ["h2", "h1", "h3"])]
        result = response.function_results[0]
        assert result.message == "Function executed and order applied successfully"
        assert result.result["message"] == "Highlight order prepared (Applied to database)"
        assert response.message.startswith("✅ **Actions Completed:**")
        assert "*Reasoning:* hook" in response.message

    @pytest.mark.asyncio
    async def test_tool_apply_failure(self, highlights: StaticHighlightProvider) -> None:
        client = FakeChatClient([tool_call_response("reset_to_original", content="Resetting now.")])
        apply = RecordingApply(error=RuntimeError("locked"))
        engine = _engine(highlights, client, registry=_tools_registry(highlights), apply=apply)

        response = await engine.handle_message(_request("Reset", TOOLS_CHAT))

        assert response.success
        assert not response.has_actions
        assert response.message == "Resetting now."
        assert response.function_results[0].success is False
        assert response.function_results[0].error == "Failed to apply order: locked"

    @pytest.mark.asyncio
    async def test_tool_order_with_duplicates_is_not_applied(self, highlights: StaticHighlightProvider) -> None:
        client = FakeChatClient([tool_call_response("reorder_highlights", {"new_order": ["h1", "h1"]})])
        apply = RecordingApply()
        engine = _engine(highlights, client, registry=_tools_registry(highlights), apply=apply)

        response = await engine.handle_message(_request("Lead with the welcome twice", TOOLS_CHAT))

        assert apply.calls == []
        assert not response.has_actions
        result = response.function_results[0]
        assert result.success is False
        assert result.error_code == "validation_error"
        assert result.error == "Proposed order is invalid: missing h2, h3; duplicated h1"
        assert "(failed: Proposed order is invalid" in response.message

    @pytest.mark.asyncio
    async def test_stale_cached_suggestion_is_not_applied(self, sources: list[HighlightSource]) -> None:
        provider = StaticHighlightProvider(sources, suggestion=CachedSuggestion(order=["h3", "h1", "h9"]))
        client = FakeChatClient([tool_call_response("apply_ai_suggestion", content="Applying the saved plan.")])
        apply = RecordingApply()
        engine = _engine(provider, client, registry=_tools_registry(provider), apply=apply)

        response = await engine.handle_message(_request("Use the saved suggestion", TOOLS_CHAT))

        assert apply.calls == []
        assert response.message == "Applying the saved plan."
        assert response.function_results[0].error == "Proposed order is invalid: missing h2; unknown h9"

    @pytest.mark.asyncio
    async def test_unknown_tool_call_is_reported(self, highlights: StaticHighlightProvider) -> None:
        client = FakeChatClient([tool_call_response("drop_table", {})])
        engine = _engine(highlights, client, registry=_tools_registry(highlights), apply=RecordingApply())

        response = await engine.handle_message(_request("Do it", TOOLS_CHAT))

        assert response.function_results[0].error_code == "tool_not_found"
        assert "(failed:" in response.message

    @pytest.mark.asyncio
    async def test_empty_reply(self, highlights: StaticHighlightProvider) -> None:
        client = FakeChatClient([""])
        response = await _engine(highlights, client).handle_message(_request("Ideas?", HIGHLIGHT_SUGGESTIONS))

        assert not response.success
        assert response.error == "I couldn't generate a proper response. Please try again."


# ----------------------------------------------------------------------
# Lifecycle
# ----------------------------------------------------------------------
class TestLifecycle:
    @pytest.mark.asyncio
    async def test_clear_history(self, highlights: StaticHighlightProvider) -> None:
        history = InMemoryHistoryStore()
        engine = _engine(highlights, FakeChatClient(["Hi there"]), history=history)

        await engine.handle_message(_request("Hello"))
        assert history.messages("s1")

        await engine.clear_history("s1")
        assert history.messages("s1") == []
        assert engine.flows.get("s1") is None

    @pytest.mark.asyncio
    async def test_session_is_reused_without_session_id(self, highlights: StaticHighlightProvider) -> None:
        history = InMemoryHistoryStore()
        client = FakeChatClient(["First idea", "Second idea"])
        engine = _engine(highlights, client, history=history)

        first = await engine.handle_message(ChatRequest(subject_id="p1", endpoint_id=HIGHLIGHT_SUGGESTIONS, message="Ideas?"))
        second = await engine.handle_message(ChatRequest(subject_id="p1", endpoint_id=HIGHLIGHT_SUGGESTIONS, message="More?"))

        assert first.session_id.startswith("session_")
        assert second.session_id == first.session_id
        assert [message["role"] for message in client.calls[1]["messages"]] == ["system", "user", "assistant", "user"]
        assert client.calls[1]["messages"][2]["content"] == "First idea"

    @pytest.mark.asyncio
    async def test_sessions_are_keyed_by_project_and_endpoint(self, highlights: StaticHighlightProvider) -> None:
        engine = _engine(highlights, FakeChatClient(["a", "b", "c", "d"]))

        base = await engine.handle_message(ChatRequest(subject_id="p1", endpoint_id=HIGHLIGHT_SUGGESTIONS, message="x"))
        other_project = await engine.handle_message(
            ChatRequest(subject_id="p2", endpoint_id=HIGHLIGHT_SUGGESTIONS, message="x")
        )
        other_endpoint = await engine.handle_message(ChatRequest(subject_id="p1", endpoint_id=HIGHLIGHT_ORDERING, message="x"))
        explicit = await engine.handle_message(_request("x", HIGHLIGHT_SUGGESTIONS))

        assert len({base.session_id, other_project.session_id, other_endpoint.session_id}) == 3
        assert explicit.session_id == "s1"

    @pytest.mark.asyncio
    async def test_cleared_session_is_not_reused(self, highlights: StaticHighlightProvider) -> None:
        engine = _engine(highlights, FakeChatClient(["a", "b"]))
        request = ChatRequest(subject_id="p1", endpoint_id=HIGHLIGHT_SUGGESTIONS, message="x")

        first = await engine.handle_message(request)
        await engine.clear_history(first.session_id)
        second = await engine.handle_message(request)

        assert second.session_id != first.session_id

    @pytest.mark.asyncio
    async def test_from_settings(self, highlights: StaticHighlightProvider) -> None:
        settings = Settings(api_key="sk-settings", model="openai/gpt-4o", execution_temperature=0.1)
        client = FakeChatClient([summary_reply("reorder"), execution_reply(["h1", "h2", "h3"])])
        apply = RecordingApply()
        engine = HighlightChatEngine.from_settings(settings, highlights, client=client, apply_callback=apply)

        response = await engine.handle_message(_request("Go"))

        assert response.success
        assert engine.execution_agent.model == "openai/gpt-4o"
        assert response.model == "openai/gpt-4o"
        execution_call = client.calls[1]
        assert execution_call["api_key"] == "sk-settings"
        assert execution_call["temperature"] == 0.1
        assert apply.calls

    @pytest.mark.asyncio
    async def test_response_serialization(self, highlights: StaticHighlightProvider) -> None:
        response = await _engine(highlights, FakeChatClient(["Hello"])).handle_message(_request("Hi"))
        data = response.to_dict()
        assert data["sessionId"] == "s1"
        assert data["success"] is True
        assert data["hasActions"] is False
        assert data["messageId"].startswith("msg_")
