"""Chat engine: the single entry point the host application calls per user message.

The engine wires the endpoint registry, the per-session flow controller and
the two agents together. A turn on an action endpoint runs the conversation
agent and, as soon as the user has confirmed a plan, the execution agent in
the same turn. Other endpoints get a plain chat reply whose tool calls are
dispatched through the registry.

Every failure inside a turn is reported as ``success=False`` on the
returned :class:`ChatResponse`; :meth:`HighlightChatEngine.handle_message`
only raises for programming errors in the host's collaborators.
"""

from __future__ import annotations

import inspect
import json
import logging
from typing import TYPE_CHECKING, Any, Sequence

from ...chat.message_model import ChatMessage, ChatRole, Session, new_message_id, new_session_id
from ...services.progress import ProgressBroadcaster, ProgressSink
from ..agents.conversation import ConversationAgent
from ..agents.execution import ExecutionAgent, resolve_api_key
from ..agents.structured_output import check_order
from ..ai_types import ChatCompletionClient
from ..client import AIClient
from ..errors import AssistantError, ConfigurationError
from ..prompts import action_summary
from ..services.context_window import ContextWindowBuilder
from ..tools.errors import ToolError
from ..tools.highlights import HighlightProvider, iter_highlights
from ..tools.types import FunctionExecutionResult
from .flow import ConversationFlow, ConversationFlowController, Phase, SUMMARY_KEY
from .registry import EndpointConfig, EndpointRegistry, build_default_registry
from .types import ApiKeyProvider, ApplyCallback, ChatRequest, ChatResponse, HistoryProvider

if TYPE_CHECKING:
    from ...services.settings import Settings

LOGGER = logging.getLogger(__name__)

__all__ = ["HighlightChatEngine"]

_EMPTY_REPLY = "I couldn't generate a proper response. Please try again."
_UNEXPECTED_ERROR = "Something went wrong while processing your message. Please try again."


class HighlightChatEngine:
    """Routes chat turns to the conversation/execution flow or to a plain chat reply.

    Example:
        engine = HighlightChatEngine.from_settings(settings, highlights, apply_callback=save_order)
        response = await engine.handle_message(
            ChatRequest(subject_id="42", endpoint_id="highlight_ordering", message="Reorder for retention")
        )
    """

    def __init__(
        self,
        registry: EndpointRegistry,
        client: ChatCompletionClient,
        highlights: HighlightProvider,
        *,
        flows: ConversationFlowController | None = None,
        history: HistoryProvider | None = None,
        api_key_provider: ApiKeyProvider | None = None,
        apply_callback: ApplyCallback | None = None,
        progress_sink: ProgressSink | None = None,
        conversation_agent: ConversationAgent | None = None,
        execution_agent: ExecutionAgent | None = None,
    ) -> None:
        self._registry = registry
        self._client = client
        self._flows = flows or ConversationFlowController()
        self._history = history
        self._api_key_provider = api_key_provider
        self._apply_callback = apply_callback
        self._progress_sink = progress_sink
        self._conversation = conversation_agent or ConversationAgent(registry, client, history)
        self._execution = execution_agent or ExecutionAgent(client, highlights)
        self._highlights = highlights
        self._sessions: dict[str, Session] = {}
        # (subject_id, endpoint_id) -> most recent session id
        self._latest_sessions: dict[tuple[str, str], str] = {}

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        highlights: HighlightProvider,
        *,
        client: ChatCompletionClient | None = None,
        registry: EndpointRegistry | None = None,
        history: HistoryProvider | None = None,
        api_key_provider: ApiKeyProvider | None = None,
        apply_callback: ApplyCallback | None = None,
        progress_sink: ProgressSink | None = None,
        window_builder: ContextWindowBuilder | None = None,
    ) -> "HighlightChatEngine":
        """Build an engine from a :class:`~highlight_assistant.services.settings.Settings` instance."""

        client = client or AIClient(settings.client_settings())
        registry = registry or build_default_registry(highlights)
        if api_key_provider is None:
            api_key_provider = lambda: settings.api_key or None  # noqa: E731
        conversation = ConversationAgent(
            registry,
            client,
            history,
            window_builder=window_builder,
            temperature=settings.conversation_temperature,
            max_tokens=settings.conversation_max_tokens,
            reserve_tokens=settings.conversation_reserve_tokens,
        )
        execution = ExecutionAgent(
            client,
            highlights,
            model=settings.model,
            temperature=settings.execution_temperature,
            max_tokens=settings.execution_max_tokens,
        )
        return cls(
            registry,
            client,
            highlights,
            history=history,
            api_key_provider=api_key_provider,
            apply_callback=apply_callback,
            progress_sink=progress_sink,
            conversation_agent=conversation,
            execution_agent=execution,
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def registry(self) -> EndpointRegistry:
        return self._registry

    @property
    def flows(self) -> ConversationFlowController:
        return self._flows

    @property
    def conversation_agent(self) -> ConversationAgent:
        return self._conversation

    @property
    def execution_agent(self) -> ExecutionAgent:
        return self._execution

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------
    async def handle_message(self, request: ChatRequest) -> ChatResponse:
        """Process one user message and return the reply for the UI."""

        message_id = new_message_id()
        if not request.subject_id:
            return self._failure(request.session_id or new_session_id(), message_id, "Project ID is required")
        config = self._registry.get(request.endpoint_id)
        if config is None:
            return self._failure(
                request.session_id or new_session_id(), message_id, f"Endpoint not found: {request.endpoint_id}"
            )
        session_id = self._resolve_session_id(request)
        if request.context_data:
            LOGGER.debug("Context data for %s: %s", session_id, sorted(request.context_data))

        async with self._flows.session(session_id) as flow:
            session = self._session_for(session_id, request, config)
            try:
                api_key = await resolve_api_key(self._api_key_provider)
                if not api_key:
                    raise ConfigurationError()
                if config.requires_functions:
                    response = await self._action_turn(request, session, flow, message_id, api_key)
                else:
                    response = await self._plain_turn(request, session, message_id, api_key)
            except AssistantError as exc:
                LOGGER.warning("Turn failed for session %s: %s", session_id, exc)
                response = self._failure(session_id, message_id, exc.message, user_message=exc.user_message)
            except ToolError as exc:
                LOGGER.warning("Tool failure in session %s: %s", session_id, exc)
                response = self._failure(session_id, message_id, exc.message)
            except Exception:
                LOGGER.exception("Unexpected failure in session %s", session_id)
                response = self._failure(session_id, message_id, _UNEXPECTED_ERROR, user_message=_UNEXPECTED_ERROR)

            # History is read inside the turn, so the new message is stored afterwards.
            await self._record(session, "user", request.message)
            if response.success and response.message:
                await self._record(session, "assistant", response.message, hidden=flow.get_context(SUMMARY_KEY))
            return response

    async def clear_history(self, session_id: str) -> None:
        """Forget the session's flow and ask the history provider to drop its messages."""

        async with self._flows.lock_for(session_id):
            self._flows.clear(session_id)
            self._sessions.pop(session_id, None)
            for key in [key for key, value in self._latest_sessions.items() if value == session_id]:
                del self._latest_sessions[key]
        clear = getattr(self._history, "clear", None)
        if callable(clear):
            result = clear(session_id)
            if inspect.isawaitable(result):
                await result

    async def aclose(self) -> None:
        close = getattr(self._client, "aclose", None)
        if callable(close):
            result = close()
            if inspect.isawaitable(result):
                await result

    # ------------------------------------------------------------------
    # Action endpoints
    # ------------------------------------------------------------------
    async def _action_turn(
        self,
        request: ChatRequest,
        session: Session,
        flow: ConversationFlow,
        message_id: str,
        api_key: str,
    ) -> ChatResponse:
        progress = ProgressBroadcaster(self._progress_sink, request.subject_id, request.endpoint_id, session.session_id)
        if flow.phase is not Phase.CONVERSATION:
            LOGGER.warning("Session %s was left in %s; resetting", session.session_id, flow.phase.value)
            flow.reset()
        flow.add_context(SUMMARY_KEY, None)

        progress.update("conversation", "Understanding your request...")
        result = await self._conversation.process(request.message, session, api_key=api_key, model=request.model)
        if result.intent is None:
            return ChatResponse(
                session_id=session.session_id,
                message_id=message_id,
                message=result.response,
                model=result.model,
            )

        intent = result.intent
        flow.add_context(SUMMARY_KEY, intent.to_dict())
        flow.move_to_execution(intent)
        progress.update("summary_confirmed", "User intent confirmed, preparing execution...")
        try:
            outcome = await self._execution.execute(
                intent,
                request.subject_id,
                self._apply_callback,
                api_key=api_key,
                progress=progress,
            )
        finally:
            flow.reset()

        return ChatResponse(
            session_id=session.session_id,
            message_id=message_id,
            message=outcome.display_message,
            model=self._execution.model,
            success=outcome.success,
            error=outcome.error,
            has_actions=outcome.success and intent.mutates_order,
            action_summary=(outcome.reasoning or None) if outcome.success else None,
        )

    # ------------------------------------------------------------------
    # Plain endpoints
    # ------------------------------------------------------------------
    async def _plain_turn(
        self,
        request: ChatRequest,
        session: Session,
        message_id: str,
        api_key: str,
    ) -> ChatResponse:
        result = await self._conversation.chat(request.message, session, api_key=api_key, model=request.model)
        function_results = await self._run_tool_calls(request, result.tool_calls)
        message = result.response
        if not message and function_results:
            message = action_summary(function_results, request.endpoint_id)
        if not message:
            return self._failure(session.session_id, message_id, _EMPTY_REPLY, model=result.model)
        applied = any(item.success and item.apply_required for item in function_results)
        return ChatResponse(
            session_id=session.session_id,
            message_id=message_id,
            message=message,
            model=result.model,
            has_actions=applied,
            action_summary=action_summary(function_results, request.endpoint_id) if function_results else None,
            function_results=function_results,
        )

    async def _run_tool_calls(self, request: ChatRequest, tool_calls: Sequence[Any]) -> list[FunctionExecutionResult]:
        results: list[FunctionExecutionResult] = []
        for call in tool_calls:
            result = await self._registry.execute_tool_call(request.endpoint_id, call, request.subject_id)
            if result.apply_required:
                await self._apply_tool_result(request.subject_id, result)
            results.append(result)
        return results

    async def _apply_tool_result(self, subject_id: str, result: FunctionExecutionResult) -> None:
        payload = result.result
        try:
            await self._check_tool_order(subject_id, payload["new_order"])
        except AssistantError as exc:
            LOGGER.warning("Rejected %s order for %s: %s", result.function_name, subject_id, exc.message)
            result.success = False
            result.error = exc.message
            result.error_code = exc.error_code
            return
        if self._apply_callback is None:
            LOGGER.debug("No apply callback configured; %s result left unapplied", result.function_name)
            return
        try:
            outcome = self._apply_callback(subject_id, list(payload["new_order"]))
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as exc:
            LOGGER.error("Failed to apply %s result for %s: %s", result.function_name, subject_id, exc)
            result.success = False
            result.error = f"Failed to apply order: {exc}"
            return
        result.message = "Function executed and order applied successfully"
        if payload.get("message"):
            payload["message"] = f"{payload['message']} (Applied to database)"

    async def _check_tool_order(self, subject_id: str, order: Sequence[Any]) -> None:
        """Raise unless ``order`` holds each of the project's highlights exactly once."""

        try:
            sources = self._highlights.get_highlights(subject_id)
            if inspect.isawaitable(sources):
                sources = await sources
        except Exception as exc:
            raise AssistantError(
                error_code="data_unavailable",
                message=f"Failed to get highlights: {exc}",
            ) from exc
        check_order(order, [highlight.id for highlight in iter_highlights(sources or ())])

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _resolve_session_id(self, request: ChatRequest) -> str:
        """Return the request's session id, else the latest one for its project and endpoint."""

        key = (request.subject_id, request.endpoint_id)
        session_id = request.session_id or self._latest_sessions.get(key) or new_session_id()
        self._latest_sessions[key] = session_id
        return session_id

    def _session_for(self, session_id: str, request: ChatRequest, config: EndpointConfig) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            session = Session(
                session_id=session_id,
                subject_id=request.subject_id,
                endpoint_id=config.endpoint_id,
                model=request.model or "",
            )
            self._sessions[session_id] = session
        elif request.model and request.model != session.model:
            session.model = request.model
        return session

    async def _record(self, session: Session, role: ChatRole, content: str, *, hidden: Any = None) -> None:
        record = getattr(self._history, "record", None)
        if not callable(record):
            return
        hidden_content = json.dumps({SUMMARY_KEY: hidden}) if hidden else None
        message = ChatMessage(role=role, content=content, hidden_content=hidden_content)
        try:
            result = record(session, message)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            LOGGER.warning("Failed to persist %s message for %s: %s", role, session.session_id, exc)

    @staticmethod
    def _failure(
        session_id: str,
        message_id: str,
        error: str,
        *,
        user_message: str | None = None,
        model: str = "",
    ) -> ChatResponse:
        return ChatResponse(
            session_id=session_id,
            message_id=message_id,
            message=user_message or error,
            model=model,
            success=False,
            error=error,
        )
