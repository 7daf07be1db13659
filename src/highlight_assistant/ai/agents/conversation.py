"""Conversation agent: budgeted chat turns that may end in a confirmed intent."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

from ...chat.message_model import Session
from ..ai_types import ChatCompletionClient, ToolInvocation
from ..errors import ConfigurationError
from ..orchestration.flow import extract_intent
from ..orchestration.intents import Intent
from ..orchestration.registry import DEFAULT_MODEL, EndpointRegistry
from ..orchestration.types import HistoryProvider
from ..prompts import (
    CONVERSATION_MAX_TOKENS,
    CONVERSATION_RESERVE_TOKENS,
    CONVERSATION_TEMPERATURE,
    UNKNOWN_ENDPOINT_CAPABILITIES,
    capabilities_text,
    conversation_system_prompt,
)
from ..services.context_window import ContextWindow, ContextWindowBuilder, log_context_usage

LOGGER = logging.getLogger(__name__)

__all__ = ["ConversationAgent", "ConversationResult"]


@dataclass(slots=True)
class ConversationResult:
    """Reply of one conversation turn.

    ``intent`` is set only when the reply carried a confirmed
    ``conversation_summary``. ``tool_calls`` is filled on plain endpoints
    that expose tools.
    """

    response: str
    intent: Intent | None = None
    model: str = ""
    window: ContextWindow | None = None
    tool_calls: list[ToolInvocation] = field(default_factory=list)

    @property
    def has_intent(self) -> bool:
        return self.intent is not None


class ConversationAgent:
    """Talks with the user until a plan is confirmed.

    The agent never executes anything itself; it builds the context window,
    calls the model and reports any confirmed intent back to the engine.
    """

    def __init__(
        self,
        registry: EndpointRegistry,
        client: ChatCompletionClient,
        history: HistoryProvider | None = None,
        *,
        window_builder: ContextWindowBuilder | None = None,
        temperature: float = CONVERSATION_TEMPERATURE,
        max_tokens: int = CONVERSATION_MAX_TOKENS,
        reserve_tokens: int = CONVERSATION_RESERVE_TOKENS,
    ) -> None:
        self._registry = registry
        self._client = client
        self._history = history
        self._window_builder = window_builder or ContextWindowBuilder()
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._reserve_tokens = reserve_tokens

    @property
    def window_builder(self) -> ContextWindowBuilder:
        return self._window_builder

    # ------------------------------------------------------------------
    # Prompts
    # ------------------------------------------------------------------
    def capabilities_description(self, endpoint_id: str) -> str:
        config = self._registry.get(endpoint_id)
        if config is None:
            return UNKNOWN_ENDPOINT_CAPABILITIES
        return capabilities_text((tool.name, tool.spec.description) for tool in config.tools)

    async def build_system_prompt(self, endpoint_id: str, subject_id: str) -> str:
        """Return the conversation-first prompt including the endpoint's project context."""

        project_context = await self._project_context(endpoint_id, subject_id)
        return conversation_system_prompt(self.capabilities_description(endpoint_id), project_context)

    async def build_plain_prompt(self, endpoint_id: str, subject_id: str) -> str:
        """Return the endpoint persona followed by its project context."""

        config = self._registry.get_required(endpoint_id)
        project_context = await self._project_context(endpoint_id, subject_id)
        if not project_context.strip():
            return config.system_prompt
        return f"{config.system_prompt}\n\nPROJECT CONTEXT:\n{project_context.rstrip()}"

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------
    async def process(
        self,
        message: str,
        session: Session,
        *,
        api_key: str | None,
        model: str | None = None,
    ) -> ConversationResult:
        """Run one conversation-phase turn and extract a confirmed intent, if any.

        Raises:
            ConfigurationError: ``api_key`` is empty.
            TransportError: the model call failed.
        """

        if not api_key:
            raise ConfigurationError()
        run_model = self._model_for(session, model)
        system_prompt = await self.build_system_prompt(session.endpoint_id, session.subject_id)
        window = await self._build_window(run_model, system_prompt, session, message)
        response = await self._client.complete(
            window.messages,
            api_key=api_key,
            model=run_model,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )
        content = response.content or ""
        intent = extract_intent(content)
        if intent is not None:
            LOGGER.info("Confirmed %s intent in session %s", intent.category.value, session.session_id)
        return ConversationResult(
            response=content,
            intent=intent,
            model=response.model or run_model,
            window=window,
        )

    async def chat(
        self,
        message: str,
        session: Session,
        *,
        api_key: str | None,
        model: str | None = None,
    ) -> ConversationResult:
        """Run a plain chat turn on an endpoint without the confirmation flow.

        The endpoint's tools, if any, are offered to the model; requested calls
        are returned unexecuted in ``tool_calls``.
        """

        if not api_key:
            raise ConfigurationError()
        config = self._registry.get_required(session.endpoint_id)
        run_model = self._model_for(session, model)
        system_prompt = await self.build_plain_prompt(session.endpoint_id, session.subject_id)
        window = await self._build_window(run_model, system_prompt, session, message)
        tools = self._registry.tools_for(config.endpoint_id) if config.tools else None
        response = await self._client.complete(
            window.messages,
            api_key=api_key,
            model=run_model,
            tools=tools,
            tool_choice="auto" if tools else None,
        )
        return ConversationResult(
            response=response.content or "",
            model=response.model or run_model,
            window=window,
            tool_calls=list(response.tool_calls),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _model_for(self, session: Session, model: str | None) -> str:
        if model:
            return model
        if session.model:
            return session.model
        config = self._registry.get(session.endpoint_id)
        return config.default_model if config is not None else DEFAULT_MODEL

    async def _project_context(self, endpoint_id: str, subject_id: str) -> str:
        config = self._registry.get(endpoint_id)
        if config is None or config.context_builder is None:
            return ""
        try:
            return await self._registry.context_for(endpoint_id, subject_id)
        except Exception as exc:
            LOGGER.warning("Failed to build %s context for %s: %s", endpoint_id, subject_id, exc)
            return ""

    async def _build_window(
        self,
        model: str,
        system_prompt: str,
        session: Session,
        message: str,
    ) -> ContextWindow:
        estimator = self._window_builder.estimator
        history = await self._load_history(session, estimator.optimal_history_limit(model))
        window = self._window_builder.build(
            model,
            system_prompt,
            history,
            message,
            reserve_tokens=self._reserve_tokens,
        )
        log_context_usage(model, window, limit=estimator.limit_for(model))
        return window

    async def _load_history(self, session: Session, limit: int) -> Sequence[Any]:
        if self._history is None:
            return ()
        try:
            history = await self._history.get_history(session, limit)
        except Exception as exc:
            LOGGER.warning("Failed to load history for %s, continuing without it: %s", session.session_id, exc)
            return ()
        return list(history or ())
