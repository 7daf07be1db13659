"""Execution agent: turns a confirmed intent into a validated, applied ordering."""

from __future__ import annotations

import inspect
import logging
from typing import Any, Sequence

from ...services.progress import ProgressBroadcaster
from ..ai_types import ChatCompletionClient
from ..errors import (
    ApplyError,
    AssistantError,
    ConfigurationError,
    IntentValidationError,
    StructuredOutputParseError,
    TransportError,
)
from ..orchestration.intents import Intent
from ..orchestration.registry import DEFAULT_MODEL
from ..orchestration.types import ApiKeyProvider, ApplyCallback, ExecutionResult
from ..prompts import (
    EXECUTION_MAX_TOKENS,
    EXECUTION_TEMPERATURE,
    build_execution_prompt,
    processing_message,
    success_summary,
)
from ..tools.highlights import Highlight, HighlightProvider, OrderItem, iter_highlights
from .structured_output import (
    StructuredExecutionOutput,
    parse_structured_output,
    validate_structured_output,
)

LOGGER = logging.getLogger(__name__)

__all__ = ["ExecutionAgent", "resolve_api_key"]


async def resolve_api_key(provider: ApiKeyProvider | None) -> str | None:
    """Call ``provider`` (sync or async) and return a non-empty key or ``None``."""

    if provider is None:
        return None
    key = provider()
    if inspect.isawaitable(key):
        key = await key
    if not isinstance(key, str):
        return None
    return key.strip() or None


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class ExecutionAgent:
    """Runs one confirmed intent against the model and applies the result.

    The agent is stateless between calls. Each :meth:`execute` gathers the
    project's highlights, renders the category prompt, makes a single
    low-temperature completion, and parses and validates the JSON reply
    before handing the new order to the apply-callback. Every failure is
    reported as an unsuccessful :class:`ExecutionResult`; nothing is applied
    unless validation passed.
    """

    def __init__(
        self,
        client: ChatCompletionClient,
        highlights: HighlightProvider,
        *,
        model: str = DEFAULT_MODEL,
        temperature: float = EXECUTION_TEMPERATURE,
        max_tokens: int = EXECUTION_MAX_TOKENS,
        api_key_provider: ApiKeyProvider | None = None,
    ) -> None:
        self._client = client
        self._highlights = highlights
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._api_key_provider = api_key_provider

    @property
    def model(self) -> str:
        return self._model

    async def execute(
        self,
        intent: Intent | None,
        subject_id: str,
        apply_callback: ApplyCallback | None,
        *,
        api_key: str | None = None,
        progress: ProgressBroadcaster | None = None,
        model: str | None = None,
    ) -> ExecutionResult:
        """Execute ``intent`` for project ``subject_id``.

        Args:
            intent: The confirmed intent from the conversation phase.
            subject_id: Project whose highlights are reordered.
            apply_callback: Persists the validated order; never called for ``analyze``.
            api_key: Key for this turn; resolved through the provider when omitted.
            progress: Receives the step notifications of this run.
            model: Model override for this run.
        """

        if intent is None or not intent.confirmed:
            return self._failure(
                IntentValidationError(message="Intent must be confirmed before execution"),
                intent,
                progress,
            )

        key = api_key or await resolve_api_key(self._api_key_provider)
        if not key:
            return self._failure(ConfigurationError(), intent, progress)

        self._publish(progress, "preparing", "Gathering data and building execution prompt...")
        try:
            highlights = await self._load_highlights(subject_id)
        except AssistantError as exc:
            return self._failure(exc, intent, progress)
        current_order, current_order_failed = await self._load_current_order(intent, subject_id)
        prompt = build_execution_prompt(
            intent,
            highlights,
            current_order,
            current_order_failed=current_order_failed,
        )

        self._publish(progress, "processing", processing_message(intent.category))
        run_model = model or self._model
        try:
            response = await self._client.complete(
                [{"role": "user", "content": prompt}],
                api_key=key,
                model=run_model,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
            )
        except TransportError as exc:
            LOGGER.warning("Execution call failed for %s: %s", subject_id, exc)
            return self._failure(exc, intent, progress, step_message="AI processing failed")

        self._publish(progress, "parsing", "Parsing structured response...")
        try:
            output = parse_structured_output(response.content)
        except StructuredOutputParseError as exc:
            return self._failure(exc, intent, progress, step_message="Failed to parse AI response")

        highlight_ids = [highlight.id for highlight in highlights]
        original_order: Sequence[OrderItem] = current_order if current_order is not None else highlight_ids
        try:
            output = validate_structured_output(
                output,
                category=intent.category,
                highlight_ids=highlight_ids,
                original_order=original_order,
            )
        except AssistantError as exc:
            return self._failure(exc, intent, progress, output=output)

        applied = False
        if intent.mutates_order:
            self._publish(progress, "applying", "Applying changes to your project...")
            try:
                await self._apply(apply_callback, subject_id, output)
            except ApplyError as exc:
                return self._failure(exc, intent, progress, output=output, step_message="Failed to apply changes")
            applied = True

        self._publish(progress, "completed", "Successfully completed your request!")
        summary = success_summary(
            intent.category,
            section_count=output.section_count,
            changes=output.changes,
            reasoning=output.reasoning,
        )
        LOGGER.info(
            "Executed %s for %s: %d items, applied=%s",
            intent.category.value,
            subject_id,
            len(output.new_order),
            applied,
        )
        return ExecutionResult(
            success=True,
            summary=summary,
            intent=intent,
            output=output,
            reasoning=output.reasoning,
            applied=applied,
        )

    # ------------------------------------------------------------------
    # Data gathering
    # ------------------------------------------------------------------
    async def _load_highlights(self, subject_id: str) -> list[Highlight]:
        try:
            sources = await _maybe_await(self._highlights.get_highlights(subject_id))
        except Exception as exc:
            LOGGER.warning("Failed to load highlights for %s: %s", subject_id, exc)
            raise AssistantError(
                error_code="data_unavailable",
                message=f"Failed to get highlights: {exc}",
            ) from exc
        return list(iter_highlights(sources or ()))

    async def _load_current_order(
        self, intent: Intent, subject_id: str
    ) -> tuple[list[OrderItem] | None, bool]:
        if not intent.use_current_order:
            return None, False
        try:
            order = await _maybe_await(self._highlights.get_current_order(subject_id))
        except Exception as exc:
            LOGGER.warning("Failed to load current order for %s: %s", subject_id, exc)
            return None, True
        return list(order or ()), False

    async def _apply(
        self,
        apply_callback: ApplyCallback | None,
        subject_id: str,
        output: StructuredExecutionOutput,
    ) -> None:
        if apply_callback is None:
            raise ApplyError(message="No apply callback configured")
        try:
            await _maybe_await(apply_callback(subject_id, list(output.new_order)))
        except Exception as exc:
            LOGGER.error("Apply callback failed for %s: %s", subject_id, exc)
            raise ApplyError(message=f"Failed to apply changes: {exc}") from exc

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------
    @staticmethod
    def _publish(progress: ProgressBroadcaster | None, step: str, message: str) -> None:
        if progress is not None:
            progress.update(step, message)

    def _failure(
        self,
        error: AssistantError,
        intent: Intent | None,
        progress: ProgressBroadcaster | None,
        *,
        output: StructuredExecutionOutput | None = None,
        step_message: str | None = None,
    ) -> ExecutionResult:
        self._publish(progress, "error", step_message or error.user_message)
        LOGGER.info("Execution failed (%s): %s", error.kind, error)
        return ExecutionResult(
            success=False,
            error=error.message,
            error_kind=error.kind,
            intent=intent,
            output=output,
            reasoning=output.reasoning if output is not None else "",
            applied=False,
            user_message=error.user_message,
        )
