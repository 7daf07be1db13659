"""Endpoint registry: per-endpoint prompts, context builders and tool dispatch."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from json import JSONDecodeError
from typing import Any, Iterable, Mapping

from jsonschema import Draft7Validator, ValidationError

from ..ai_types import ToolInvocation
from ..tools.errors import (
    BadArgumentsError,
    EndpointNotFoundError,
    ToolError,
    ToolExecutionError,
    ToolNotFoundError,
)
from ..tools.highlight_tools import build_highlight_tools
from ..tools.highlights import HighlightProvider
from ..tools.types import FunctionExecutionResult, ToolDefinition
from .context_builders import (
    ContentAnalysisContextBuilder,
    ContextBuilder,
    ExportOptimizationContextBuilder,
    GenericContextBuilder,
    HighlightOrderingContextBuilder,
)

LOGGER = logging.getLogger(__name__)

_JSON_DECODER = json.JSONDecoder()

HIGHLIGHT_ORDERING = "highlight_ordering"
HIGHLIGHT_SUGGESTIONS = "highlight_suggestions"
CONTENT_ANALYSIS = "content_analysis"
EXPORT_OPTIMIZATION = "export_optimization"

DEFAULT_MODEL = "anthropic/claude-sonnet-4"


@dataclass(slots=True)
class EndpointConfig:
    """Configuration for one chat endpoint.

    Attributes:
        endpoint_id: Registry key sent by the UI.
        name: Display name.
        description: What the endpoint helps with.
        context_builder: Renders project context for the system prompt.
        system_prompt: Endpoint persona used for plain chat turns.
        tools: Tools the model may call on this endpoint.
        requires_functions: Route turns through the conversation/execution flow.
        default_model: Model used when the request does not name one.
    """

    endpoint_id: str
    name: str
    description: str = ""
    context_builder: ContextBuilder | None = None
    system_prompt: str = ""
    tools: list[ToolDefinition] = field(default_factory=list)
    requires_functions: bool = False
    default_model: str = DEFAULT_MODEL

    def tool_names(self) -> list[str]:
        return [tool.name for tool in self.tools]

    def find_tool(self, name: str) -> ToolDefinition | None:
        for tool in self.tools:
            if tool.name == name:
                return tool
        return None


class EndpointRegistry:
    """Maps endpoint ids to their configuration and dispatches tool calls by exact name."""

    def __init__(self, configs: Iterable[EndpointConfig] | None = None) -> None:
        self._configs: dict[str, EndpointConfig] = {}
        self._validators: dict[tuple[str, str], Draft7Validator] = {}
        for config in configs or ():
            self.register(config)

    # ------------------------------------------------------------------
    # Registration and lookup
    # ------------------------------------------------------------------
    def register(self, config: EndpointConfig) -> None:
        if not config.endpoint_id:
            raise ValueError("Endpoint id must be a non-empty string")
        if config.endpoint_id in self._configs:
            LOGGER.debug("Replacing endpoint registration for %s", config.endpoint_id)
        self._configs[config.endpoint_id] = config
        for key in [key for key in self._validators if key[0] == config.endpoint_id]:
            del self._validators[key]
        LOGGER.debug("Registered endpoint %s with %d tools", config.endpoint_id, len(config.tools))

    def get(self, endpoint_id: str) -> EndpointConfig | None:
        return self._configs.get(endpoint_id)

    def get_required(self, endpoint_id: str) -> EndpointConfig:
        config = self._configs.get(endpoint_id)
        if config is None:
            raise EndpointNotFoundError(endpoint_id=endpoint_id)
        return config

    def endpoint_ids(self) -> list[str]:
        return list(self._configs)

    def supports_tools(self, endpoint_id: str) -> bool:
        config = self._configs.get(endpoint_id)
        if config is None:
            return False
        return config.requires_functions or len(config.tools) > 0

    async def context_for(self, endpoint_id: str, subject_id: str) -> str:
        """Render the endpoint's project context for ``subject_id``."""

        config = self.get_required(endpoint_id)
        if config.context_builder is None:
            raise ValueError(f"No context builder configured for endpoint {endpoint_id}")
        return await config.context_builder.build_context(subject_id)

    def tools_for(self, endpoint_id: str) -> list[dict[str, Any]]:
        """Return the endpoint's tools in OpenAI tool format."""

        config = self.get_required(endpoint_id)
        return [tool.spec.to_openai_tool() for tool in config.tools]

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------
    async def dispatch(
        self,
        endpoint_id: str,
        tool_name: str,
        args: Mapping[str, Any] | str | None,
        subject_id: str,
    ) -> FunctionExecutionResult:
        """Run ``tool_name`` on ``endpoint_id``.

        Raises:
            EndpointNotFoundError: ``endpoint_id`` is not registered.
            ToolNotFoundError: the endpoint has no tool named ``tool_name``.
            BadArgumentsError: ``args`` is not a JSON object or fails the tool schema.

        Failures raised by the executor itself are returned as a failed result.
        """

        config = self.get_required(endpoint_id)
        tool = config.find_tool(tool_name)
        if tool is None:
            raise ToolNotFoundError(tool_name=tool_name, endpoint_id=endpoint_id, available=config.tool_names())

        arguments = _coerce_arguments(tool_name, args)
        self._validate_arguments(endpoint_id, tool, arguments)

        LOGGER.debug("Dispatching %s on %s for %s", tool_name, endpoint_id, subject_id)
        try:
            result = await tool.execute(arguments, subject_id)
        except ToolError as exc:
            LOGGER.info("Tool %s failed: %s", tool_name, exc)
            return FunctionExecutionResult(
                function_name=tool_name,
                success=False,
                error=exc.message,
                error_code=exc.error_code,
            )
        except Exception as exc:
            LOGGER.exception("Tool %s raised unexpectedly", tool_name)
            error = ToolExecutionError(message=f"{tool_name} failed: {exc}", tool_name=tool_name)
            return FunctionExecutionResult(
                function_name=tool_name,
                success=False,
                error=error.message,
                error_code=error.error_code,
            )

        message = ""
        if isinstance(result, Mapping):
            message = str(result.get("message") or "")
        return FunctionExecutionResult(function_name=tool_name, success=True, result=result, message=message)

    async def execute_tool_call(
        self,
        endpoint_id: str,
        tool_call: ToolInvocation,
        subject_id: str,
    ) -> FunctionExecutionResult:
        """Dispatch a model-issued tool call, reporting every failure as a failed result."""

        try:
            return await self.dispatch(endpoint_id, tool_call.name, tool_call.arguments, subject_id)
        except ToolError as exc:
            LOGGER.warning("Rejected tool call %s on %s: %s", tool_call.name, endpoint_id, exc)
            return FunctionExecutionResult(
                function_name=tool_call.name,
                success=False,
                error=exc.message,
                error_code=exc.error_code,
            )

    def _validate_arguments(self, endpoint_id: str, tool: ToolDefinition, arguments: Mapping[str, Any]) -> None:
        key = (endpoint_id, tool.name)
        validator = self._validators.get(key)
        if validator is None:
            validator = Draft7Validator(tool.spec.json_schema())
            self._validators[key] = validator
        error = next(iter(validator.iter_errors(arguments)), None)
        if error is not None:
            raise BadArgumentsError(
                message=f"Invalid arguments for {tool.name}: {_format_validation_error(error)}",
                tool_name=tool.name,
            )


def _coerce_arguments(tool_name: str, args: Mapping[str, Any] | str | None) -> dict[str, Any]:
    if args is None:
        return {}
    if isinstance(args, Mapping):
        return dict(args)
    if isinstance(args, (bytes, bytearray)):
        args = args.decode("utf-8", errors="replace")
    if not isinstance(args, str):
        raise BadArgumentsError(message="Function arguments must be a JSON object", tool_name=tool_name)
    text = args.strip()
    if not text or text == "{}":
        return {}
    try:
        parsed = _loads_with_fallback(text)
    except ValueError as exc:
        raise BadArgumentsError(message=f"Failed to parse function arguments: {exc}", tool_name=tool_name) from exc
    if not isinstance(parsed, Mapping):
        raise BadArgumentsError(message="Function arguments must be a JSON object", tool_name=tool_name)
    return dict(parsed)


def _loads_with_fallback(text: str) -> Any:
    try:
        return json.loads(text)
    except JSONDecodeError as exc:
        for idx, char in enumerate(text):
            if char in "{[":
                try:
                    parsed, _ = _JSON_DECODER.raw_decode(text[idx:])
                except JSONDecodeError:
                    continue
                return parsed
        raise ValueError("Unable to parse arguments as JSON") from exc


def _format_validation_error(error: ValidationError) -> str:
    path = ".".join(str(part) for part in error.path)
    if path:
        return f"{path}: {error.message}"
    return error.message


# ----------------------------------------------------------------------
# Default endpoints
# ----------------------------------------------------------------------
HIGHLIGHT_ORDERING_PROMPT = """You are an expert video editor assistant specializing in highlight organization.

When a user asks to reorder highlights:

1. FIRST ask if they want to use the current highlight order as a starting point or create a completely new arrangement
2. If they want to modify the current order, reference the "Current highlight order" section provided in the context
3. If they want to start fresh, focus only on the available highlights and their content

WHEN READY TO REORDER:
- Identify ALL highlight IDs from the "Available highlights" section
- Create an optimal order considering narrative flow, engagement, and content themes
- Call reorder_highlights with the complete new_order array including ALL highlight IDs
- Provide a clear reason for your reordering decisions

Example reorder call format:
reorder_highlights({
  "new_order": ["highlight_1", "highlight_2", {"type": "N", "title": "Section Title"}, "highlight_3"],
  "reason": "Created strong hook, built narrative tension, and ended with emotional payoff"
})

CRITICAL: Include ALL highlight IDs from the context in your new_order array. Missing any highlight ID will break the reordering."""

HIGHLIGHT_SUGGESTIONS_PROMPT = (
    "You are an expert at identifying compelling moments in video content. "
    "Help suggest highlights that will engage viewers."
)
CONTENT_ANALYSIS_PROMPT = (
    "You are a content analysis expert. Help analyze video content for themes, "
    "key messages, and audience engagement opportunities."
)
EXPORT_OPTIMIZATION_PROMPT = (
    "You are a video production expert. Help optimize export settings and final video "
    "production for different platforms and audiences."
)


def build_default_registry(highlights: HighlightProvider) -> EndpointRegistry:
    """Return a registry holding the four built-in endpoints bound to ``highlights``."""

    return EndpointRegistry(
        [
            EndpointConfig(
                endpoint_id=HIGHLIGHT_ORDERING,
                name="Highlight Ordering Assistant",
                description="Help with organizing and reordering highlights for better flow",
                context_builder=HighlightOrderingContextBuilder(highlights),
                system_prompt=HIGHLIGHT_ORDERING_PROMPT,
                tools=build_highlight_tools(highlights),
                requires_functions=True,
                default_model=DEFAULT_MODEL,
            ),
            EndpointConfig(
                endpoint_id=HIGHLIGHT_SUGGESTIONS,
                name="Highlight Suggestions Assistant",
                description="Get AI suggestions for creating engaging highlights",
                context_builder=GenericContextBuilder(highlights),
                system_prompt=HIGHLIGHT_SUGGESTIONS_PROMPT,
                default_model=DEFAULT_MODEL,
            ),
            EndpointConfig(
                endpoint_id=CONTENT_ANALYSIS,
                name="Content Analysis Assistant",
                description="Analyze video content for insights and recommendations",
                context_builder=ContentAnalysisContextBuilder(highlights),
                system_prompt=CONTENT_ANALYSIS_PROMPT,
                default_model="google/gemini-2.0-flash-001",
            ),
            EndpointConfig(
                endpoint_id=EXPORT_OPTIMIZATION,
                name="Export Optimization Assistant",
                description="Optimize export settings and final video production",
                context_builder=ExportOptimizationContextBuilder(highlights),
                system_prompt=EXPORT_OPTIMIZATION_PROMPT,
                default_model="anthropic/claude-3.5-haiku-20241022",
            ),
        ]
    )


__all__ = [
    "EndpointConfig",
    "EndpointRegistry",
    "build_default_registry",
    "HIGHLIGHT_ORDERING",
    "HIGHLIGHT_SUGGESTIONS",
    "CONTENT_ANALYSIS",
    "EXPORT_OPTIMIZATION",
    "DEFAULT_MODEL",
]
