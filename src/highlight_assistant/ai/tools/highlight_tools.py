"""Highlight ordering tools exposed to the model.

Mutating tools never write project state themselves: they return the
proposed ``new_order`` with ``apply_required`` set, and the engine applies it
through the host's apply-callback.
"""

from __future__ import annotations

import inspect
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, Sequence, TypeVar

from .errors import BadArgumentsError, DataUnavailableError, MissingParameterError, NoSuggestionError, ToolError
from .highlights import (
    HighlightProvider,
    HighlightSource,
    OrderItem,
    highlight_map,
    iter_highlights,
    order_highlight_ids,
    truncate_text,
)
from .types import ToolCategory, ToolDefinition, ToolSpec

LOGGER = logging.getLogger(__name__)

_T = TypeVar("_T")
_SUMMARY_TEXT_CAP = 100
_ANALYSIS_SAMPLE_SIZE = 10


class HighlightTool(str, Enum):
    """Closed set of tools offered by the highlight ordering endpoint."""

    REORDER_HIGHLIGHTS = "reorder_highlights"
    GET_CURRENT_ORDER = "get_current_order"
    ANALYZE_HIGHLIGHTS = "analyze_highlights"
    APPLY_AI_SUGGESTION = "apply_ai_suggestion"
    RESET_TO_ORIGINAL = "reset_to_original"


_EMPTY_PARAMETERS: Mapping[str, Any] = {"type": "object", "properties": {}}

REORDER_PARAMETERS: Mapping[str, Any] = {
    "type": "object",
    "properties": {
        "new_order": {
            "type": "array",
            "description": "Array of highlight IDs and section objects in the desired order",
            "items": {
                "oneOf": [
                    {"type": "string", "description": "Highlight ID"},
                    {
                        "type": "object",
                        "properties": {
                            "type": {"type": "string", "enum": ["N"]},
                            "title": {"type": "string", "description": "Section title"},
                        },
                        "required": ["type"],
                    },
                ]
            },
        },
        "reason": {
            "type": "string",
            "description": "Brief explanation of why this order works better",
        },
    },
    "required": ["new_order"],
}

TOOL_SPECS: Mapping[HighlightTool, ToolSpec] = {
    HighlightTool.REORDER_HIGHLIGHTS: ToolSpec(
        name=HighlightTool.REORDER_HIGHLIGHTS.value,
        description="Reorder video highlights with optional section titles",
        parameters=REORDER_PARAMETERS,
        category=ToolCategory.WRITE,
        is_write=True,
    ),
    HighlightTool.GET_CURRENT_ORDER: ToolSpec(
        name=HighlightTool.GET_CURRENT_ORDER.value,
        description="Get the current highlight order for the project",
        parameters=_EMPTY_PARAMETERS,
        category=ToolCategory.READ,
    ),
    HighlightTool.ANALYZE_HIGHLIGHTS: ToolSpec(
        name=HighlightTool.ANALYZE_HIGHLIGHTS.value,
        description="Analyze highlights for content, themes, and structure recommendations",
        parameters=_EMPTY_PARAMETERS,
        category=ToolCategory.ANALYSIS,
    ),
    HighlightTool.APPLY_AI_SUGGESTION: ToolSpec(
        name=HighlightTool.APPLY_AI_SUGGESTION.value,
        description="Apply a previously generated AI reorder suggestion",
        parameters=_EMPTY_PARAMETERS,
        category=ToolCategory.WRITE,
        is_write=True,
    ),
    HighlightTool.RESET_TO_ORIGINAL: ToolSpec(
        name=HighlightTool.RESET_TO_ORIGINAL.value,
        description="Reset highlights to their original order",
        parameters=_EMPTY_PARAMETERS,
        category=ToolCategory.WRITE,
        is_write=True,
    ),
}


async def _resolve(value: _T | Awaitable[_T]) -> _T:
    if inspect.isawaitable(value):
        return await value
    return value  # type: ignore[return-value]


class HighlightToolset:
    """Executors for :class:`HighlightTool`, backed by a :class:`HighlightProvider`."""

    def __init__(self, provider: HighlightProvider) -> None:
        self._provider = provider

    def definitions(self) -> list[ToolDefinition]:
        """Return tool definitions in the order they are offered to the model."""

        return [ToolDefinition(spec=TOOL_SPECS[tool], executor=self._executor_for(tool)) for tool in HighlightTool]

    def _executor_for(self, tool: HighlightTool) -> Callable[[Mapping[str, Any], str], Awaitable[Any]]:
        if tool is HighlightTool.REORDER_HIGHLIGHTS:
            return self.reorder_highlights
        if tool is HighlightTool.GET_CURRENT_ORDER:
            return self.get_current_order
        if tool is HighlightTool.ANALYZE_HIGHLIGHTS:
            return self.analyze_highlights
        if tool is HighlightTool.APPLY_AI_SUGGESTION:
            return self.apply_ai_suggestion
        return self.reset_to_original

    # ------------------------------------------------------------------
    # Executors
    # ------------------------------------------------------------------
    async def reorder_highlights(self, args: Mapping[str, Any], subject_id: str) -> dict[str, Any]:
        if "new_order" not in args:
            raise MissingParameterError(parameter="new_order")
        new_order = args["new_order"]
        if not isinstance(new_order, list):
            raise BadArgumentsError(
                message="new_order must be an array",
                tool_name=HighlightTool.REORDER_HIGHLIGHTS.value,
            )
        reason = args.get("reason")
        return {
            "success": True,
            "message": "Highlight order prepared",
            "reason": reason if isinstance(reason, str) else "",
            "count": len(new_order),
            "new_order": list(new_order),
            "apply_required": True,
        }

    async def get_current_order(self, args: Mapping[str, Any], subject_id: str) -> dict[str, Any]:
        current_order = await self._current_order(subject_id)
        sources = await self._sources(subject_id)
        summary = {
            highlight.id: truncate_text(highlight.text, _SUMMARY_TEXT_CAP)
            for highlight in iter_highlights(sources)
        }
        return {
            "current_order": list(current_order),
            "highlight_summary": summary,
            "total_highlights": len(summary),
        }

    async def analyze_highlights(self, args: Mapping[str, Any], subject_id: str) -> dict[str, Any]:
        texts = list(highlight_map(await self._sources(subject_id)).values())
        if not texts:
            return {"total_highlights": 0, "message": "No highlights found for analysis"}
        total_length = sum(len(text) for text in texts)
        return {
            "total_highlights": len(texts),
            "total_text_length": total_length,
            "average_length": total_length // len(texts),
            "highlight_texts": texts[:_ANALYSIS_SAMPLE_SIZE],
            "analysis_complete": True,
        }

    async def apply_ai_suggestion(self, args: Mapping[str, Any], subject_id: str) -> dict[str, Any]:
        try:
            cached = await _resolve(self._provider.get_cached_suggestion(subject_id))
        except ToolError:
            raise
        except Exception as exc:
            raise DataUnavailableError(message=f"Failed to get cached AI suggestion: {exc}") from exc
        if cached is None or not cached.order:
            raise NoSuggestionError()
        return {
            "success": True,
            "message": "Cached AI suggestion prepared",
            "model_used": cached.model,
            "created_at": cached.created_at,
            "new_order": list(cached.order),
            "apply_required": True,
        }

    async def reset_to_original(self, args: Mapping[str, Any], subject_id: str) -> dict[str, Any]:
        original = [highlight.id for highlight in iter_highlights(await self._sources(subject_id))]
        return {
            "success": True,
            "message": "Original order prepared",
            "count": len(original),
            "new_order": original,
            "apply_required": True,
        }

    # ------------------------------------------------------------------
    # Provider access
    # ------------------------------------------------------------------
    async def _sources(self, subject_id: str) -> Sequence[HighlightSource]:
        try:
            return list(await _resolve(self._provider.get_highlights(subject_id)))
        except Exception as exc:
            raise DataUnavailableError(message=f"Failed to get project highlights: {exc}") from exc

    async def _current_order(self, subject_id: str) -> Sequence[OrderItem]:
        try:
            return list(await _resolve(self._provider.get_current_order(subject_id)))
        except Exception as exc:
            raise DataUnavailableError(message=f"Failed to get current order: {exc}") from exc


def build_highlight_tools(provider: HighlightProvider) -> list[ToolDefinition]:
    """Return the full highlight tool set bound to ``provider``."""

    return HighlightToolset(provider).definitions()


__all__ = [
    "HighlightTool",
    "HighlightToolset",
    "REORDER_PARAMETERS",
    "TOOL_SPECS",
    "build_highlight_tools",
    "order_highlight_ids",
]
