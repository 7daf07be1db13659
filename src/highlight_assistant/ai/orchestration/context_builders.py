"""Per-endpoint project context rendered into system prompts."""

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Protocol, Sequence, TypeVar

from ..tools.highlights import (
    HighlightProvider,
    HighlightSource,
    OrderItem,
    format_order_item,
    iter_highlights,
    truncate_text,
)

LOGGER = logging.getLogger(__name__)

_T = TypeVar("_T")

ORDERING_TEXT_CAP = 150
GENERIC_TEXT_CAP = 60


class ContextBuilder(Protocol):
    """Renders endpoint-specific project context for the model."""

    description: str

    async def build_context(self, subject_id: str) -> str:
        ...


async def _resolve(value: _T | Awaitable[_T]) -> _T:
    if inspect.isawaitable(value):
        return await value
    return value  # type: ignore[return-value]


class _ProviderBackedBuilder:
    description = ""

    def __init__(self, provider: HighlightProvider) -> None:
        self._provider = provider

    async def _sources(self, subject_id: str) -> list[HighlightSource]:
        return list(await _resolve(self._provider.get_highlights(subject_id)))

    async def _current_order(self, subject_id: str) -> list[OrderItem]:
        return list(await _resolve(self._provider.get_current_order(subject_id)))

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class HighlightOrderingContextBuilder(_ProviderBackedBuilder):
    """Highlight id/text mapping plus the current order for reordering turns."""

    description = "Highlight content mapping and current order reference for reordering operations"

    async def build_context(self, subject_id: str) -> str:
        current_order = await self._current_order(subject_id)
        sources = await self._sources(subject_id)

        lines = ["Available highlights for reordering:"]
        total = 0
        for highlight in iter_highlights(sources):
            lines.append(f'- {highlight.id}: "{truncate_text(highlight.text, ORDERING_TEXT_CAP)}"')
            total += 1
        lines.append("")
        lines.append(f"Total: {total} highlights - ALL highlight IDs must be included in your new_order array.")
        lines.append("")
        lines.append(
            "Current highlight order (for reference - ask user if they want to use this as starting point):"
        )
        for index, item in enumerate(current_order, start=1):
            lines.append(f"{index}. {format_order_item(item)}")
        return "\n".join(lines) + "\n"


class GenericContextBuilder(_ProviderBackedBuilder):
    """Project id and a short preview of each source's highlights."""

    description = "Basic project information and highlight overview"

    async def build_context(self, subject_id: str) -> str:
        sources = await self._sources(subject_id)
        parts = [f"Project ID: {subject_id}\n", f"Total highlights: {len(sources)}\n\n"]
        for source in _non_empty(sources):
            parts.append(f"Video: {source.name} ({len(source.highlights)} highlights)\n")
            for index, highlight in enumerate(source.highlights, start=1):
                parts.append(f'  {index}. "{truncate_text(highlight.text, GENERIC_TEXT_CAP)}"\n')
            parts.append("\n")
        return "".join(parts)


class ContentAnalysisContextBuilder(_ProviderBackedBuilder):
    """Full highlight texts per source with length statistics."""

    description = "Detailed content analysis with full highlight text and statistics"

    async def build_context(self, subject_id: str) -> str:
        sources = await self._sources(subject_id)
        parts = [f"Content Analysis Context for Project {subject_id}\n\n"]
        total_highlights = 0
        total_length = 0
        for source in _non_empty(sources):
            parts.append(f"=== Video: {source.name} ===\n")
            parts.append(f"Duration: {source.duration:.1f} seconds\n")
            parts.append(f"Highlights: {len(source.highlights)}\n\n")
            for index, highlight in enumerate(source.highlights, start=1):
                parts.append(f"{index}. [{highlight.id}] {highlight.text}\n\n")
                total_length += len(highlight.text)
                total_highlights += 1
            parts.append("\n")

        parts.append("=== Content Summary ===\n")
        parts.append(f"Total highlights: {total_highlights}\n")
        parts.append(f"Total text content: {total_length} characters\n")
        if total_highlights:
            parts.append(f"Average highlight length: {total_length // total_highlights} characters\n")
        return "".join(parts)


class ExportOptimizationContextBuilder(_ProviderBackedBuilder):
    """Durations, counts and file paths for export planning."""

    description = "Project structure and timing information for export optimization"

    async def build_context(self, subject_id: str) -> str:
        sources = await self._sources(subject_id)
        current_order = await self._current_order(subject_id)
        populated = list(_non_empty(sources))
        total_duration = sum(source.duration for source in populated)
        highlight_count = sum(len(source.highlights) for source in populated)

        parts = [
            f"Export Optimization Context for Project {subject_id}\n\n",
            "=== Project Overview ===\n",
            f"Total videos: {len(populated)}\n",
            f"Total highlights: {highlight_count}\n",
            f"Combined video duration: {total_duration:.1f} seconds\n",
            f"Current highlight order: {len(current_order)} items\n\n",
            "=== Video Breakdown ===\n",
        ]
        for source in populated:
            parts.append(f"Video: {source.name}\n")
            parts.append(f"  Duration: {source.duration:.1f} seconds\n")
            parts.append(f"  Highlights: {len(source.highlights)}\n")
            parts.append(f"  File: {source.file_path}\n\n")
        return "".join(parts)


def _non_empty(sources: Sequence[HighlightSource]) -> Sequence[HighlightSource]:
    return [source for source in sources if source.highlights]


def describe_builder(builder: Any) -> str:
    return str(getattr(builder, "description", "") or "")


__all__ = [
    "ContextBuilder",
    "HighlightOrderingContextBuilder",
    "GenericContextBuilder",
    "ContentAnalysisContextBuilder",
    "ExportOptimizationContextBuilder",
    "describe_builder",
]
