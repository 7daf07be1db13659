"""Highlight data contracts shared by context builders, tools and the execution agent."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Iterable, Mapping, Protocol, Sequence, Union

SECTION_TYPE = "N"

# A highlight id or a section marker such as {"type": "N", "title": "Hook"}
OrderItem = Union[str, Mapping[str, Any]]


@dataclass(slots=True, frozen=True)
class Highlight:
    """Addressable text excerpt of a video script."""

    id: str
    text: str


@dataclass(slots=True)
class HighlightSource:
    """Highlights grouped by the video clip they were cut from."""

    name: str
    highlights: list[Highlight] = field(default_factory=list)
    duration: float = 0.0
    file_path: str = ""


@dataclass(slots=True)
class CachedSuggestion:
    """Previously generated ordering kept by the host application."""

    order: list[OrderItem]
    model: str = ""
    created_at: str = ""


class HighlightProvider(Protocol):
    """Read-only access to a project's highlights, supplied by the host application.

    Methods may be plain functions or coroutines.
    """

    def get_highlights(self, subject_id: str) -> Sequence[HighlightSource] | Awaitable[Sequence[HighlightSource]]:
        ...

    def get_current_order(self, subject_id: str) -> Sequence[OrderItem] | Awaitable[Sequence[OrderItem]]:
        ...

    def get_cached_suggestion(self, subject_id: str) -> CachedSuggestion | None | Awaitable[CachedSuggestion | None]:
        ...


def section_marker(title: str) -> dict[str, str]:
    """Return a section marker order item."""

    return {"type": SECTION_TYPE, "title": title}


def is_section_marker(item: Any) -> bool:
    return isinstance(item, Mapping) and item.get("type") == SECTION_TYPE


def iter_highlights(sources: Iterable[HighlightSource]) -> Iterable[Highlight]:
    for source in sources:
        yield from source.highlights


def highlight_map(sources: Iterable[HighlightSource]) -> dict[str, str]:
    """Return ``{highlight_id: text}`` in source order."""

    return {highlight.id: highlight.text for highlight in iter_highlights(sources)}


def order_highlight_ids(order: Iterable[Any]) -> list[str]:
    """Return the highlight ids of ``order`` with section markers removed."""

    return [item for item in order if isinstance(item, str)]


def section_count(order: Iterable[Any]) -> int:
    return sum(1 for item in order if is_section_marker(item))


def truncate_text(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return f"{text[:limit]}..."


def format_order_item(item: Any) -> str:
    """Render an order item for prompts: the id, or ``[SECTION] title`` for markers."""

    if isinstance(item, str):
        return item
    if isinstance(item, Mapping):
        title = item.get("title")
        if isinstance(title, str) and title:
            return f"[SECTION] {title}"
        return "[SECTION]"
    return str(item)


__all__ = [
    "SECTION_TYPE",
    "OrderItem",
    "Highlight",
    "HighlightSource",
    "CachedSuggestion",
    "HighlightProvider",
    "section_marker",
    "is_section_marker",
    "iter_highlights",
    "highlight_map",
    "order_highlight_ids",
    "section_count",
    "truncate_text",
    "format_order_item",
]
