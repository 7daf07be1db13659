"""Registry of highlight tools."""

from . import errors, highlight_tools, highlights, types

__all__ = [
    "errors",
    "highlight_tools",
    "highlights",
    "types",
]
