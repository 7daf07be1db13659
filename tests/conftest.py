"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from highlight_assistant.ai.tools.highlights import HighlightSource

from tests.helpers import StaticHighlightProvider, make_source


@pytest.fixture
def sources() -> list[HighlightSource]:
    return [
        make_source(
            "intro.mp4",
            ("h1", "Welcome back to the channel"),
            ("h2", "Today we fix the slow build"),
            duration=42.5,
            file_path="/videos/intro.mp4",
        ),
        make_source("outro.mp4", ("h3", "Subscribe for part two"), duration=12.0, file_path="/videos/outro.mp4"),
    ]


@pytest.fixture
def highlights(sources: list[HighlightSource]) -> StaticHighlightProvider:
    return StaticHighlightProvider(sources)
