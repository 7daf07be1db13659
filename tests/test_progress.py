"""Tests for progress notifications."""

from __future__ import annotations

import logging

import pytest

from highlight_assistant.services.progress import InMemoryProgressSink, ProgressBroadcaster, ProgressEvent


class _ExplodingSink:
    def publish(self, event: ProgressEvent) -> None:
        raise RuntimeError("socket closed")


def test_events_are_addressed_and_sequenced() -> None:
    sink = InMemoryProgressSink()
    progress = ProgressBroadcaster(sink, "p1", "highlight_ordering", "s1")

    progress.update("preparing", "Gathering data...")
    progress.update("completed", "Done")

    first, second = sink.tail()
    assert (first.subject_id, first.endpoint_id, first.session_id) == ("p1", "highlight_ordering", "s1")
    assert [first.sequence, second.sequence] == [1, 2]
    assert second.to_dict()["message"] == "Done"
    assert progress.session_id == "s1"


def test_sink_failures_do_not_propagate(caplog: pytest.LogCaptureFixture) -> None:
    sink = InMemoryProgressSink()
    failing = ProgressBroadcaster(_ExplodingSink(), "p1", "e", "s1")

    with caplog.at_level(logging.DEBUG, logger="highlight_assistant.services.progress"):
        failing.update("processing", "Working")
        failing.update("completed", "Done")
    ProgressBroadcaster(sink, "p1", "e", "s1").update("processing", "Working")

    assert sum("failed" in record.getMessage() for record in caplog.records) == 2
    assert sink.steps() == ["processing"]


def test_missing_sink_is_allowed() -> None:
    ProgressBroadcaster(None, "p1", "e", "s1").update("processing", "Working")


def test_ring_buffer_keeps_latest_events() -> None:
    sink = InMemoryProgressSink(capacity=10)
    progress = ProgressBroadcaster(sink, "p1", "e", "s1")
    for index in range(15):
        progress.update(f"step{index}", "")

    assert len(sink) == 10
    assert sink.steps()[0] == "step5"
    assert [event.step for event in sink.tail(2)] == ["step13", "step14"]

    sink.clear()
    assert sink.tail() == []


def test_capacity_has_a_floor() -> None:
    assert InMemoryProgressSink(capacity=1).capacity == 10
