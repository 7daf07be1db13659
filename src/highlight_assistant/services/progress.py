"""Progress notifications for long-running chat turns."""

from __future__ import annotations

import itertools
import logging
import time
from collections import deque
from dataclasses import asdict, dataclass, field
from threading import Lock
from typing import Any, Protocol

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ProgressEvent:
    """One step of a turn, addressed to the UI showing that session."""

    subject_id: str
    endpoint_id: str
    session_id: str
    step: str
    message: str
    sequence: int
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class ProgressSink(Protocol):
    """Receives progress events; implementations deliver them to the UI."""

    def publish(self, event: ProgressEvent) -> None:  # pragma: no cover - protocol stub
        ...


class InMemoryProgressSink:
    """Ring-buffer sink for local inspection and tests."""

    def __init__(self, capacity: int = 200) -> None:
        self._capacity = max(10, capacity)
        self._buffer: deque[ProgressEvent] = deque(maxlen=self._capacity)
        self._lock = Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def publish(self, event: ProgressEvent) -> None:
        with self._lock:
            self._buffer.append(event)

    def tail(self, limit: int | None = None) -> list[ProgressEvent]:
        with self._lock:
            events = list(self._buffer)
        if limit is None or limit >= len(events):
            return events
        return events[-limit:]

    def steps(self) -> list[str]:
        return [event.step for event in self.tail()]

    def clear(self) -> None:
        with self._lock:
            self._buffer.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)


class ProgressBroadcaster:
    """Publishes progress for one session; never raises and never blocks on delivery."""

    def __init__(
        self,
        sink: ProgressSink | None,
        subject_id: str,
        endpoint_id: str,
        session_id: str,
    ) -> None:
        self._sink = sink
        self._subject_id = subject_id
        self._endpoint_id = endpoint_id
        self._session_id = session_id
        self._sequence = itertools.count(1)

    @property
    def session_id(self) -> str:
        return self._session_id

    def update(self, step: str, message: str) -> None:
        event = ProgressEvent(
            subject_id=self._subject_id,
            endpoint_id=self._endpoint_id,
            session_id=self._session_id,
            step=step,
            message=message,
            sequence=next(self._sequence),
        )
        LOGGER.info("Progress [%s]: %s", step, message)
        if self._sink is None:
            return
        try:
            self._sink.publish(event)
        except Exception:
            LOGGER.debug("Progress sink %s failed", self._sink, exc_info=True)


__all__ = ["ProgressEvent", "ProgressSink", "InMemoryProgressSink", "ProgressBroadcaster"]
