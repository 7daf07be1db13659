"""Per-session conversation state machine and intent extraction."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from json import JSONDecodeError
from typing import Any, AsyncIterator, Dict, Mapping

from ..errors import IntentValidationError
from .intents import Intent, intent_from_payload

LOGGER = logging.getLogger(__name__)

SUMMARY_KEY = "conversation_summary"

_FENCED_BLOCK_RE = re.compile(r"```[ \t]*(?:json)?[ \t]*\r?\n?(?P<body>.*?)```", re.IGNORECASE | re.DOTALL)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Phase(str, Enum):
    CONVERSATION = "conversation"
    EXECUTION = "execution"


@dataclass(slots=True)
class ConversationFlow:
    """Phase, confirmed intent and free-form context of one chat session."""

    session_id: str
    phase: Phase = Phase.CONVERSATION
    intent: Intent | None = None
    context: Dict[str, Any] = field(default_factory=dict)
    updated_at: datetime = field(default_factory=_utcnow)

    def is_intent_confirmed(self) -> bool:
        return self.intent is not None and self.intent.confirmed

    def should_execute(self) -> bool:
        return self.phase is Phase.CONVERSATION and self.is_intent_confirmed()

    def move_to_execution(self, intent: Intent) -> None:
        """Enter ``EXECUTION`` with ``intent``; unconfirmed intents are rejected."""

        if intent is None or not intent.confirmed:
            raise IntentValidationError(message="Intent must be confirmed before execution")
        self.intent = intent
        self.phase = Phase.EXECUTION
        self._touch()

    def reset(self) -> None:
        """Return to ``CONVERSATION`` and drop the intent. Context is kept."""

        self.phase = Phase.CONVERSATION
        self.intent = None
        self._touch()

    def add_context(self, key: str, value: Any) -> None:
        self.context[key] = value
        self._touch()

    def get_context(self, key: str, default: Any = None) -> Any:
        return self.context.get(key, default)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "phase": self.phase.value,
            "intent": self.intent.to_dict() if self.intent is not None else None,
            "context": dict(self.context),
            "updatedAt": self.updated_at.isoformat(),
        }

    def _touch(self) -> None:
        self.updated_at = _utcnow()


class ConversationFlowController:
    """Owns the in-memory flow of every session.

    Flows live for the lifetime of the process unless cleared. Each session
    has its own ``asyncio.Lock``; :meth:`session` holds it for a whole turn so
    turns on one session run one at a time while other sessions proceed.
    """

    def __init__(self) -> None:
        self._flows: dict[str, ConversationFlow] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def get_or_create(self, session_id: str) -> ConversationFlow:
        flow = self._flows.get(session_id)
        if flow is None:
            flow = ConversationFlow(session_id=session_id)
            self._flows[session_id] = flow
            LOGGER.debug("Created conversation flow for %s", session_id)
        return flow

    def get(self, session_id: str) -> ConversationFlow | None:
        return self._flows.get(session_id)

    def clear(self, session_id: str) -> None:
        self._flows.pop(session_id, None)
        lock = self._locks.get(session_id)
        if lock is not None and not lock.locked():
            del self._locks[session_id]

    def active_sessions(self) -> list[str]:
        return list(self._flows)

    def lock_for(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    @contextlib.asynccontextmanager
    async def session(self, session_id: str) -> AsyncIterator[ConversationFlow]:
        """Hold the session's lock for the duration of a turn and yield its flow."""

        async with self.lock_for(session_id):
            yield self.get_or_create(session_id)


# ----------------------------------------------------------------------
# Intent extraction
# ----------------------------------------------------------------------
def extract_intent(reply: str | None) -> Intent | None:
    """Return the confirmed intent declared in ``reply``, if any.

    Every fenced code block is considered and the last one holding a
    ``conversation_summary`` object decides. Without fenced blocks, a reply
    that is itself a JSON object is accepted. Unconfirmed summaries, unknown
    categories and malformed JSON all yield ``None``.
    """

    if not reply:
        return None
    summary = _last_summary(reply)
    if summary is None:
        return None
    if summary.get("confirmed") is not True:
        LOGGER.debug("Ignoring unconfirmed conversation summary")
        return None
    intent = intent_from_payload(summary)
    if intent is None:
        LOGGER.warning("Conversation summary has unknown intent %r", summary.get("intent"))
    return intent


def _last_summary(reply: str) -> Mapping[str, Any] | None:
    blocks = [match.group("body") for match in _FENCED_BLOCK_RE.finditer(reply)]
    if not blocks:
        stripped = reply.strip()
        if not stripped.startswith("{"):
            return None
        blocks = [stripped]

    found: Mapping[str, Any] | None = None
    for body in blocks:
        summary = _summary_from_block(body)
        if summary is not None:
            found = summary
    return found


def _summary_from_block(body: str) -> Mapping[str, Any] | None:
    try:
        parsed = json.loads(body.strip())
    except JSONDecodeError as exc:
        LOGGER.debug("Skipping unparseable code block: %s", exc)
        return None
    if not isinstance(parsed, Mapping):
        return None
    summary = parsed.get(SUMMARY_KEY)
    if not isinstance(summary, Mapping):
        return None
    return summary


__all__ = [
    "Phase",
    "ConversationFlow",
    "ConversationFlowController",
    "extract_intent",
    "SUMMARY_KEY",
]
