"""Tests for the in-memory chat history store and message models."""

from __future__ import annotations

import pytest

from highlight_assistant.chat.history import InMemoryHistoryStore
from highlight_assistant.chat.message_model import ChatMessage, Session


def _session(session_id: str = "s1") -> Session:
    return Session(session_id=session_id, subject_id="p1", endpoint_id="highlight_ordering")


@pytest.mark.asyncio
async def test_history_is_limited_to_most_recent() -> None:
    store = InMemoryHistoryStore()
    session = _session()
    for index in range(5):
        await store.record(session, ChatMessage(role="user", content=f"m{index}"))

    recent = await store.get_history(session, 2)
    assert [message.content for message in recent] == ["m3", "m4"]
    assert await store.get_history(session, 0) == []


@pytest.mark.asyncio
async def test_sessions_are_isolated_and_capped() -> None:
    store = InMemoryHistoryStore(max_messages=3)
    one, two = _session("one"), _session("two")
    store.extend(one, [ChatMessage(role="user", content=str(index)) for index in range(5)])
    await store.record(two, ChatMessage(role="assistant", content="hello"))

    assert [message.content for message in store.messages("one")] == ["2", "3", "4"]
    assert store.snapshot() == {"sessions": 2, "message_count": 4, "max_messages": 3}

    await store.clear("one")
    assert store.messages("one") == []
    assert len(store.messages("two")) == 1


def test_message_serialization() -> None:
    message = ChatMessage(role="assistant", content="Done", hidden_content='{"conversation_summary": {}}')
    data = message.to_dict()

    assert data["id"].startswith("msg_")
    assert data["hidden_content"] == '{"conversation_summary": {}}'
    assert message.as_prompt_message() == {"role": "assistant", "content": "Done"}
    assert "hidden_content" not in ChatMessage(role="user", content="Hi").to_dict()
