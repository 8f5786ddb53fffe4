"""Tests for the SQLite chat history store."""

import pytest

from llmchat.core.persistence.history import ChatHistory
from llmchat.core.types import (
    AssistantMessage,
    BackgroundStatus,
    BackgroundTask,
    Chat,
    TokenCounts,
    UserMessage,
)


@pytest.fixture
async def history(tmp_path):
    """Fresh history database in a nested directory that does not exist yet."""
    db_url = f"sqlite+aiosqlite:///{tmp_path / 'nested' / 'history.db'}"
    async with ChatHistory(db_url, limit=3) as store:
        yield store


def make_chat(n: int) -> Chat:
    return Chat(
        system_prompt=f"prompt {n}",
        messages=[
            UserMessage(content=f"question {n}", image_url="https://x/y.png"),
            AssistantMessage(
                model="sonnet-4.5",
                content=f"answer {n}",
                reasoning="thinking",
                tokens=TokenCounts(input=10, output=5, input_cache_hit=2),
                stop_reason="end_turn",
                cost=0.001,
                elapsed_ms=1234.5,
            ),
        ],
    )


@pytest.mark.asyncio
async def test_empty_history(history):
    assert await history.read() == []


@pytest.mark.asyncio
async def test_round_trip_preserves_chat(history):
    chat = make_chat(1)
    chat.summary = "Capital cities"
    chat.background_task = BackgroundTask(
        provider_request_id="resp_1",
        status=BackgroundStatus.IN_PROGRESS,
        provider="openai",
        model_id="gpt-5",
    )

    await history.write([chat])
    [loaded] = await history.read()

    assert loaded == chat
    assert isinstance(loaded.messages[1], AssistantMessage)
    assert loaded.background_task.status is BackgroundStatus.IN_PROGRESS


@pytest.mark.asyncio
async def test_write_keeps_most_recent_in_order(history):
    chats = [make_chat(n) for n in range(5)]

    await history.write(chats)
    loaded = await history.read()

    assert [c.system_prompt for c in loaded] == ["prompt 2", "prompt 3", "prompt 4"]


@pytest.mark.asyncio
async def test_write_replaces_previous_contents(history):
    await history.write([make_chat(1), make_chat(2)])
    await history.write([make_chat(3)])

    assert [c.system_prompt for c in await history.read()] == ["prompt 3"]


@pytest.mark.asyncio
async def test_clear(history):
    await history.write([make_chat(1), make_chat(2)])

    assert await history.clear() == 2
    assert await history.read() == []


@pytest.mark.asyncio
async def test_read_requires_open_store(tmp_path):
    store = ChatHistory(f"sqlite+aiosqlite:///{tmp_path / 'history.db'}")

    with pytest.raises(RuntimeError, match="not open"):
        await store.read()


@pytest.mark.asyncio
async def test_reopen_sees_stored_chats(tmp_path):
    db_url = f"sqlite+aiosqlite:///{tmp_path / 'history.db'}"
    async with ChatHistory(db_url) as store:
        await store.write([make_chat(1)])

    async with ChatHistory(db_url) as store:
        [chat] = await store.read()

    assert chat.system_prompt == "prompt 1"
