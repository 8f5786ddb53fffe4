"""Tests for best-effort chat summaries."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from llmchat.core.config import Config
from llmchat.core.errors import ProviderRequestFailed
from llmchat.core.llm.client import LLMClient
from llmchat.core.models import Provider
from llmchat.core.summarize import excerpt, summarize_chats
from llmchat.core.types import Chat, ChatResponse, UserMessage


def make_client(send: AsyncMock, key: str = "cerebras-key") -> LLMClient:
    adapter = MagicMock()
    adapter.send = send
    return LLMClient(config=Config(cerebras_api_key=key), providers={Provider.CEREBRAS: adapter})


def chat(content: str, summary: str | None = None) -> Chat:
    return Chat(messages=[UserMessage(content=content)], summary=summary)


def test_excerpt_abridges_long_messages():
    long = "a" * 60 + "b" * 60
    assert excerpt(chat(long)) == "a" * 50 + "..." + "b" * 50
    assert excerpt(chat("short")) == "short"


@pytest.mark.asyncio
async def test_fills_missing_summaries_only():
    send = AsyncMock(return_value=ChatResponse(content=" Paris trivia \n", stop_reason="stop"))
    chats = [chat("capital of France?"), chat("done", summary="Existing")]

    count = await summarize_chats(make_client(send), chats)

    assert count == 1
    assert chats[0].summary == "Paris trivia"
    assert chats[1].summary == "Existing"
    request = send.call_args.args[0]
    assert request.model.id == "cerebras-llama"
    assert "<excerpt>capital of France?</excerpt>" in request.new_user_input


@pytest.mark.asyncio
async def test_skipped_without_key():
    send = AsyncMock()
    chats = [chat("hello")]

    assert await summarize_chats(make_client(send, key=""), chats) == 0
    send.assert_not_called()
    assert chats[0].summary is None


@pytest.mark.asyncio
async def test_failures_leave_chat_unsummarized():
    send = AsyncMock(
        side_effect=[
            ProviderRequestFailed("cerebras", "boom", 503),
            ChatResponse(content="Second", stop_reason="stop"),
        ]
    )
    chats = [chat("first"), chat("second")]

    count = await summarize_chats(make_client(send), chats)

    assert count == 1
    assert chats[0].summary is None
    assert chats[1].summary == "Second"


@pytest.mark.asyncio
async def test_unexpected_errors_are_logged_not_raised():
    send = AsyncMock(side_effect=ValueError("bad payload"))
    chats = [chat("first")]

    with patch("llmchat.core.summarize.logger") as log:
        count = await summarize_chats(make_client(send), chats)

    assert count == 0
    assert chats[0].summary is None
    assert log.warning.call_args.args == ("summary_failed",)
    assert isinstance(log.warning.call_args.kwargs["exc_info"], ValueError)
