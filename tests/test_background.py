"""Unit tests for the background task state machine."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import make_request
from llmchat.core.errors import NoBackgroundTask, NoResponseContent, ProviderRequestFailed
from llmchat.core.llm.background import BackgroundTaskManager
from llmchat.core.models import Provider
from llmchat.core.types import BackgroundStatus, BackgroundTask, Chat, ChatResponse


def remote(status, response_id="resp_1"):
    return SimpleNamespace(id=response_id, status=status)


def make_adapter(*statuses):
    """Fake Responses adapter whose retrieve walks through the given statuses."""
    adapter = MagicMock()
    adapter.provider = Provider.OPENAI
    adapter.create_background = AsyncMock(return_value=remote("queued"))
    adapter.retrieve = AsyncMock(side_effect=[remote(s) for s in statuses])
    adapter.cancel = AsyncMock(return_value=remote("cancelled"))
    adapter.to_chat_response = MagicMock(
        return_value=ChatResponse(content="done", stop_reason="completed")
    )
    return adapter


def chat_with_task(status=BackgroundStatus.QUEUED) -> Chat:
    return Chat(
        background_task=BackgroundTask(
            provider_request_id="resp_1",
            status=status,
            provider="openai",
            model_id="gpt-5",
        )
    )


@pytest.mark.asyncio
async def test_initiate_returns_immediately_with_pending_status():
    adapter = make_adapter()
    manager = BackgroundTaskManager(adapter, poll_interval=0)

    task = await manager.initiate(make_request("gpt-5"))

    assert task.provider_request_id == "resp_1"
    assert task.status is BackgroundStatus.QUEUED
    assert task.provider == "openai"
    assert task.model_id == "gpt-5"
    adapter.retrieve.assert_not_called()


@pytest.mark.asyncio
async def test_poll_status_has_no_side_effects():
    adapter = make_adapter("in_progress", "in_progress")
    manager = BackgroundTaskManager(adapter, poll_interval=0)
    chat = chat_with_task()

    assert await manager.poll_status("resp_1") is BackgroundStatus.IN_PROGRESS
    assert await manager.poll_status("resp_1") is BackgroundStatus.IN_PROGRESS
    assert chat.background_task.provider_request_id == "resp_1"
    assert chat.background_task.status is BackgroundStatus.QUEUED


@pytest.mark.asyncio
async def test_resume_polls_until_completed():
    adapter = make_adapter("queued", "in_progress", "completed")
    manager = BackgroundTaskManager(adapter, poll_interval=0)
    chat = chat_with_task()
    ticks = []

    result = await manager.resume(chat, on_tick=lambda status, ms: ticks.append(status))

    assert ticks == [
        BackgroundStatus.QUEUED,
        BackgroundStatus.IN_PROGRESS,
        BackgroundStatus.COMPLETED,
    ]
    assert result.status is BackgroundStatus.COMPLETED
    assert result.response.content == "done"
    assert result.elapsed_ms >= 0
    assert chat.background_task is None
    assert adapter.retrieve.await_count == 3


@pytest.mark.parametrize("status", ["failed", "cancelled", "incomplete"])
@pytest.mark.asyncio
async def test_resume_reports_unsuccessful_terminal_status(status):
    adapter = make_adapter("in_progress", status)
    manager = BackgroundTaskManager(adapter, poll_interval=0)
    chat = chat_with_task()

    result = await manager.resume(chat)

    assert result.status is BackgroundStatus(status)
    assert result.response is None
    assert chat.background_task is None
    adapter.to_chat_response.assert_not_called()


@pytest.mark.asyncio
async def test_unknown_status_is_errored():
    adapter = make_adapter("exploded")
    manager = BackgroundTaskManager(adapter, poll_interval=0)

    result = await manager.resume(chat_with_task())

    assert result.status is BackgroundStatus.ERRORED


@pytest.mark.asyncio
async def test_unreadable_result_still_clears_task():
    adapter = make_adapter("completed")
    adapter.to_chat_response = MagicMock(side_effect=NoResponseContent("openai"))
    manager = BackgroundTaskManager(adapter, poll_interval=0)
    chat = chat_with_task()

    with pytest.raises(NoResponseContent):
        await manager.resume(chat)

    assert chat.background_task is None


@pytest.mark.asyncio
async def test_resume_without_task_raises():
    manager = BackgroundTaskManager(make_adapter(), poll_interval=0)

    with pytest.raises(NoBackgroundTask):
        await manager.resume(Chat())


@pytest.mark.asyncio
async def test_abort_cancels_remotely_and_clears_task():
    adapter = make_adapter(*["in_progress"] * 100)
    manager = BackgroundTaskManager(adapter, poll_interval=10)
    chat = chat_with_task()

    task = asyncio.create_task(manager.resume(chat))
    await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    adapter.cancel.assert_awaited_once_with("resp_1")
    assert chat.background_task is None


@pytest.mark.asyncio
async def test_abort_can_detach_and_leave_task_stale():
    adapter = make_adapter(*["in_progress"] * 100)
    manager = BackgroundTaskManager(adapter, poll_interval=10)
    chat = chat_with_task()

    task = asyncio.create_task(manager.resume(chat, cancel_on_abort=False))
    await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    adapter.cancel.assert_not_called()
    assert chat.background_task is not None
    assert chat.background_task.status is BackgroundStatus.IN_PROGRESS


@pytest.mark.asyncio
async def test_cancel_clears_task():
    adapter = make_adapter()
    manager = BackgroundTaskManager(adapter, poll_interval=0)
    chat = chat_with_task()

    await manager.cancel(chat)

    adapter.cancel.assert_awaited_once_with("resp_1")
    assert chat.background_task is None


@pytest.mark.asyncio
async def test_cancel_clears_task_even_when_provider_fails():
    adapter = make_adapter()
    adapter.cancel = AsyncMock(side_effect=ProviderRequestFailed("openai", "boom"))
    manager = BackgroundTaskManager(adapter, poll_interval=0)
    chat = chat_with_task()

    with pytest.raises(ProviderRequestFailed):
        await manager.cancel(chat)

    assert chat.background_task is None


@pytest.mark.asyncio
async def test_cancel_without_task_raises():
    manager = BackgroundTaskManager(make_adapter(), poll_interval=0)

    with pytest.raises(NoBackgroundTask):
        await manager.cancel(Chat())
