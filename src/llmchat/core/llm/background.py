"""Background completions on the OpenAI Responses API.

A background task moves queued -> in_progress -> a terminal status. The
manager never blocks in initiate; resume polls on a fixed interval until the
task is terminal. Cancelling the asyncio task running resume interrupts the
pending sleep or the in-flight HTTP call.

The chat's background_task is only refreshed by resume. If the process dies
mid-poll, the stored status stays at its last saved value until the next
resume, which is accepted.
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass

import structlog

from ..errors import NoBackgroundTask
from ..types import BackgroundStatus, BackgroundTask, Chat, ChatRequest, ChatResponse
from .openai_responses_provider import OpenAIResponsesProvider

logger = structlog.get_logger()


@dataclass
class BackgroundResult:
    """Outcome of resume.

    Attributes:
        status: Terminal status reached
        response: Normalized result, only when status is COMPLETED
        elapsed_ms: Time since the task was started
    """

    status: BackgroundStatus
    response: ChatResponse | None
    elapsed_ms: float


def _elapsed_ms(task: BackgroundTask) -> float:
    return (time.time() - task.started_at.timestamp()) * 1000


class BackgroundTaskManager:
    """State machine over one provider's background mode."""

    def __init__(self, provider: OpenAIResponsesProvider, poll_interval: float = 5.0):
        """Initialize the manager.

        Args:
            provider: Responses API adapter used for create/retrieve/cancel
            poll_interval: Seconds between status checks in resume
        """
        self.provider = provider
        self.poll_interval = poll_interval

    async def initiate(self, request: ChatRequest) -> BackgroundTask:
        """Submit a request in background mode without waiting for it.

        Returns:
            BackgroundTask for the caller to store on the chat
        """
        response = await self.provider.create_background(request)
        task = BackgroundTask(
            provider_request_id=response.id,
            status=BackgroundStatus.from_provider(response.status),
            provider=self.provider.provider.value,
            model_id=request.model.id,
        )
        logger.info(
            "background_task_started",
            task_id=task.provider_request_id,
            status=task.status.value,
            model=task.model_id,
        )
        return task

    async def poll_status(self, task_id: str) -> BackgroundStatus:
        """Check a task's status once. Has no side effects."""
        response = await self.provider.retrieve(task_id)
        status = BackgroundStatus.from_provider(response.status)
        logger.debug("background_task_polled", task_id=task_id, status=status.value)
        return status

    async def resume(
        self,
        chat: Chat,
        on_tick: Callable[[BackgroundStatus, float], None] | None = None,
        cancel_on_abort: bool = True,
    ) -> BackgroundResult:
        """Poll the chat's background task until it is terminal.

        Args:
            chat: Chat owning the task; its background_task is updated in place
            on_tick: Called with (status, elapsed_ms) after every poll
            cancel_on_abort: When the surrounding asyncio task is cancelled,
                cancel on the provider and clear the chat's task before
                re-raising. With False the task is left as last saved.

        Returns:
            BackgroundResult with the normalized response when completed

        Raises:
            NoBackgroundTask: If the chat has no background task
            asyncio.CancelledError: If the surrounding task was cancelled
        """
        task = chat.background_task
        if task is None:
            raise NoBackgroundTask()

        log = logger.bind(task_id=task.provider_request_id)
        try:
            while True:
                response = await self.provider.retrieve(task.provider_request_id)
                status = BackgroundStatus.from_provider(response.status)
                log.debug("background_task_polled", status=status.value)
                elapsed = _elapsed_ms(task)
                chat.background_task = task = task.model_copy(update={"status": status})
                if on_tick is not None:
                    on_tick(status, elapsed)
                if status.is_terminal:
                    break
                await asyncio.sleep(self.poll_interval)
        except asyncio.CancelledError:
            if cancel_on_abort:
                log.info("background_task_aborted")
                await self.cancel(chat)
            else:
                log.info("background_task_detached", status=task.status.value)
            raise

        elapsed = _elapsed_ms(task)
        result = None
        try:
            if status is BackgroundStatus.COMPLETED:
                # the last poll already carries the full result
                result = self.provider.to_chat_response(response)
        finally:
            # a terminal task is never polled again
            chat.background_task = None
        log.info("background_task_finished", status=status.value, elapsed_ms=elapsed)
        return BackgroundResult(status=status, response=result, elapsed_ms=elapsed)

    async def cancel(self, chat: Chat) -> None:
        """Cancel the chat's background task on the provider.

        The task is cleared from the chat even if the provider call fails;
        the error still propagates.

        Raises:
            NoBackgroundTask: If the chat has no background task
        """
        task = chat.background_task
        if task is None:
            raise NoBackgroundTask()

        try:
            await self.provider.cancel(task.provider_request_id)
        finally:
            chat.background_task = None
            logger.info("background_task_cancelled", task_id=task.provider_request_id)
