"""Short chat summaries for the history list.

Summaries come from a fast, cheap model. They are display sugar: any failure
is logged and the chat simply stays unsummarized.
"""

import asyncio

import structlog

from .llm.client import LLMClient
from .models import resolve_model
from .types import Chat, ChatRequest

logger = structlog.get_logger()

SUMMARY_MODEL_ID = "cerebras-llama"
SUMMARY_ENV_VAR = "CEREBRAS_API_KEY"

SUMMARY_SYSTEM_PROMPT = (
    "You are summarizing LLM chats based on excerpts for use in a TUI conversation "
    "list. Be concise and accurate. Include details like names to help identify that "
    "chat. Only provide the summary; do not include explanation or followup "
    "questions. Do not end with a period."
)


def excerpt(chat: Chat) -> str:
    """First message, abridged to its first and last 50 characters when long."""
    first = chat.messages[0].content
    if len(first) > 100:
        return first[:50] + "..." + first[-50:]
    return first


async def summarize_chat(client: LLMClient, chat: Chat) -> str:
    """Ask the summary model for a few-word title of a chat."""
    model = resolve_model(SUMMARY_MODEL_ID)
    request = ChatRequest(
        system_prompt=SUMMARY_SYSTEM_PROMPT,
        new_user_input=(
            "Please summarize an LLM chat based on the following excerpt from the first "
            "message. Use as few words as possible. Ideally 3-6 words, but up to 10. "
            f"\n\n<excerpt>{excerpt(chat)}</excerpt>"
        ),
        model=model,
    )
    response = await client.send(model.provider, request)
    return response.content.strip()


async def summarize_chats(client: LLMClient, chats: list[Chat]) -> int:
    """Fill in the summary of every chat that lacks one.

    Requests run concurrently. Chats are updated in place.

    Returns:
        Number of chats that received a summary
    """
    pending = [c for c in chats if not c.summary and c.messages]
    if not pending:
        return 0

    if client.config.api_key_for(SUMMARY_ENV_VAR) is None:
        logger.warning("summaries_skipped", reason=f"{SUMMARY_ENV_VAR} not set")
        return 0

    results = await asyncio.gather(
        *(summarize_chat(client, chat) for chat in pending),
        return_exceptions=True,
    )

    done = 0
    for chat, result in zip(pending, results):
        if isinstance(result, Exception):
            logger.warning("summary_failed", error=str(result), exc_info=result)
        elif isinstance(result, BaseException):
            raise result
        else:
            chat.summary = result
            done += 1

    logger.debug("summaries_generated", count=done)
    return done
