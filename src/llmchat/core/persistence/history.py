"""Chat history store.

History is a list ordered oldest first; the last chat is the current one.
Writes replace the stored list, trimmed to the most recent chats.
"""

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from ..types import Chat
from . import database
from .models import ChatRecord

logger = structlog.get_logger()

DEFAULT_LIMIT = 20


async def read_chats(session: AsyncSession) -> list[Chat]:
    """Load all stored chats, oldest first."""
    result = await session.execute(select(ChatRecord).order_by(ChatRecord.position))
    return [Chat.model_validate(record.payload) for record in result.scalars()]


async def write_chats(session: AsyncSession, chats: list[Chat], limit: int = DEFAULT_LIMIT) -> int:
    """Replace stored history with the most recent chats.

    Returns:
        Number of chats stored
    """
    kept = chats[-limit:] if limit > 0 else []
    await session.execute(delete(ChatRecord))
    session.add_all(
        ChatRecord(
            position=i,
            created_at=chat.created_at,
            payload=chat.model_dump(mode="json"),
        )
        for i, chat in enumerate(kept)
    )
    await session.flush()
    return len(kept)


async def clear_chats(session: AsyncSession) -> int:
    """Delete all stored chats.

    Returns:
        Number of chats deleted
    """
    result = await session.execute(delete(ChatRecord))
    return result.rowcount or 0


class ChatHistory:
    """Async context manager owning the history database connection.

    Example:
        >>> async with ChatHistory(config.history_db_url) as history:
        ...     chats = await history.read()
        ...     await history.write(chats)
    """

    def __init__(self, db_url: str, limit: int = DEFAULT_LIMIT):
        self.db_url = db_url
        self.limit = limit
        self.engine: AsyncEngine | None = None
        self.sessions: database.SessionFactory | None = None

    async def open(self) -> None:
        self.engine = await database.init_database(self.db_url)
        self.sessions = database.create_session_factory(self.engine)

    async def close(self) -> None:
        if self.engine is not None:
            await database.shutdown(self.engine)
            self.engine = None
            self.sessions = None

    async def __aenter__(self) -> "ChatHistory":
        await self.open()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _session(self):
        if self.sessions is None:
            raise RuntimeError("ChatHistory is not open. Use it as an async context manager.")
        return database.get_session(self.sessions)

    async def read(self) -> list[Chat]:
        async with self._session() as session:
            return await read_chats(session)

    async def write(self, chats: list[Chat]) -> None:
        async with self._session() as session:
            stored = await write_chats(session, chats, self.limit)
        logger.debug("history_written", chats=stored)

    async def clear(self) -> int:
        async with self._session() as session:
            deleted = await clear_chats(session)
        logger.info("history_cleared", chats=deleted)
        return deleted
