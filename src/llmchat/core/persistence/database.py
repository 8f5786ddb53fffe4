"""Engine and session handling for the chat history store.

The store is normally a single SQLite file under the user's data directory,
opened once per CLI invocation and disposed when the command ends.
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .models import Base

DEFAULT_DB_URL = "sqlite+aiosqlite:///llmchat.db"

SessionFactory = async_sessionmaker[AsyncSession]


def _ensure_sqlite_dir(db_url: str) -> None:
    url = make_url(db_url)
    if url.get_backend_name() == "sqlite" and url.database not in (None, "", ":memory:"):
        Path(url.database).expanduser().parent.mkdir(parents=True, exist_ok=True)


async def init_database(db_url: str = DEFAULT_DB_URL) -> AsyncEngine:
    """Open the history database, creating the file and the chats table on first use.

    Args:
        db_url: SQLAlchemy async URL, e.g. sqlite+aiosqlite:///history.db

    Returns:
        AsyncEngine bound to the store
    """
    _ensure_sqlite_dir(db_url)
    engine = create_async_engine(db_url, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    return engine


def create_session_factory(engine: AsyncEngine) -> SessionFactory:
    # chats are read inside a session and used after it closes
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


@asynccontextmanager
async def get_session(factory: SessionFactory) -> AsyncGenerator[AsyncSession, None]:
    """One unit of work: commit when the block succeeds, roll back when it raises."""
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def shutdown(engine: AsyncEngine) -> None:
    await engine.dispose()
