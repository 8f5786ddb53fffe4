"""SQLAlchemy ORM models for chat history.

A chat is stored as one JSON document; the table is an ordered log, not a
normalized schema.
"""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, DateTime, Integer
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


class ChatRecord(Base):
    """One stored chat.

    Attributes:
        id: Auto-incrementing primary key
        position: Order in history, 0 is the oldest
        created_at: When the chat was started
        updated_at: When the row was last written
        payload: JSON dump of the Chat model
    """
    __tablename__ = "chats"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    position: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
