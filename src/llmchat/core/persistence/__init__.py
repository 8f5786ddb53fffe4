"""Async SQLite persistence for chat history."""

from .database import create_session_factory, get_session, init_database, shutdown
from .history import ChatHistory, clear_chats, read_chats, write_chats
from .models import Base, ChatRecord

__all__ = [
    "create_session_factory",
    "get_session",
    "init_database",
    "shutdown",
    "ChatHistory",
    "clear_chats",
    "read_chats",
    "write_chats",
    "Base",
    "ChatRecord",
]
