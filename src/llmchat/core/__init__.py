"""Core chat functionality.

Provides:
- Model catalog and resolution
- Token-based cost calculation
- Conversation data model
"""

from .cost import get_cost
from .models import MODELS, Model, Provider, default_model, effective_model, resolve_model
from .types import (
    AssistantMessage,
    BackgroundStatus,
    BackgroundTask,
    Chat,
    ChatRequest,
    ChatResponse,
    TokenCounts,
    ToolId,
    UserMessage,
)

__all__ = [
    "get_cost",
    "MODELS",
    "Model",
    "Provider",
    "default_model",
    "effective_model",
    "resolve_model",
    "AssistantMessage",
    "BackgroundStatus",
    "BackgroundTask",
    "Chat",
    "ChatRequest",
    "ChatResponse",
    "TokenCounts",
    "ToolId",
    "UserMessage",
]
