"""Conversation data model.

Provides:
- ToolId: Tool identifiers a user can request
- TokenCounts: Normalized token usage for one request
- UserMessage / AssistantMessage / ChatMessage: Append-only chat entries
- BackgroundStatus / BackgroundTask: Outstanding asynchronous completion
- Chat: Ordered conversation owned by the caller
- ChatRequest / ChatResponse: Provider-agnostic adapter contract
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .models import Model


class ToolId(str, Enum):
    """Tools a user can request. Validity depends on the provider."""

    SEARCH = "search"
    CODE = "code"
    THINK = "think"
    THINK_HIGH = "think-high"
    NO_THINK = "no-think"


class TokenCounts(BaseModel):
    """Token usage for one request.

    Attributes:
        input: Total input tokens, cache hits included
        output: Output tokens, reasoning included
        input_cache_hit: Input tokens served from the provider's prompt cache
    """

    model_config = ConfigDict(frozen=True)

    input: int = Field(default=0, ge=0)
    output: int = Field(default=0, ge=0)
    input_cache_hit: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _cache_hit_within_input(self) -> "TokenCounts":
        if self.input_cache_hit > self.input:
            raise ValueError(
                f"input_cache_hit ({self.input_cache_hit}) exceeds input ({self.input})"
            )
        return self


class UserMessage(BaseModel):
    """A message typed by the user."""

    model_config = ConfigDict(frozen=True)

    role: Literal["user"] = "user"
    content: str
    image_url: str | None = None


class AssistantMessage(BaseModel):
    """A normalized model reply with its accounting.

    Attributes:
        model: Catalog id of the model that produced the reply
        content: Final answer text
        reasoning: Reasoning trace, when the provider exposed one
        tokens: Token usage
        stop_reason: Provider stop/finish reason
        cost: USD cost of the request
        elapsed_ms: Wall-clock time from request to reply
    """

    model_config = ConfigDict(frozen=True)

    role: Literal["assistant"] = "assistant"
    model: str
    content: str
    reasoning: str | None = None
    tokens: TokenCounts
    stop_reason: str
    cost: float
    elapsed_ms: float


ChatMessage = Annotated[UserMessage | AssistantMessage, Field(discriminator="role")]


class BackgroundStatus(str, Enum):
    """Lifecycle of a background completion.

    QUEUED and IN_PROGRESS are the only non-terminal states. INCOMPLETE is
    what the provider reports when a run stops early (for example on the
    output token limit). ERRORED covers any status string we do not know.
    """

    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    INCOMPLETE = "incomplete"
    ERRORED = "errored"

    @property
    def is_terminal(self) -> bool:
        return self not in (BackgroundStatus.QUEUED, BackgroundStatus.IN_PROGRESS)

    @classmethod
    def from_provider(cls, value: str | None) -> "BackgroundStatus":
        """Map a provider status string, falling back to ERRORED."""
        try:
            return cls(value)
        except ValueError:
            return cls.ERRORED


class BackgroundTask(BaseModel):
    """An outstanding background completion attached to a chat."""

    model_config = ConfigDict(frozen=True)

    provider_request_id: str
    status: BackgroundStatus
    provider: str
    model_id: str
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Chat(BaseModel):
    """An ordered conversation.

    Messages are only ever appended. background_task is set while a
    background completion is outstanding and cleared once it reaches a
    terminal status or is cancelled.
    """

    # For now the system prompt cannot change mid-chat, otherwise every
    # message would need to carry its own.
    system_prompt: str | None = None
    messages: list[ChatMessage] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    summary: str | None = None
    background_task: BackgroundTask | None = None

    def last_model_id(self) -> str | None:
        """Return the model id of the most recent assistant message."""
        for message in reversed(self.messages):
            if isinstance(message, AssistantMessage):
                return message.model
        return None


class ChatRequest(BaseModel):
    """Immutable snapshot handed to a provider adapter."""

    model_config = ConfigDict(frozen=True)

    system_prompt: str | None = None
    prior_messages: tuple[ChatMessage, ...] = ()
    new_user_input: str
    image_url: str | None = None
    model: Model
    tools: frozenset[ToolId] = frozenset()

    @classmethod
    def from_chat(
        cls,
        chat: Chat,
        new_user_input: str,
        model: Model,
        tools: frozenset[ToolId] = frozenset(),
        image_url: str | None = None,
    ) -> "ChatRequest":
        return cls(
            system_prompt=chat.system_prompt,
            prior_messages=tuple(chat.messages),
            new_user_input=new_user_input,
            image_url=image_url,
            model=model,
            tools=tools,
        )


class ChatResponse(BaseModel):
    """Provider-agnostic adapter result.

    Attributes:
        content: Final answer text, with any tool output and sources rendered in
        reasoning: Reasoning trace, when the provider exposed one
        tokens: Normalized token usage
        stop_reason: Provider stop/finish reason
        extra_usage_count: Billable per-call extras (web searches)
    """

    content: str
    reasoning: str | None = None
    tokens: TokenCounts = Field(default_factory=TokenCounts)
    stop_reason: str
    extra_usage_count: int = Field(default=0, ge=0)
