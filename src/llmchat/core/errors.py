"""Error types raised by the provider and accounting core.

Every error the core raises derives from LLMChatError so the CLI can catch
the whole family in one place. None of these are retried internally.
"""

from typing import Any, Iterable


class LLMChatError(Exception):
    """Base class for all llmchat errors."""


class ModelNotFound(LLMChatError):
    """Raised when a model query matches nothing in the catalog."""

    def __init__(self, query: str):
        self.query = query
        super().__init__(
            f"Model '{query}' not found. Use the models command to list models."
        )


class ToolNotSupported(LLMChatError):
    """Raised when tools are requested for a provider that has none."""

    def __init__(self, provider: str, tools: Iterable[str], message: str | None = None):
        self.provider = provider
        self.tools = list(tools)
        super().__init__(message or f"Tools are not supported by {provider} models")


class InvalidTool(ToolNotSupported):
    """Raised when some requested tools are outside the provider's allow-list."""

    def __init__(
        self,
        provider: str,
        tools: Iterable[str],
        allowed: Iterable[str],
        message: str | None = None,
    ):
        self.allowed = list(allowed)
        tools = list(tools)
        bad = ", ".join(f"`{t}`" for t in tools)
        super().__init__(
            provider,
            tools,
            message
            or f"Invalid tools: {bad}. Valid tools for {provider} models are: "
            f"{', '.join(self.allowed)}",
        )


class MissingCredential(LLMChatError):
    """Raised before any network call when an API key is not configured."""

    def __init__(self, env_var: str):
        self.env_var = env_var
        super().__init__(f"{env_var} environment variable not set")


class NoResponseContent(LLMChatError):
    """Raised when a provider returns a valid response without a message body."""

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"No response content returned by {provider}")


class ProviderRequestFailed(LLMChatError):
    """Raised for any HTTP, network or API error from a provider.

    Attributes:
        provider: Provider id the request was sent to
        status_code: HTTP status code when the provider answered, else None
        payload: Raw error body when available
    """

    def __init__(
        self,
        provider: str,
        message: str,
        status_code: int | None = None,
        payload: Any = None,
    ):
        self.provider = provider
        self.status_code = status_code
        self.payload = payload
        prefix = f"{provider} request failed"
        if status_code is not None:
            prefix += f" ({status_code})"
        super().__init__(f"{prefix}: {message}")


class BackgroundNotSupported(LLMChatError):
    """Raised when background mode is requested for a provider without it."""

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"Background mode is not supported by {provider} models")


class BackgroundTaskPending(LLMChatError):
    """Raised when a chat already has an outstanding background task."""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(
            f"Background task {task_id} is still pending. Resume or cancel it first."
        )


class NoBackgroundTask(LLMChatError):
    """Raised when resuming or cancelling a chat with no background task."""

    def __init__(self):
        super().__init__("No background task in progress")


class InvalidMessageSpec(LLMChatError):
    """Raised when a message selection like '1,3-4' cannot be parsed."""
