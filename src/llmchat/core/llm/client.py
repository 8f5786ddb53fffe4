"""LLM provider abstraction layer.

Provides a protocol-based interface for provider adapters and the client
that dispatches to them. Every adapter takes an immutable ChatRequest and
returns a fresh ChatResponse, so no adapter holds per-request state.
"""

import time
from collections.abc import Callable, Iterable
from typing import Protocol, assert_never, runtime_checkable

import structlog

from ..config import Config, load_config
from ..cost import get_cost
from ..errors import BackgroundNotSupported, BackgroundTaskPending
from ..models import Model, PriceTier, Provider, effective_model, resolve_model
from ..types import (
    AssistantMessage,
    BackgroundStatus,
    Chat,
    ChatRequest,
    ChatResponse,
    UserMessage,
)
from .anthropic_provider import AnthropicProvider
from .anthropic_provider import ENV_VAR as ANTHROPIC_ENV_VAR
from .background import BackgroundResult, BackgroundTaskManager
from .google_provider import ENV_VAR as GEMINI_ENV_VAR
from .google_provider import GoogleProvider
from .openai_compat_provider import COMPAT_PROFILES, OpenAICompatProvider
from .openai_responses_provider import ENV_VAR as OPENAI_ENV_VAR
from .openai_responses_provider import OpenAIResponsesProvider
from .tools import validate_image, validate_tools

logger = structlog.get_logger()


@runtime_checkable
class LLMProvider(Protocol):
    """Protocol every provider adapter implements.

    Attributes:
        provider: Provider id served by the adapter
        price_tiers: Threshold price overrides the adapter knows about
    """

    provider: Provider
    price_tiers: tuple[PriceTier, ...]

    async def send(self, request: ChatRequest) -> ChatResponse:
        """Send one request and wait for the normalized response.

        Raises:
            NoResponseContent: If the provider returned no message
            ProviderRequestFailed: On any API or network error
        """
        ...


def fork_chat(chat: Chat, index: int) -> Chat:
    """Copy a chat up to and including the message at index.

    The copy gets a fresh created_at and no background task.

    Raises:
        IndexError: If index is outside the chat
    """
    if not 0 <= index < len(chat.messages):
        raise IndexError(f"Message index {index} out of range")

    return Chat(
        system_prompt=chat.system_prompt,
        messages=[m.model_copy(deep=True) for m in chat.messages[: index + 1]],
        summary=chat.summary,
    )


class LLMClient:
    """Dispatches requests to provider adapters and prices the results.

    Adapters are constructed on first use, so a missing API key fails with
    MissingCredential before any network call, and only for the provider
    actually requested.
    """

    def __init__(
        self,
        config: Config | None = None,
        providers: dict[Provider, LLMProvider] | None = None,
    ):
        """Initialize the client.

        Args:
            config: Application config (loaded from environment if None)
            providers: Pre-built adapters, mostly for tests
        """
        self.config = config or load_config()
        self._providers: dict[Provider, LLMProvider] = dict(providers or {})

    def _build_provider(self, provider: Provider) -> LLMProvider:
        key = self.config.api_key_for
        match provider:
            case Provider.ANTHROPIC:
                return AnthropicProvider(api_key=key(ANTHROPIC_ENV_VAR))
            case Provider.OPENAI:
                return OpenAIResponsesProvider(api_key=key(OPENAI_ENV_VAR))
            case Provider.GOOGLE:
                return GoogleProvider(api_key=key(GEMINI_ENV_VAR))
            case (
                Provider.DEEPSEEK
                | Provider.GROQ
                | Provider.CEREBRAS
                | Provider.XAI
                | Provider.OPENROUTER
            ):
                profile = COMPAT_PROFILES[provider]
                return OpenAICompatProvider(profile, api_key=key(profile.env_var))
            case _:
                assert_never(provider)

    def get_provider(self, provider: Provider | str) -> LLMProvider:
        """Return the adapter for a provider, building it on first use.

        Raises:
            MissingCredential: If the provider's API key is not configured
        """
        provider = Provider(provider)
        if provider not in self._providers:
            self._providers[provider] = self._build_provider(provider)
        return self._providers[provider]

    async def send(self, provider: Provider | str, request: ChatRequest) -> ChatResponse:
        """Send a request through the provider's adapter."""
        return await self.get_provider(provider).send(request)

    def price(self, model: Model, response: ChatResponse) -> float:
        """Cost of a response, with any threshold price tier applied."""
        tiers = getattr(self.get_provider(model.provider), "price_tiers", ())
        priced = effective_model(model, response.tokens.input, tiers)
        return get_cost(priced, response.tokens, response.extra_usage_count)

    def _prepare(
        self,
        chat: Chat,
        input: str,
        model: Model,
        tools: Iterable[str],
        image_url: str | None,
    ) -> ChatRequest:
        permitted = validate_tools(model.provider, tools)
        validate_image(model.provider, image_url)

        request = ChatRequest.from_chat(chat, input, model, permitted, image_url)
        chat.messages.append(UserMessage(content=input, image_url=image_url))
        return request

    def _assistant_message(
        self, model: Model, response: ChatResponse, elapsed_ms: float
    ) -> AssistantMessage:
        return AssistantMessage(
            model=model.id,
            content=response.content,
            reasoning=response.reasoning,
            tokens=response.tokens,
            stop_reason=response.stop_reason,
            cost=self.price(model, response),
            elapsed_ms=elapsed_ms,
        )

    async def complete(
        self,
        chat: Chat,
        input: str,
        model: Model,
        tools: Iterable[str] = (),
        image_url: str | None = None,
        background: bool = False,
    ) -> AssistantMessage | None:
        """Run one conversational turn and append it to the chat.

        Tools and image are validated before anything is appended or sent.
        With background=True the turn is submitted through start_background
        and None is returned; the reply arrives via resume_background.

        Args:
            chat: Chat to extend (mutated in place)
            input: New user message
            model: Resolved catalog model
            tools: Requested tool names
            image_url: Optional image for providers that accept one
            background: Submit in background mode instead of waiting

        Returns:
            The appended AssistantMessage, or None in background mode

        Raises:
            ToolNotSupported: If tools or image are not valid for the provider
            BackgroundTaskPending: If the chat has an outstanding background task
            MissingCredential: If the provider's API key is not configured
            ProviderRequestFailed: On any API or network error
        """
        if background:
            await self.start_background(chat, input, model, tools, image_url)
            return None

        if chat.background_task is not None:
            raise BackgroundTaskPending(chat.background_task.provider_request_id)

        request = self._prepare(chat, input, model, tools, image_url)

        log = logger.bind(model=model.id, messages=len(chat.messages))
        start = time.perf_counter()
        try:
            response = await self.send(model.provider, request)
        except BaseException:
            # the turn failed, drop its user message
            chat.messages.pop()
            raise
        elapsed_ms = (time.perf_counter() - start) * 1000

        message = self._assistant_message(model, response, elapsed_ms)
        chat.messages.append(message)
        log.info("chat_turn_complete", cost=message.cost, elapsed_ms=round(elapsed_ms))
        return message

    def background(self) -> BackgroundTaskManager:
        """Background task manager over the OpenAI Responses adapter."""
        provider = self.get_provider(Provider.OPENAI)
        return BackgroundTaskManager(provider, poll_interval=self.config.poll_interval_seconds)

    async def start_background(
        self,
        chat: Chat,
        input: str,
        model: Model,
        tools: Iterable[str] = (),
        image_url: str | None = None,
    ) -> None:
        """Submit a turn in background mode and store the task on the chat.

        Raises:
            BackgroundNotSupported: If the model is not served by OpenAI
            BackgroundTaskPending: If the chat already has a background task
        """
        if model.provider is not Provider.OPENAI:
            raise BackgroundNotSupported(model.provider.value)
        if chat.background_task is not None:
            raise BackgroundTaskPending(chat.background_task.provider_request_id)

        manager = self.background()
        request = self._prepare(chat, input, model, tools, image_url)
        try:
            chat.background_task = await manager.initiate(request)
        except BaseException:
            chat.messages.pop()
            raise

    async def resume_background(
        self,
        chat: Chat,
        on_tick: Callable[[BackgroundStatus, float], None] | None = None,
        cancel_on_abort: bool = True,
    ) -> tuple[BackgroundResult, AssistantMessage | None]:
        """Wait for the chat's background task and append the reply if it completed.

        Returns:
            (result, appended message or None when the task did not complete)
        """
        task = chat.background_task
        result = await self.background().resume(chat, on_tick, cancel_on_abort)
        if result.response is None or task is None:
            return result, None

        model = resolve_model(task.model_id)
        message = self._assistant_message(model, result.response, result.elapsed_ms)
        chat.messages.append(message)
        return result, message

    async def cancel_background(self, chat: Chat) -> None:
        """Cancel the chat's background task and clear it locally."""
        await self.background().cancel(chat)

