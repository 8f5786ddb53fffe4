"""OpenAI Responses API provider implementation.

Implements the LLMProvider protocol on the Responses API, plus the three
calls background mode needs: create with background=True, retrieve, and
cancel. Synchronous and background results go through the same
to_chat_response normalization.
"""

import os
from collections.abc import Awaitable
from typing import Any, TypeVar

import openai
import structlog
from openai import AsyncOpenAI

from ..errors import MissingCredential, NoResponseContent, ProviderRequestFailed
from ..models import PriceTier, Provider
from ..types import ChatMessage, ChatRequest, ChatResponse, TokenCounts, ToolId, UserMessage

logger = structlog.get_logger()

ENV_VAR = "OPENAI_API_KEY"

DEFAULT_EFFORT = "low"
REASONING_EFFORT = {
    ToolId.NO_THINK: "minimal",
    ToolId.THINK: "medium",
    ToolId.THINK_HIGH: "high",
}

# Models that accept only one effort level
FIXED_EFFORT = {"gpt-5-pro": "high"}
# Models whose lowest effort is not "minimal"
LOWEST_EFFORT = {"gpt-5.1": "none"}

T = TypeVar("T")


def responses_message(message: ChatMessage) -> dict[str, Any]:
    """Convert a chat message to a Responses API input item."""
    if isinstance(message, UserMessage) and message.image_url:
        return {
            "role": "user",
            "content": [
                {"type": "input_text", "text": message.content},
                {"type": "input_image", "image_url": message.image_url},
            ],
        }
    return {"role": message.role, "content": message.content}


def reasoning_effort(model_id: str, tools: frozenset[ToolId]) -> str:
    """Map thinking tools to a reasoning effort the model accepts."""
    if model_id in FIXED_EFFORT:
        return FIXED_EFFORT[model_id]

    effort = next((e for t, e in REASONING_EFFORT.items() if t in tools), DEFAULT_EFFORT)
    if ToolId.NO_THINK in tools:
        effort = LOWEST_EFFORT.get(model_id, effort)
    if effort == "minimal" and ToolId.SEARCH in tools:
        # web_search is rejected at minimal effort
        effort = "low"
    return effort


class OpenAIResponsesProvider:
    """OpenAI provider on the Responses API."""

    provider = Provider.OPENAI
    price_tiers: tuple[PriceTier, ...] = ()

    def __init__(self, api_key: str | None = None):
        """Initialize the OpenAI provider.

        Args:
            api_key: OpenAI API key (defaults to OPENAI_API_KEY env var)

        Raises:
            MissingCredential: If no key is available
        """
        self.api_key = api_key or os.environ.get(ENV_VAR)
        if not self.api_key:
            raise MissingCredential(ENV_VAR)
        self.client = AsyncOpenAI(api_key=self.api_key)

    def build_params(self, request: ChatRequest) -> dict[str, Any]:
        """Build keyword arguments for responses.create."""
        input_items = [responses_message(m) for m in request.prior_messages]
        input_items.append(
            responses_message(
                UserMessage(content=request.new_user_input, image_url=request.image_url)
            )
        )

        params: dict[str, Any] = {
            "model": request.model.key,
            "input": input_items,
            "reasoning": {
                "effort": reasoning_effort(request.model.id, request.tools),
                "summary": "auto",
            },
        }

        if request.system_prompt:
            params["instructions"] = request.system_prompt

        tools: list[dict[str, Any]] = []
        if ToolId.SEARCH in request.tools:
            tools.append({"type": "web_search"})
        if ToolId.CODE in request.tools:
            tools.append({"type": "code_interpreter", "container": {"type": "auto"}})
        if tools:
            params["tools"] = tools

        return params

    async def _call(self, operation: str, coro: Awaitable[T]) -> T:
        """Await an SDK call, converting SDK errors to ProviderRequestFailed."""
        try:
            return await coro
        except openai.APIStatusError as e:
            raise ProviderRequestFailed(
                self.provider.value,
                f"{operation}: {e}",
                status_code=e.status_code,
                payload=e.body,
            ) from e
        except openai.APIError as e:
            raise ProviderRequestFailed(self.provider.value, f"{operation}: {e}") from e

    async def send(self, request: ChatRequest) -> ChatResponse:
        """Send a synchronous request and wait for the full response.

        Raises:
            NoResponseContent: If the response has no output items
            ProviderRequestFailed: On any API or network error
        """
        params = self.build_params(request)
        log = logger.bind(provider=self.provider.value, model=request.model.key)
        log.debug("provider_request_start", effort=params["reasoning"]["effort"])

        response = await self._call("create", self.client.responses.create(**params))

        result = self.to_chat_response(response)
        log.debug(
            "provider_request_success",
            input_tokens=result.tokens.input,
            output_tokens=result.tokens.output,
            stop_reason=result.stop_reason,
        )
        return result

    async def create_background(self, request: ChatRequest) -> Any:
        """Submit a request in background mode and return without waiting.

        Returns:
            The initial response object (id and status populated)
        """
        params = self.build_params(request)
        params["background"] = True
        params["store"] = True
        return await self._call("create", self.client.responses.create(**params))

    async def retrieve(self, response_id: str) -> Any:
        """Fetch the current state of a stored response."""
        return await self._call("retrieve", self.client.responses.retrieve(response_id))

    async def cancel(self, response_id: str) -> Any:
        """Ask the provider to cancel a background response."""
        return await self._call("cancel", self.client.responses.cancel(response_id))

    def to_chat_response(self, response: Any) -> ChatResponse:
        """Normalize a Responses API response."""
        output_items = response.output or []
        if not output_items:
            raise NoResponseContent(self.provider.value)

        reasoning_parts: list[str] = []
        searches = 0
        for item in output_items:
            item_type = getattr(item, "type", None)
            if item_type == "reasoning":
                reasoning_parts.extend(s.text for s in (getattr(item, "summary", None) or []))
            elif item_type == "web_search_call":
                searches += 1

        usage = response.usage
        cached = getattr(getattr(usage, "input_tokens_details", None), "cached_tokens", 0)
        tokens = TokenCounts(
            input=getattr(usage, "input_tokens", 0) or 0,
            output=getattr(usage, "output_tokens", 0) or 0,
            input_cache_hit=cached or 0,
        )

        stop_reason = response.status or "completed"
        incomplete_reason = getattr(getattr(response, "incomplete_details", None), "reason", None)
        if stop_reason == "incomplete" and incomplete_reason:
            stop_reason = incomplete_reason

        return ChatResponse(
            content=response.output_text or "",
            reasoning="\n\n".join(reasoning_parts) or None,
            tokens=tokens,
            stop_reason=stop_reason,
            extra_usage_count=searches,
        )
