"""OpenAI-compatible chat completions provider.

One adapter serves every provider that speaks the chat completions protocol
behind its own base URL and key (DeepSeek, Groq, Cerebras, xAI, OpenRouter).
Provider differences are declared in a CompatProfile rather than sniffed
from model names.
"""

import os
import re
from dataclasses import dataclass
from typing import Any

import openai
import structlog
from openai import AsyncOpenAI

from ..errors import MissingCredential, NoResponseContent, ProviderRequestFailed
from ..models import PriceTier, Provider
from ..types import ChatRequest, ChatResponse, TokenCounts

logger = structlog.get_logger()


@dataclass(frozen=True)
class CompatProfile:
    """Connection details and quirks of one chat-completions provider.

    Attributes:
        provider: Provider id
        base_url: API base URL
        env_var: Environment variable holding the API key
        adds_reasoning_tokens: completion_tokens excludes reasoning tokens,
            so they must be added back from completion_tokens_details
    """

    provider: Provider
    base_url: str
    env_var: str
    adds_reasoning_tokens: bool = False


COMPAT_PROFILES: dict[Provider, CompatProfile] = {
    Provider.DEEPSEEK: CompatProfile(
        Provider.DEEPSEEK, "https://api.deepseek.com", "DEEPSEEK_API_KEY"
    ),
    Provider.GROQ: CompatProfile(
        Provider.GROQ, "https://api.groq.com/openai/v1", "GROQ_API_KEY"
    ),
    Provider.CEREBRAS: CompatProfile(
        Provider.CEREBRAS, "https://api.cerebras.ai/v1", "CEREBRAS_API_KEY"
    ),
    # grok does not include reasoning tokens in completion_tokens, deepseek does
    Provider.XAI: CompatProfile(
        Provider.XAI, "https://api.x.ai/v1", "XAI_API_KEY", adds_reasoning_tokens=True
    ),
    Provider.OPENROUTER: CompatProfile(
        Provider.OPENROUTER, "https://openrouter.ai/api/v1", "OPENROUTER_API_KEY"
    ),
}

# The opening tag is optional because some providers (Cerebras) leave it out
THINK_PATTERN = re.compile(r"^\s*(?:<think>)?(.*?)</think>\s*(.*)$", re.DOTALL)


def extract_think(content: str) -> tuple[str | None, str]:
    """Split inline <think>...</think> reasoning from the answer.

    Args:
        content: Raw message content

    Returns:
        (reasoning, content) where reasoning is None if there were no tags
    """
    match = THINK_PATTERN.match(content)
    if match is None:
        return None, content
    return match.group(1).strip(), match.group(2).strip()


def _nested(obj: Any, *path: str) -> Any:
    for name in path:
        if obj is None:
            return None
        obj = getattr(obj, name, None)
    return obj


class OpenAICompatProvider:
    """Chat completions adapter for OpenAI-compatible providers."""

    price_tiers: tuple[PriceTier, ...] = ()

    def __init__(self, profile: CompatProfile, api_key: str | None = None):
        """Initialize the provider.

        Args:
            profile: Base URL, credential and quirks of the provider
            api_key: API key (defaults to the profile's env var)

        Raises:
            MissingCredential: If no key is available
        """
        self.profile = profile
        self.provider = profile.provider
        self.api_key = api_key or os.environ.get(profile.env_var)
        if not self.api_key:
            raise MissingCredential(profile.env_var)
        self.client = AsyncOpenAI(base_url=profile.base_url, api_key=self.api_key)

    def build_messages(self, request: ChatRequest) -> list[dict[str, str]]:
        messages = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.extend({"role": m.role, "content": m.content} for m in request.prior_messages)
        messages.append({"role": "user", "content": request.new_user_input})
        return messages

    async def send(self, request: ChatRequest) -> ChatResponse:
        """Send a chat completion request.

        Raises:
            NoResponseContent: If the response has no message
            ProviderRequestFailed: On any API or network error
        """
        log = logger.bind(provider=self.provider.value, model=request.model.key)
        log.debug("provider_request_start", base_url=self.profile.base_url)

        try:
            response = await self.client.chat.completions.create(
                model=request.model.key,
                messages=self.build_messages(request),
            )
        except openai.APIStatusError as e:
            raise ProviderRequestFailed(
                self.provider.value, str(e), status_code=e.status_code, payload=e.body
            ) from e
        except openai.APIError as e:
            raise ProviderRequestFailed(self.provider.value, str(e)) from e

        result = self.to_chat_response(response)
        log.debug(
            "provider_request_success",
            input_tokens=result.tokens.input,
            output_tokens=result.tokens.output,
            stop_reason=result.stop_reason,
        )
        return result

    def to_chat_response(self, response: Any) -> ChatResponse:
        if not response.choices or response.choices[0].message is None:
            raise NoResponseContent(self.provider.value)

        choice = response.choices[0]
        message = choice.message

        # DeepSeek calls it reasoning_content, Groq and OpenRouter call it reasoning
        reasoning = getattr(message, "reasoning_content", None) or getattr(
            message, "reasoning", None
        )
        if not isinstance(reasoning, str):
            reasoning = None

        inline_reasoning, content = extract_think(message.content or "")
        if inline_reasoning:
            # shouldn't be both a reasoning field and <think> but handle it just in case
            reasoning = f"{reasoning}\n\n{inline_reasoning}" if reasoning else inline_reasoning

        usage = response.usage
        output = getattr(usage, "completion_tokens", 0) or 0
        if self.profile.adds_reasoning_tokens:
            output += _nested(usage, "completion_tokens_details", "reasoning_tokens") or 0

        cached = _nested(usage, "prompt_tokens_details", "cached_tokens") or getattr(
            usage, "prompt_cache_hit_tokens", 0
        )

        tokens = TokenCounts(
            input=getattr(usage, "prompt_tokens", 0) or 0,
            output=output,
            input_cache_hit=cached or 0,
        )

        return ChatResponse(
            content=content,
            reasoning=reasoning,
            tokens=tokens,
            stop_reason=choice.finish_reason or "",
        )
