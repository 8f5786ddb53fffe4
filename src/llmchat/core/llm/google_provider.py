"""Google Gemini provider implementation.

Implements the LLMProvider protocol with the google-genai SDK. Gemini names
the assistant role "model", reports thinking tokens outside the candidate
token count, and returns search grounding as citation metadata.
"""

import os
from typing import Any

import httpx
import structlog
from google import genai
from google.genai import errors, types

from ..display import code_block, sources_md
from ..errors import MissingCredential, NoResponseContent, ProviderRequestFailed
from ..models import PriceTier, Provider
from ..types import ChatRequest, ChatResponse, TokenCounts, ToolId

logger = structlog.get_logger()

ENV_VAR = "GEMINI_API_KEY"

# Higher pricing for long prompts, https://ai.google.dev/pricing
PRICE_TIERS: tuple[PriceTier, ...] = (
    PriceTier(
        model_id="gemini-2.5-pro",
        above_input_tokens=200_000,
        input_price=2.50,
        output_price=15.00,
        cached_input_price=0.25,
    ),
)

# Models that cannot turn thinking off
ALWAYS_THINKS = frozenset({"gemini-2.5-pro"})

DYNAMIC_BUDGET = -1
# Lowest budget accepted by models that cannot turn thinking off
MIN_THINKING_BUDGET = 128
THINKING_BUDGETS = {
    ToolId.NO_THINK: 0,
    ToolId.THINK: DYNAMIC_BUDGET,
    ToolId.THINK_HIGH: 24576,
}


def thinking_budget(model_id: str, tools: frozenset[ToolId]) -> int:
    """Thinking budget for a model, with no-think clamped for models that always think."""
    always_thinks = model_id in ALWAYS_THINKS
    for tool, budget in THINKING_BUDGETS.items():
        if tool in tools:
            if budget == 0 and always_thinks:
                return MIN_THINKING_BUDGET
            return budget
    return DYNAMIC_BUDGET if always_thinks else 0


def _enum_value(value: Any) -> str:
    return str(getattr(value, "value", value) or "")


class GoogleProvider:
    """Gemini provider on the google-genai async client."""

    provider = Provider.GOOGLE
    price_tiers = PRICE_TIERS

    def __init__(self, api_key: str | None = None):
        """Initialize the Gemini provider.

        Args:
            api_key: Gemini API key (defaults to GEMINI_API_KEY env var)

        Raises:
            MissingCredential: If no key is available
        """
        self.api_key = api_key or os.environ.get(ENV_VAR)
        if not self.api_key:
            raise MissingCredential(ENV_VAR)
        self.client = genai.Client(api_key=self.api_key)

    def build_config(self, request: ChatRequest) -> types.GenerateContentConfig:
        # URL context is always on, it was designed to be used this way
        tools = [types.Tool(url_context=types.UrlContext())]
        if ToolId.SEARCH in request.tools:
            tools.append(types.Tool(google_search=types.GoogleSearch()))
        if ToolId.CODE in request.tools:
            tools.append(types.Tool(code_execution=types.ToolCodeExecution()))

        return types.GenerateContentConfig(
            system_instruction=request.system_prompt or None,
            thinking_config=types.ThinkingConfig(
                thinking_budget=thinking_budget(request.model.id, request.tools),
                include_thoughts=True,
            ),
            tools=tools,
        )

    def build_contents(self, request: ChatRequest) -> list[types.Content]:
        contents = [
            types.Content(
                # gemini uses model instead of assistant
                role="model" if m.role == "assistant" else "user",
                parts=[types.Part(text=m.content)],
            )
            for m in request.prior_messages
        ]
        contents.append(types.Content(role="user", parts=[types.Part(text=request.new_user_input)]))
        return contents

    async def send(self, request: ChatRequest) -> ChatResponse:
        """Send a generate_content request to Gemini.

        Raises:
            NoResponseContent: If there is no candidate content
            ProviderRequestFailed: On any API or network error
        """
        log = logger.bind(provider=self.provider.value, model=request.model.key)
        log.debug("provider_request_start", tools=sorted(t.value for t in request.tools))

        try:
            result = await self.client.aio.models.generate_content(
                model=request.model.key,
                contents=self.build_contents(request),
                config=self.build_config(request),
            )
        except errors.APIError as e:
            raise ProviderRequestFailed(
                self.provider.value, str(e), status_code=e.code, payload=e.details
            ) from e
        except httpx.HTTPError as e:
            raise ProviderRequestFailed(self.provider.value, str(e)) from e

        response = self.to_chat_response(result)
        log.debug(
            "provider_request_success",
            input_tokens=response.tokens.input,
            output_tokens=response.tokens.output,
            stop_reason=response.stop_reason,
        )
        return response

    def to_chat_response(self, result: Any) -> ChatResponse:
        candidates = result.candidates or []
        if not candidates or candidates[0].content is None:
            raise NoResponseContent(self.provider.value)

        candidate = candidates[0]
        parts = candidate.content.parts or []

        reasoning = "\n\n".join(p.text for p in parts if p.text and p.thought)

        content_parts: list[str] = []
        for part in parts:
            if part.text and not part.thought:
                content_parts.append(part.text)
            elif getattr(part, "executable_code", None) is not None:
                code = part.executable_code
                content_parts.append(code_block(code.code, _enum_value(code.language).lower()))
            elif getattr(part, "code_execution_result", None) is not None:
                execution = part.code_execution_result
                content_parts.append(
                    f"**Result ({_enum_value(execution.outcome)}):**\n\n"
                    + code_block(execution.output or "")
                )
        content = "\n\n".join(content_parts)

        grounding = getattr(candidate, "grounding_metadata", None)
        chunks = getattr(grounding, "grounding_chunks", None) or []
        # untitled chunks fall back to their uri
        sources = [
            (c.web.title or c.web.uri, c.web.uri) for c in chunks if getattr(c, "web", None)
        ]
        content += sources_md(sources)

        usage = result.usage_metadata
        tokens = TokenCounts(
            input=getattr(usage, "prompt_token_count", 0) or 0,
            output=(getattr(usage, "candidates_token_count", 0) or 0)
            + (getattr(usage, "thoughts_token_count", 0) or 0),
            input_cache_hit=getattr(usage, "cached_content_token_count", 0) or 0,
        )

        return ChatResponse(
            content=content,
            reasoning=reasoning or None,
            tokens=tokens,
            stop_reason=_enum_value(candidate.finish_reason),
            # grounding is billed per grounded prompt, not per query
            extra_usage_count=1 if grounding is not None and chunks else 0,
        )
