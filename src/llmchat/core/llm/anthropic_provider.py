"""Anthropic Claude provider implementation.

Implements the LLMProvider protocol on the Anthropic Messages beta API.
Thinking comes back as separate content blocks and server tools (web search,
code execution) return structured result blocks that are flattened into the
reply text here.
"""

import os
from typing import Any

import anthropic
import structlog
from anthropic import AsyncAnthropic

from ..display import ToolOutput, render_tool_output
from ..errors import MissingCredential, NoResponseContent, ProviderRequestFailed
from ..models import PriceTier, Provider
from ..types import ChatMessage, ChatRequest, ChatResponse, TokenCounts, ToolId, UserMessage

logger = structlog.get_logger()

ENV_VAR = "ANTHROPIC_API_KEY"

MAX_TOKENS = 8192
THINKING_BUDGETS = {ToolId.THINK: 2048, ToolId.THINK_HIGH: 16000}

WEB_SEARCH_TOOL = {"type": "web_search_20250305", "name": "web_search", "max_uses": 5}
CODE_EXECUTION_TOOL = {"type": "code_execution_20250825", "name": "code_execution"}
CODE_EXECUTION_BETA = "code-execution-2025-08-25"


def _get(obj: Any, name: str, default: Any = None) -> Any:
    """Read a field from an SDK object or a plain dict."""
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def extract_tool_output(block: Any) -> ToolOutput | None:
    """Pull the useful fields out of a server tool block.

    Returns:
        ToolOutput for recognized tool blocks, None for anything else
    """
    block_type = _get(block, "type")

    if block_type == "server_tool_use":
        tool_input = _get(block, "input") or {}
        return ToolOutput(
            kind="call",
            command=_get(tool_input, "command") or _get(tool_input, "code"),
            path=_get(tool_input, "path"),
            detail=_get(tool_input, "query"),
        )

    if not (block_type and block_type.endswith("_tool_result")):
        return None

    content = _get(block, "content")
    content_type = _get(content, "type", "") or ""

    if content_type.endswith("_error"):
        kind = block_type.removesuffix("_tool_result").removesuffix("_code_execution")
        return ToolOutput(kind=kind or "code", error=_get(content, "error_code", "unknown"))

    if block_type == "web_search_tool_result":
        results = content if isinstance(content, list) else []
        return ToolOutput(
            kind="web_search",
            links=[(_get(r, "title", ""), _get(r, "url", "")) for r in results],
        )

    if block_type in ("bash_code_execution_tool_result", "code_execution_tool_result"):
        return ToolOutput(
            kind="bash" if block_type.startswith("bash") else "code",
            stdout=_get(content, "stdout"),
            stderr=_get(content, "stderr"),
            return_code=_get(content, "return_code"),
        )

    if block_type == "text_editor_code_execution_tool_result":
        if content_type == "text_editor_code_execution_view_result":
            return ToolOutput(
                kind="text_editor",
                stdout=_get(content, "content"),
                detail=f"Viewed {_get(content, 'num_lines', '?')} lines",
            )
        if content_type == "text_editor_code_execution_create_result":
            action = "Updated" if _get(content, "is_file_update") else "Created"
            return ToolOutput(kind="text_editor", detail=f"{action} file")
        if content_type == "text_editor_code_execution_str_replace_result":
            lines = _get(content, "lines") or []
            return ToolOutput(
                kind="text_editor",
                stdout="\n".join(lines) if lines else None,
                detail=f"Edited from line {_get(content, 'new_start', '?')}",
            )
        return ToolOutput(kind="text_editor", detail=content_type or None)

    return ToolOutput(kind=block_type.removesuffix("_tool_result"))


def claude_message(message: ChatMessage) -> dict:
    """Convert a chat message to an Anthropic message param."""
    content: list[dict] = [{"type": "text", "text": message.content}]
    if isinstance(message, UserMessage) and message.image_url:
        content.insert(0, {"type": "image", "source": {"type": "url", "url": message.image_url}})
    return {"role": message.role, "content": content}


class AnthropicProvider:
    """Anthropic Claude provider.

    Provides async access to Claude models via the Anthropic beta Messages
    API, with budgeted thinking, web search and code execution.
    """

    provider = Provider.ANTHROPIC
    price_tiers: tuple[PriceTier, ...] = ()

    def __init__(self, api_key: str | None = None):
        """Initialize the Anthropic provider.

        Args:
            api_key: Anthropic API key (defaults to ANTHROPIC_API_KEY env var)

        Raises:
            MissingCredential: If no key is available
        """
        self.api_key = api_key or os.environ.get(ENV_VAR)
        if not self.api_key:
            raise MissingCredential(ENV_VAR)
        self.client = AsyncAnthropic(api_key=self.api_key)

    def build_params(self, request: ChatRequest) -> dict[str, Any]:
        """Build keyword arguments for beta.messages.stream."""
        messages = [claude_message(m) for m in request.prior_messages]
        messages.append(
            claude_message(UserMessage(content=request.new_user_input, image_url=request.image_url))
        )

        params: dict[str, Any] = {
            "model": request.model.key,
            "messages": messages,
            "max_tokens": MAX_TOKENS,
        }

        if request.system_prompt:
            params["system"] = request.system_prompt

        budget = next(
            (THINKING_BUDGETS[t] for t in (ToolId.THINK_HIGH, ToolId.THINK) if t in request.tools),
            None,
        )
        if budget is not None:
            params["thinking"] = {"type": "enabled", "budget_tokens": budget}
            params["max_tokens"] = budget + MAX_TOKENS

        tools = []
        betas = []
        if ToolId.SEARCH in request.tools:
            tools.append(WEB_SEARCH_TOOL)
        if ToolId.CODE in request.tools:
            tools.append(CODE_EXECUTION_TOOL)
            betas.append(CODE_EXECUTION_BETA)
        if tools:
            params["tools"] = tools
        if betas:
            params["betas"] = betas

        return params

    async def send(self, request: ChatRequest) -> ChatResponse:
        """Send a chat request to Claude.

        Args:
            request: Provider-agnostic request

        Returns:
            Normalized ChatResponse

        Raises:
            NoResponseContent: If the reply has no content blocks
            ProviderRequestFailed: On any API or network error
        """
        params = self.build_params(request)
        log = logger.bind(provider=self.provider.value, model=request.model.key)
        log.debug("provider_request_start", tools=params.get("tools"))

        try:
            # the SDK rejects non-streaming calls above ~21K max_tokens
            async with self.client.beta.messages.stream(**params) as stream:
                response = await stream.get_final_message()
        except anthropic.APIStatusError as e:
            raise ProviderRequestFailed(
                self.provider.value, str(e), status_code=e.status_code, payload=e.body
            ) from e
        except anthropic.APIError as e:
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
        """Normalize a beta Messages response."""
        blocks = response.content or []
        if not blocks:
            raise NoResponseContent(self.provider.value)

        content_parts: list[str] = []
        reasoning_parts: list[str] = []
        for block in blocks:
            if block.type == "text":
                content_parts.append(block.text)
            elif block.type == "thinking":
                reasoning_parts.append(block.thinking)
            else:
                tool_output = extract_tool_output(block)
                if tool_output is not None:
                    rendered = render_tool_output(tool_output)
                    if rendered:
                        content_parts.append(rendered)

        usage = response.usage
        # unlike OpenAI, input_tokens here counts only cache misses
        cache_miss = usage.input_tokens or 0
        cache_hit = usage.cache_read_input_tokens or 0
        cache_write = usage.cache_creation_input_tokens or 0

        tokens = TokenCounts(
            # cache writes are billed above the plain input price; they are
            # counted as plain input until there is a pricing decision on that
            input=cache_miss + cache_hit + cache_write,
            output=usage.output_tokens or 0,
            input_cache_hit=cache_hit,
        )

        server_tool_use = getattr(usage, "server_tool_use", None)
        searches = getattr(server_tool_use, "web_search_requests", 0) or 0

        return ChatResponse(
            content="\n\n".join(content_parts),
            reasoning="\n\n".join(reasoning_parts) or None,
            tokens=tokens,
            # always non-null in non-streaming mode
            stop_reason=response.stop_reason or "",
            extra_usage_count=searches,
        )
