"""Unit tests for the OpenAI-compatible chat completions adapter."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from conftest import make_request
from llmchat.core.errors import MissingCredential, NoResponseContent, ProviderRequestFailed
from llmchat.core.llm.openai_compat_provider import (
    COMPAT_PROFILES,
    OpenAICompatProvider,
    extract_think,
)
from llmchat.core.models import Provider
from llmchat.core.types import AssistantMessage, TokenCounts, UserMessage


def completion(content="answer", finish_reason="stop", usage=None, **message_fields):
    message = SimpleNamespace(content=content, **message_fields)
    return SimpleNamespace(
        choices=[SimpleNamespace(message=message, finish_reason=finish_reason)],
        usage=usage or SimpleNamespace(prompt_tokens=10, completion_tokens=5),
    )


def make_provider(provider=Provider.DEEPSEEK, response=None) -> OpenAICompatProvider:
    adapter = OpenAICompatProvider(COMPAT_PROFILES[provider], api_key="test-key")
    adapter.client = MagicMock()
    adapter.client.chat.completions.create = AsyncMock(return_value=response or completion())
    return adapter


def test_extract_think_with_tags():
    assert extract_think("<think>reasoning</think>\nfinal answer") == ("reasoning", "final answer")


def test_extract_think_without_opening_tag():
    assert extract_think("reasoning</think>\nfinal answer") == ("reasoning", "final answer")


def test_extract_think_without_tags():
    assert extract_think("just an answer") == (None, "just an answer")


def test_missing_key_fails_before_network():
    with pytest.raises(MissingCredential, match="GROQ_API_KEY"):
        OpenAICompatProvider(COMPAT_PROFILES[Provider.GROQ])


def test_key_read_from_profile_env_var(monkeypatch):
    monkeypatch.setenv("CEREBRAS_API_KEY", "from-env")
    adapter = OpenAICompatProvider(COMPAT_PROFILES[Provider.CEREBRAS])
    assert adapter.api_key == "from-env"
    assert str(adapter.client.base_url).startswith("https://api.cerebras.ai/v1")


@pytest.mark.asyncio
async def test_request_shape_puts_system_first():
    adapter = make_provider()
    request = make_request(
        "deepseek-v3",
        prior_messages=(
            UserMessage(content="hi"),
            AssistantMessage(
                model="deepseek-v3",
                content="hello",
                tokens=TokenCounts(),
                stop_reason="stop",
                cost=0,
                elapsed_ms=1,
            ),
        ),
    )

    await adapter.send(request)

    kwargs = adapter.client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "deepseek-chat"
    assert kwargs["messages"] == [
        {"role": "system", "content": "be brief"},
        {"role": "user", "content": "hi"},
        {"role": "assistant", "content": "hello"},
        {"role": "user", "content": "hello"},
    ]


@pytest.mark.asyncio
async def test_inline_think_moves_to_reasoning():
    adapter = make_provider(
        Provider.CEREBRAS, completion(content="<think>pondering</think>\n\nforty-two")
    )

    response = await adapter.send(make_request("cerebras-qwen"))

    assert response.reasoning == "pondering"
    assert response.content == "forty-two"
    assert response.stop_reason == "stop"


@pytest.mark.asyncio
async def test_reasoning_field_is_used():
    adapter = make_provider(response=completion(reasoning_content="deep thoughts"))

    response = await adapter.send(make_request("deepseek-r1"))

    assert response.reasoning == "deep thoughts"
    assert response.content == "answer"


@pytest.mark.asyncio
async def test_cached_tokens_from_deepseek_usage():
    usage = SimpleNamespace(prompt_tokens=100, completion_tokens=7, prompt_cache_hit_tokens=60)
    adapter = make_provider(response=completion(usage=usage))

    response = await adapter.send(make_request("deepseek-v3"))

    assert response.tokens == TokenCounts(input=100, output=7, input_cache_hit=60)


@pytest.mark.asyncio
async def test_xai_adds_reasoning_tokens():
    usage = SimpleNamespace(
        prompt_tokens=50,
        completion_tokens=10,
        completion_tokens_details=SimpleNamespace(reasoning_tokens=90),
        prompt_tokens_details=SimpleNamespace(cached_tokens=20),
    )
    adapter = make_provider(Provider.XAI, completion(usage=usage))

    response = await adapter.send(make_request("grok-4"))

    assert response.tokens == TokenCounts(input=50, output=100, input_cache_hit=20)


@pytest.mark.asyncio
async def test_other_providers_do_not_add_reasoning_tokens():
    usage = SimpleNamespace(
        prompt_tokens=50,
        completion_tokens=10,
        completion_tokens_details=SimpleNamespace(reasoning_tokens=90),
    )
    adapter = make_provider(Provider.GROQ, completion(usage=usage))

    response = await adapter.send(make_request("kimi-k2"))

    assert response.tokens.output == 10


@pytest.mark.asyncio
async def test_missing_usage_defaults_to_zero():
    response_obj = completion()
    response_obj.usage = None
    adapter = make_provider(response=response_obj)

    response = await adapter.send(make_request("deepseek-v3"))

    assert response.tokens == TokenCounts()


@pytest.mark.asyncio
async def test_no_choices_is_an_error():
    adapter = make_provider(response=SimpleNamespace(choices=[], usage=None))

    with pytest.raises(NoResponseContent):
        await adapter.send(make_request("deepseek-v3"))


@pytest.mark.asyncio
async def test_api_status_error_is_wrapped():
    adapter = make_provider()
    request = httpx.Request("POST", "https://api.deepseek.com/chat/completions")
    error = openai.APIStatusError(
        "rate limited",
        response=httpx.Response(429, request=request),
        body={"error": {"message": "slow down"}},
    )
    adapter.client.chat.completions.create = AsyncMock(side_effect=error)

    with pytest.raises(ProviderRequestFailed) as exc_info:
        await adapter.send(make_request("deepseek-v3"))

    assert exc_info.value.status_code == 429
    assert exc_info.value.payload == {"error": {"message": "slow down"}}
    assert exc_info.value.__cause__ is error


@pytest.mark.asyncio
async def test_connection_error_is_wrapped():
    adapter = make_provider()
    request = httpx.Request("POST", "https://api.deepseek.com/chat/completions")
    adapter.client.chat.completions.create = AsyncMock(
        side_effect=openai.APIConnectionError(request=request)
    )

    with pytest.raises(ProviderRequestFailed) as exc_info:
        await adapter.send(make_request("deepseek-v3"))

    assert exc_info.value.status_code is None
