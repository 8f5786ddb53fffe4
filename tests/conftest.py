"""Shared fixtures and fakes for llmchat tests."""

import logging

import pytest
import structlog

from llmchat.core.models import resolve_model
from llmchat.core.types import ChatRequest, ToolId

PROVIDER_ENV_VARS = (
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
    "GEMINI_API_KEY",
    "DEEPSEEK_API_KEY",
    "GROQ_API_KEY",
    "CEREBRAS_API_KEY",
    "XAI_API_KEY",
    "OPENROUTER_API_KEY",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """No test sees real API keys or a real history database."""
    for name in PROVIDER_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.delenv("LLMCHAT_HISTORY_URL", raising=False)
    monkeypatch.delenv("LLMCHAT_LOG_LEVEL", raising=False)


def make_request(model_id: str, tools=(), **overrides) -> ChatRequest:
    fields = {
        "system_prompt": "be brief",
        "new_user_input": "hello",
        "model": resolve_model(model_id),
        "tools": frozenset(ToolId(t) for t in tools),
    }
    fields.update(overrides)
    return ChatRequest(**fields)


@pytest.fixture(autouse=True)
def quiet_logs():
    """Keep structlog output off the streams the CLI runner captures."""
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(logging.CRITICAL),
        cache_logger_on_first_use=False,
    )
    yield
    structlog.reset_defaults()
