"""Unit tests for markdown formatting of chats and models."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest

from llmchat.core.display import (
    ToolOutput,
    chat_to_md,
    format_elapsed,
    format_money,
    message_content_md,
    models_md,
    render_md,
    render_tool_output,
    sources_md,
)
from llmchat.core.types import AssistantMessage, Chat, TokenCounts, UserMessage


def assistant(**overrides) -> AssistantMessage:
    fields = {
        "model": "sonnet-4.5",
        "content": "Paris",
        "reasoning": "The capital of France",
        "tokens": TokenCounts(input=1000, output=20, input_cache_hit=800),
        "stop_reason": "end_turn",
        "cost": 0.00834,
        "elapsed_ms": 1520,
    }
    fields.update(overrides)
    return AssistantMessage(**fields)


@pytest.mark.parametrize(
    "ms,expected",
    [
        (5000, "5s"),
        (1500, "1.5s"),
        (1234, "1.23s"),
        (65000, "1m5s"),
        (90000, "1m30s"),
        (3_600_000, "60m0s"),
    ],
)
def test_format_elapsed(ms, expected):
    assert format_elapsed(ms) == expected


def test_format_money_trims_zeros():
    assert format_money(0.00834) == "$0.00834"
    assert format_money(3.0) == "$3"
    assert format_money(0.125) == "$0.125"


def test_cli_mode_has_metadata_but_no_reasoning():
    md = message_content_md(assistant(), "cli")

    assert md.startswith("`sonnet-4.5` | 1.52 s | $0.00834 | **Tokens:** 1000 (800) -> 20")
    assert "Stop reason" not in md
    assert "The capital of France" not in md
    assert "Paris" in md


def test_unnatural_stop_reason_is_shown():
    md = message_content_md(assistant(stop_reason="max_tokens"), "cli")
    assert "**Stop reason:** max_tokens" in md


def test_verbose_mode_quotes_reasoning():
    md = message_content_md(assistant(), "verbose")
    assert "> The capital of France" in md


def test_gist_mode_collapses_reasoning():
    md = message_content_md(assistant(), "gist")
    assert "<details>" in md
    assert "<summary>\nReasoning\n</summary>" in md


def test_raw_mode_is_content_only():
    assert message_content_md(assistant(content="<think>x</think>"), "raw") == "<think>x</think>"


def test_think_tags_escaped_outside_raw():
    md = message_content_md(UserMessage(content="what is <think>?"), "cli")
    assert "\\<think>" in md


def test_user_image_link():
    md = message_content_md(UserMessage(content="what is this", image_url="https://x/y.png"))
    assert "[Image](https://x/y.png)" in md


def make_chat() -> Chat:
    return Chat(
        system_prompt="be brief",
        created_at=datetime(2025, 1, 2, 3, 4, tzinfo=timezone.utc),
        messages=[
            UserMessage(content="first question"),
            assistant(content="first answer"),
            UserMessage(content="second question"),
            assistant(content="second answer"),
        ],
    )


def test_chat_to_md_last_n():
    md = chat_to_md(make_chat(), last_n=1)

    assert "# assistant (4/4)" in md
    assert "second answer" in md
    assert "first answer" not in md


def test_chat_to_md_indices():
    md = chat_to_md(make_chat(), indices=[0, 2])

    assert "# user (1/4)" in md
    assert "# user (3/4)" in md
    assert "answer" not in md


def test_chat_to_md_hides_default_system_prompt():
    chat = make_chat()
    assert "System prompt" not in chat_to_md(chat, default_system_prompt="be brief")
    assert "System prompt" in chat_to_md(chat, default_system_prompt="other")


def test_chat_to_md_raw_has_no_headers():
    md = chat_to_md(make_chat(), last_n=2, mode="raw")
    assert md == "second question\n\nsecond answer"


def test_models_md_marks_default():
    md = models_md()
    assert "sonnet-4.5 ⭐" in md
    assert "Model key" not in md
    assert "claude-sonnet-4-5" not in md


def test_models_md_verbose_shows_keys():
    md = models_md(verbose=True)
    assert "Model key" in md
    assert "claude-sonnet-4-5" in md


def test_render_tool_output_execution():
    md = render_tool_output(
        ToolOutput(kind="bash", stdout="hello\n", stderr="warn", return_code=1)
    )
    assert "```\nhello\n```" in md
    assert "**stderr:**" in md
    assert "**Exit code:** 1" in md


def test_render_tool_output_error():
    md = render_tool_output(ToolOutput(kind="web_search", error="max_uses_exceeded"))
    assert md == "**Tool error (web_search):** `max_uses_exceeded`"


def test_sources_md():
    assert sources_md([]) == ""
    assert sources_md([("Example", "https://example.com")]) == (
        "\n\n### Sources\n\n- [Example](https://example.com)"
    )


@pytest.mark.asyncio
async def test_render_md_echoes_when_not_a_terminal(capsys):
    with patch("llmchat.core.display.sys.stdout.isatty", return_value=False):
        with patch("llmchat.core.display.asyncio.create_subprocess_exec", new=AsyncMock()) as mock_exec:
            await render_md("# hi")

    mock_exec.assert_not_called()
    assert "# hi" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_render_md_pipes_through_renderer():
    mock_process = AsyncMock()
    mock_process.communicate = AsyncMock(return_value=(None, None))
    mock_process.returncode = 0

    with patch("llmchat.core.display.sys.stdout.isatty", return_value=True):
        with patch("llmchat.core.display.shutil.which", return_value="/usr/bin/glow"):
            with patch(
                "llmchat.core.display.asyncio.create_subprocess_exec",
                new=AsyncMock(return_value=mock_process),
            ) as mock_exec:
                await render_md("# hi")

    assert mock_exec.call_args.args[0] == "glow"
    mock_process.communicate.assert_awaited_once_with(b"# hi")
