"""Markdown formatting for chats, models and tool output.

Provides:
- DisplayMode: cli, verbose, raw, gist
- message_content_md / chat_to_md: Render chat messages as markdown
- models_md: Catalog table
- ToolOutput / render_tool_output: Flatten code execution and search results
- sources_md: Citation list for grounded answers
- format_elapsed / format_money: Compact number formatting
- render_md: Print markdown, through glow when available
"""

import asyncio
import json
import shutil
import sys
from dataclasses import dataclass, field
from typing import Any, Literal

import asyncclick as click
import structlog

from .models import MODELS
from .types import AssistantMessage, Chat, ChatMessage, UserMessage

logger = structlog.get_logger()

# - cli is the default show output, includes meta but not reasoning
# - verbose is cli plus reasoning
# - raw is for insertion in, e.g., a text editor
# - gist includes meta but collapses reasoning under <details>
DisplayMode = Literal["cli", "verbose", "raw", "gist"]

NATURAL_STOPS = ("stop", "end_turn", "completed")


def code_block(contents: str, lang: str = "") -> str:
    return f"```{lang}\n{contents}\n```\n"


def json_block(obj: Any) -> str:
    return code_block(json.dumps(obj, indent=2, default=str), "json")


def code_md(s: str) -> str:
    return f"`{s}`"


def _trim_number(value: float, digits: int) -> str:
    text = f"{value:.{digits}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def format_money(amount: float) -> str:
    """Format USD with up to five decimals and no trailing zeros."""
    return f"${_trim_number(amount, 5)}"


def format_elapsed(ms: float) -> str:
    """Format a duration as 5s, 1.5s or 2m5s.

    Seconds keep up to two decimals below a minute and are truncated to an
    integer once minutes are shown.
    """
    total_seconds = ms / 1000
    minutes = int(total_seconds // 60)
    if minutes == 0:
        return f"{_trim_number(total_seconds, 2)}s"
    return f"{minutes}m{int(total_seconds - minutes * 60)}s"


def quote(s: str) -> str:
    """Prefix every line with '> '."""
    return "\n".join("> " + line for line in s.split("\n"))


def tag(name: str, *children: str) -> str:
    inner = "\n".join(children)
    return f"<{name}>\n{inner}\n</{name}>\n\n"


def escape_think_tags(content: str) -> str:
    return content.replace("<think>", "\\<think>").replace("</think>", "\\</think>")


@dataclass
class ToolOutput:
    """Structured result of one server-side tool call.

    Attributes:
        kind: bash, text_editor, code, web_search, or call
        command: Command or code that was run
        path: File path touched by an editor operation
        stdout: Captured standard output
        stderr: Captured standard error
        return_code: Process exit code
        detail: Free-form one-line summary (editor results, queries)
        links: (title, url) pairs for search results
        error: Provider error code if the tool call failed
    """

    kind: str
    command: str | None = None
    path: str | None = None
    stdout: str | None = None
    stderr: str | None = None
    return_code: int | None = None
    detail: str | None = None
    links: list[tuple[str, str]] = field(default_factory=list)
    error: str | None = None


def render_tool_output(output: ToolOutput) -> str:
    """Render a ToolOutput as a markdown fragment."""
    parts: list[str] = []

    if output.kind == "call":
        if output.command:
            parts.append(code_block(output.command, "sh"))
        if output.path:
            parts.append(f"**File:** {code_md(output.path)}")
        if output.detail:
            parts.append(f"**Query:** {output.detail}")
        return "\n".join(parts)

    if output.error:
        return f"**Tool error ({output.kind}):** {code_md(output.error)}"

    if output.path:
        parts.append(f"**File:** {code_md(output.path)}")
    if output.detail:
        parts.append(output.detail)
    if output.stdout:
        parts.append(code_block(output.stdout.rstrip("\n")))
    if output.stderr:
        parts.append("**stderr:**\n\n" + code_block(output.stderr.rstrip("\n")))
    if output.return_code is not None:
        parts.append(f"**Exit code:** {output.return_code}")
    if output.links:
        parts.append("\n".join(f"- [{title}]({url})" for title, url in output.links))

    return "\n\n".join(parts)


def sources_md(sources: list[tuple[str, str]]) -> str:
    """Render grounding citations as a Sources section, or '' when empty."""
    if not sources:
        return ""
    lines = "\n".join(f"- [{title}]({uri})" for title, uri in sources)
    return f"\n\n### Sources\n\n{lines}"


def _md_table(header: list[str], rows: list[list[str]]) -> str:
    if not all(len(row) == len(header) for row in rows):
        raise ValueError("header and rows must all have the same cell count")

    def make_row(row: list[str]) -> str:
        return "| " + " | ".join(row) + " |"

    divider = make_row(["---"] * len(header))
    return "\n".join([make_row(header), divider, *(make_row(r) for r in rows)])


def models_md(verbose: bool = False) -> str:
    """Markdown table of the catalog. Prices are per million tokens."""
    header = ["ID", "Provider", "Input", "Cached", "Output", "Search"]
    if verbose:
        header.insert(1, "Model key")

    rows = []
    for m in MODELS:
        row = [
            m.id + (" ⭐" if m.is_default else ""),
            m.provider.value,
            format_money(m.input_price),
            format_money(m.cached_input_price) if m.cached_input_price is not None else "",
            format_money(m.output_price),
            format_money(m.search_cost_per_call) if m.search_cost_per_call is not None else "",
        ]
        if verbose:
            row.insert(1, m.key)
        rows.append(row)

    return (
        "Models are matched on ID or key. Prices are per million tokens.\n\n"
        + _md_table(header, rows)
    )


def _message_header_md(msg: ChatMessage, num: int, count: int) -> str:
    return f"# {msg.role} ({num}/{count})\n\n"


def message_content_md(msg: ChatMessage, mode: DisplayMode = "cli") -> str:
    """Render one message.

    Assistant messages get a metadata line (model, time, cost, tokens, and
    the stop reason when it is not a natural stop) in every mode but raw.
    """
    output = ""

    if isinstance(msg, AssistantMessage):
        if mode != "raw":
            output += code_md(msg.model)
            output += f" | {_trim_number(msg.elapsed_ms / 1000, 2)} s"
            output += f" | {format_money(msg.cost)}"

            tokens = msg.tokens
            input_str = (
                f"{tokens.input} ({tokens.input_cache_hit})"
                if tokens.input_cache_hit
                else str(tokens.input)
            )
            output += f" | **Tokens:** {input_str} -> {tokens.output}"
            if msg.stop_reason.lower() not in NATURAL_STOPS:
                output += f" | **Stop reason:** {msg.stop_reason}"
            output += "\n\n"

        if msg.reasoning:
            if mode == "gist":
                output += tag("details", tag("summary", "Reasoning"), quote(msg.reasoning))
            elif mode == "verbose":
                output += quote(msg.reasoning) + "\n\n"

    output += msg.content if mode == "raw" else escape_think_tags(msg.content)
    if isinstance(msg, UserMessage) and msg.image_url:
        output += f"\n\n[Image]({msg.image_url})"
    if mode != "raw":
        output += "\n\n"
    return output


def chat_to_md(
    chat: Chat,
    last_n: int = 0,
    mode: DisplayMode = "cli",
    default_system_prompt: str | None = None,
    indices: list[int] | None = None,
) -> str:
    """Render a chat, or its last N messages, or selected message indices."""
    count = len(chat.messages)
    if indices is not None:
        selected = [(i, chat.messages[i]) for i in indices]
    else:
        start = count - last_n if last_n else 0
        selected = list(enumerate(chat.messages))[start:]

    if mode == "raw":
        return "\n\n".join(message_content_md(msg, "raw") for _, msg in selected)

    output = f"**Chat started:** {chat.created_at.astimezone():%b %d, %Y, %I:%M %p}\n\n"

    # only print the system prompt when it is non-default
    if chat.system_prompt and (mode == "gist" or chat.system_prompt != default_system_prompt):
        output += tag("details", tag("summary", "System prompt"), chat.system_prompt)

    for i, msg in selected:
        output += _message_header_md(msg, i + 1, count)
        output += message_content_md(msg, mode)
    return output


def short_date(chat: Chat) -> str:
    return f"{chat.created_at.astimezone():%m/%d %H:%M}"


async def render_md(md: str, raw: bool = False, renderer: str = "glow") -> None:
    """Print markdown through the renderer when on a terminal, else as-is."""
    if raw or not sys.stdout.isatty() or shutil.which(renderer) is None:
        click.echo(md)
        return

    process = await asyncio.create_subprocess_exec(
        renderer,
        stdin=asyncio.subprocess.PIPE,
    )
    await process.communicate(md.encode("utf-8"))
    if process.returncode:
        logger.warning("renderer_failed", renderer=renderer, returncode=process.returncode)
        click.echo(md)
