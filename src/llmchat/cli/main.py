"""AsyncClick CLI for chatting with LLMs.

Provides user-facing commands:
- ask: Send a message, starting a new chat or replying to the current one
- show: Print the current chat
- history: List, resume, show and clear stored chats
- fork: Branch the current chat at a message with another model
- models: List the model catalog
- gist: Upload the current chat with the gh CLI
- bg: Check, resume or cancel a background request
"""

import asyncio
import shutil

import asyncclick as click
import structlog

from llmchat.core.config import Config, load_config
from llmchat.core.display import (
    DisplayMode,
    chat_to_md,
    format_elapsed,
    json_block,
    message_content_md,
    models_md,
    render_md,
    short_date,
)
from llmchat.core.errors import LLMChatError, NoBackgroundTask, ProviderRequestFailed
from llmchat.core.llm.client import LLMClient, fork_chat
from llmchat.core.logging import configure_logging
from llmchat.core.models import resolve_model
from llmchat.core.persistence.history import ChatHistory
from llmchat.core.summarize import summarize_chats
from llmchat.core.types import BackgroundStatus, Chat, UserMessage
from llmchat.core.utils import parse_message_spec

logger = structlog.get_logger()


def get_client(config: Config) -> LLMClient:
    return LLMClient(config)


def open_history(config: Config) -> ChatHistory:
    return ChatHistory(config.history_db_url, limit=config.history_limit)


def get_mode(raw: bool, verbose: bool) -> DisplayMode:
    return "raw" if raw else "verbose" if verbose else "cli"


def fail(ctx: click.Context, error: LLMChatError) -> None:
    """Report a core error and exit with status 1."""
    click.echo(f"[-] {error}")
    if isinstance(error, ProviderRequestFailed):
        if error.status_code is not None:
            click.echo(f"[-] Status code: {error.status_code}")
        if error.payload:
            click.echo(json_block(error.payload))
    ctx.exit(1)


def current_chat(chats: list[Chat]) -> Chat:
    if not chats:
        raise click.UsageError("No chat in progress")
    return chats[-1]


def read_stdin() -> str:
    stream = click.get_text_stream("stdin")
    if stream.isatty():
        return ""
    return stream.read().strip()


def chat_line(number: int, chat: Chat) -> str:
    model = chat.last_model_id() or "-"
    summary = chat.summary or ""
    return f"{number:>3}. {summary:<40}  {model:<18}  {short_date(chat)} ({len(chat.messages)})"


@click.group()
@click.pass_context
async def cli(ctx):
    """ai - one command line for many LLM providers

    Output is rendered with glow when it is installed and stdout is a
    terminal; otherwise the markdown is printed as-is.
    """
    ctx.ensure_object(dict)
    config = load_config()
    configure_logging(config.log_level)
    ctx.obj["config"] = config


@cli.command()
@click.argument("message", nargs=-1)
@click.option("--reply", "-r", is_flag=True, help="Continue the current chat")
@click.option("--model", "-m", default=None, help="Select model by substring (e.g., 'sonnet')")
@click.option(
    "--tools",
    "-t",
    multiple=True,
    help="Use tools (repeatable): search, code, think, think-high, no-think",
)
@click.option("--image", "-i", default=None, help="Image URL (Anthropic and OpenAI only)")
@click.option("--system", "-s", default=None, help="Override entire system prompt")
@click.option("--ephemeral", "-e", is_flag=True, help="Don't save to history")
@click.option("--verbose", "-v", is_flag=True, help="Include reasoning in output")
@click.option("--raw", is_flag=True, help="Print LLM text directly (no metadata or reasoning)")
@click.option("--background", "-b", is_flag=True, help="Run in background mode (OpenAI only)")
@click.pass_context
async def ask(
    ctx,
    message: tuple[str, ...],
    reply: bool,
    model: str | None,
    tools: tuple[str, ...],
    image: str | None,
    system: str | None,
    ephemeral: bool,
    verbose: bool,
    raw: bool,
    background: bool,
):
    """Send a message. Piped stdin is appended to MESSAGE.

    Examples:
        ai ask 'What is the capital of France?'
        cat main.py | ai ask 'what is this?'
        ai ask -r 'elaborate on that'
        ai ask -m gpt-5 -t search 'latest python release'
    """
    config: Config = ctx.obj["config"]

    text = " ".join(message)
    stdin = read_stdin()
    if not text and not stdin:
        raise click.UsageError("Message or stdin is required")
    user_input = "\n\n".join(part for part in (stdin, text) if part)

    async with open_history(config) as history:
        chats = await history.read()
        if not reply or not chats:
            chats.append(Chat(system_prompt=system or config.system_prompt))
        chat = chats[-1]

        try:
            # -r reuses the last model of the chat unless -m is given
            previous = chat.last_model_id()
            resolved = resolve_model(previous if reply and previous and not model else model)

            client = get_client(config)
            reply_message = await client.complete(
                chat,
                user_input,
                resolved,
                tools=tools,
                image_url=image,
                background=background,
            )
        except LLMChatError as e:
            fail(ctx, e)

        if reply_message is None:
            task = chat.background_task
            click.echo(
                f"[+] Background task started: {task.provider_request_id} ({task.status.value})"
            )
            click.echo("[*] Use 'ai bg resume' to wait for the result")
        else:
            md = message_content_md(reply_message, get_mode(raw, verbose))
            await render_md(md, raw, config.renderer)

        if not ephemeral or background:
            await history.write(chats)


@cli.command()
@click.option("--all", "-a", "show_all", is_flag=True, help="Show all messages")
@click.option("--limit", "-n", default=1, show_default=True, help="Number of messages")
@click.option("--messages", "spec", default=None, help="Message numbers, e.g. '1,3-4'")
@click.option("--verbose", "-v", is_flag=True, help="Include reasoning in output")
@click.option("--raw", is_flag=True, help="Print LLM output directly (no metadata or reasoning)")
@click.pass_context
async def show(ctx, show_all: bool, limit: int, spec: str | None, verbose: bool, raw: bool):
    """Show the current chat (last N messages, default 1)."""
    config: Config = ctx.obj["config"]

    async with open_history(config) as history:
        chat = current_chat(await history.read())

    try:
        indices = parse_message_spec(spec, len(chat.messages)) if spec else None
    except LLMChatError as e:
        fail(ctx, e)

    last_n = len(chat.messages) if show_all else limit
    md = chat_to_md(
        chat,
        last_n=last_n,
        mode=get_mode(raw, verbose),
        default_system_prompt=config.system_prompt,
        indices=indices,
    )
    await render_md(md, raw, config.renderer)


@cli.group("history")
async def history_group():
    """List and resume recent chats. Chat 1 is the most recent."""


async def _summarized(config: Config, history: ChatHistory) -> list[Chat]:
    chats = await history.read()
    if await summarize_chats(get_client(config), chats):
        await history.write(chats)
    return chats


def _pick(chats: list[Chat], number: int) -> int:
    """Map a 1-based most-recent-first number to a list index."""
    if not 1 <= number <= len(chats):
        raise click.BadParameter(f"Chat {number} does not exist ({len(chats)} in history)")
    return len(chats) - number


@history_group.command("list")
@click.pass_context
async def history_list(ctx):
    """List stored chats, most recent first."""
    config: Config = ctx.obj["config"]

    async with open_history(config) as history:
        chats = await _summarized(config, history)

    if not chats:
        click.echo("[*] History is empty")
        return
    for number, chat in enumerate(reversed(chats), start=1):
        click.echo(chat_line(number, chat))


@history_group.command("resume")
@click.argument("number", type=int)
@click.pass_context
async def history_resume(ctx, number: int):
    """Make chat NUMBER the current chat."""
    config: Config = ctx.obj["config"]

    async with open_history(config) as history:
        chats = await history.read()
        chat = chats.pop(_pick(chats, number))
        chats.append(chat)
        await history.write(chats)

    click.echo(f"[+] Resumed: {chat.summary or short_date(chat)}")


@history_group.command("show")
@click.argument("number", type=int)
@click.option("--all", "-a", "show_all", is_flag=True, help="Show all messages")
@click.option("--limit", "-n", default=1, show_default=True, help="Number of messages")
@click.pass_context
async def history_show(ctx, number: int, show_all: bool, limit: int):
    """Show chat NUMBER without making it current."""
    config: Config = ctx.obj["config"]

    async with open_history(config) as history:
        chats = await _summarized(config, history)

    chat = chats[_pick(chats, number)]
    last_n = len(chat.messages) if show_all else limit
    md = chat_to_md(chat, last_n=last_n, default_system_prompt=config.system_prompt)
    await render_md(md, renderer=config.renderer)


@history_group.command("clear")
@click.confirmation_option(prompt="Delete all stored chats?")
@click.pass_context
async def history_clear(ctx):
    """Delete all stored chats."""
    config: Config = ctx.obj["config"]

    async with open_history(config) as history:
        deleted = await history.clear()

    click.echo(f"[+] Deleted {deleted} chats from history")


@cli.command()
@click.argument("number", type=int)
@click.option("--model", "-m", required=True, help="Select model by substring (e.g., 'sonnet')")
@click.option("--verbose", "-v", is_flag=True, help="Include reasoning in output")
@click.pass_context
async def fork(ctx, number: int, model: str, verbose: bool):
    """Fork the current chat at message NUMBER with a different model.

    Forking on a user message regenerates the reply with the new model.
    """
    config: Config = ctx.obj["config"]

    async with open_history(config) as history:
        chats = await history.read()
        chat = current_chat(chats)
        if not 1 <= number <= len(chat.messages):
            raise click.BadParameter(
                f"Message {number} does not exist (chat has {len(chat.messages)} messages)"
            )

        try:
            resolved = resolve_model(model)
            forked = fork_chat(chat, number - 1)
            chats.append(forked)

            selected = forked.messages[-1]
            if isinstance(selected, UserMessage):
                # complete appends the user message again
                forked.messages.pop()
                reply_message = await get_client(config).complete(
                    forked, selected.content, resolved, image_url=selected.image_url
                )
                md = message_content_md(reply_message, get_mode(False, verbose))
                await render_md(md, renderer=config.renderer)
            else:
                click.echo(
                    f"[+] Forked on assistant message with model {resolved.id}. "
                    "You can now continue the chat."
                )
        except LLMChatError as e:
            fail(ctx, e)

        await history.write(chats)


@cli.command()
@click.option("--verbose", "-v", is_flag=True, help="Show model keys")
@click.pass_context
async def models(ctx, verbose: bool):
    """List models."""
    config: Config = ctx.obj["config"]
    await render_md(models_md(verbose), renderer=config.renderer)


@cli.command()
@click.option("--title", "-t", default=None, help="Gist title")
@click.option("--all", "-a", "include_all", is_flag=True, help="Include all messages")
@click.option("--limit", "-n", default=1, show_default=True, help="Number of messages")
@click.pass_context
async def gist(ctx, title: str | None, include_all: bool, limit: int):
    """Save the current chat to a GitHub Gist with the gh CLI."""
    config: Config = ctx.obj["config"]

    if shutil.which("gh") is None:
        click.echo("[-] Creating a gist requires the `gh` CLI (https://cli.github.com/)")
        ctx.exit(1)

    async with open_history(config) as history:
        chat = current_chat(await _summarized(config, history))

    title = title or chat.summary
    filename = f"LLM chat - {title}.md" if title else "LLM chat.md"
    last_n = len(chat.messages) if include_all else limit
    md = chat_to_md(chat, last_n=last_n, mode="gist")

    process = await asyncio.create_subprocess_exec(
        "gh", "gist", "create", "-f", filename,
        stdin=asyncio.subprocess.PIPE,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await process.communicate(md.encode("utf-8"))
    if process.returncode:
        click.echo(f"[-] gh gist create failed: {stderr.decode().strip()}")
        ctx.exit(1)

    click.echo(f"[+] Gist created: {stdout.decode().strip()}")


@cli.group("bg")
async def bg_group():
    """Check, resume or cancel the current chat's background request."""


def _require_task(ctx: click.Context, chat: Chat) -> None:
    if chat.background_task is None:
        fail(ctx, NoBackgroundTask())


@bg_group.command("status")
@click.pass_context
async def bg_status(ctx):
    """Check the background task once without waiting."""
    config: Config = ctx.obj["config"]

    async with open_history(config) as history:
        chat = current_chat(await history.read())
    _require_task(ctx, chat)

    task = chat.background_task
    try:
        status = await get_client(config).background().poll_status(task.provider_request_id)
    except LLMChatError as e:
        fail(ctx, e)

    click.echo(f"[*] Task: {task.provider_request_id}")
    click.echo(f"[*] Model: {task.model_id}")
    click.echo(f"[*] Status: {status.value}")
    click.echo(f"[*] Started: {task.started_at.astimezone():%Y-%m-%d %H:%M:%S}")


@bg_group.command("resume")
@click.option(
    "--cancel-on-interrupt",
    is_flag=True,
    help="Cancel the request on the provider when interrupted (default: detach)",
)
@click.option("--verbose", "-v", is_flag=True, help="Include reasoning in output")
@click.option("--raw", is_flag=True, help="Print LLM text directly (no metadata or reasoning)")
@click.pass_context
async def bg_resume(ctx, cancel_on_interrupt: bool, verbose: bool, raw: bool):
    """Wait for the background task and print the reply."""
    config: Config = ctx.obj["config"]

    def on_tick(status: BackgroundStatus, elapsed_ms: float) -> None:
        if not raw:
            click.echo(f"[*] {status.value} ({format_elapsed(elapsed_ms)})", err=True)

    async with open_history(config) as history:
        chats = await history.read()
        chat = current_chat(chats)
        _require_task(ctx, chat)

        try:
            result, reply_message = await get_client(config).resume_background(
                chat, on_tick=on_tick, cancel_on_abort=cancel_on_interrupt
            )
        except LLMChatError as e:
            # a terminal task is cleared even when its result is unusable
            await history.write(chats)
            fail(ctx, e)
        except asyncio.CancelledError:
            if cancel_on_interrupt:
                await history.write(chats)
            raise

        await history.write(chats)

    if reply_message is not None:
        md = message_content_md(reply_message, get_mode(raw, verbose))
        await render_md(md, raw, config.renderer)
    else:
        click.echo(
            f"[!] Background task ended with status {result.status.value} "
            f"after {format_elapsed(result.elapsed_ms)}"
        )


@bg_group.command("cancel")
@click.pass_context
async def bg_cancel(ctx):
    """Cancel the background task and forget it."""
    config: Config = ctx.obj["config"]

    async with open_history(config) as history:
        chats = await history.read()
        chat = current_chat(chats)
        _require_task(ctx, chat)
        task_id = chat.background_task.provider_request_id

        try:
            await get_client(config).cancel_background(chat)
        except LLMChatError as e:
            # the task is cleared locally either way
            await history.write(chats)
            fail(ctx, e)

        await history.write(chats)

    click.echo(f"[+] Background task cancelled: {task_id}")


if __name__ == "__main__":
    cli()
