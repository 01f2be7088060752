"""CLI entry point for the devagent developer agent.

Provides ``chat``, ``telegram``, and ``capabilities`` sub-commands using
Click and Rich for output formatting.

Usage::

    devagent chat --workdir ./myproject --verbose
    devagent telegram --provider xai
    devagent capabilities
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Callable
from typing import Any

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from devagent.agent.capabilities import CapabilityRegistry
from devagent.agent.events import AgentEvent, AgentEventType
from devagent.agent.messaging import ConsoleMessenger, TelegramMessenger
from devagent.agent.orchestrator import TurnOrchestrator, build_orchestrator
from devagent.config import AgentConfig
from devagent.llm.errors import ConfigurationError

console = Console()

_EXIT_COMMANDS = {"/exit", "/quit"}
_CLEAR_COMMANDS = {"/clear", "/reset"}


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )
    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _agent_options(func: Callable[..., Any]) -> Callable[..., Any]:
    @click.option("--provider", default=None, help="LLM provider: anthropic, xai or openai.")
    @click.option("--model", default=None, help="Model identifier.")
    @click.option(
        "--workdir",
        type=click.Path(exists=True, file_okay=False),
        default=None,
        help="Project directory the agent works in.",
    )
    @click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        return func(*args, **kwargs)

    return wrapper


def _load_config(provider: str | None, model: str | None, workdir: str | None) -> AgentConfig:
    try:
        return AgentConfig.from_env(provider=provider, model=model, workdir=workdir)
    except ConfigurationError as exc:
        console.print(f"[red]Configuration error:[/red] {exc}")
        raise SystemExit(1) from exc


def _build(config: AgentConfig, messenger: Any) -> TurnOrchestrator:
    try:
        orchestrator = build_orchestrator(config, messenger)
    except ConfigurationError as exc:
        console.print(f"[red]Configuration error:[/red] {exc}")
        raise SystemExit(1) from exc
    orchestrator.emitter.subscribe(_render_event)
    return orchestrator


def _render_event(event: AgentEvent) -> None:
    if event.type == AgentEventType.TOOL_CALL_START:
        console.print(f"[dim]> {event.data.get('tool_name')}[/dim]")
    elif event.type == AgentEventType.TOOL_CALL_END and event.data.get("is_error"):
        console.print(f"[yellow]  {event.data.get('tool_name')} failed[/yellow]")
    elif event.type == AgentEventType.HALLUCINATION_DETECTED:
        console.print("[yellow]Answer claimed unperformed actions; re-prompting.[/yellow]")
    elif event.type == AgentEventType.ITERATION_LIMIT:
        console.print(f"[yellow]Iteration limit ({event.data.get('limit')}) reached.[/yellow]")


@click.group()
@click.version_option(package_name="devagent")
def main() -> None:
    """devagent: an autonomous developer agent you talk to over chat."""


@main.command()
@_agent_options
def chat(provider: str | None, model: str | None, workdir: str | None, verbose: bool) -> None:
    """Talk to the agent in an interactive terminal session."""
    _setup_logging(verbose)
    config = _load_config(provider, model, workdir)
    orchestrator = _build(config, ConsoleMessenger(console))

    console.print(
        f"[bold green]devagent[/bold green] {config.provider}/{config.model} "
        f"in {config.workdir}  [dim](/clear to reset, /exit to quit)[/dim]"
    )
    asyncio.run(_chat_loop(orchestrator))


async def _chat_loop(orchestrator: TurnOrchestrator) -> None:
    while True:
        try:
            text = await asyncio.to_thread(console.input, "[bold cyan]you>[/bold cyan] ")
        except (EOFError, KeyboardInterrupt):
            console.print()
            return
        text = text.strip()
        if not text:
            continue
        if text in _EXIT_COMMANDS:
            return
        if text in _CLEAR_COMMANDS:
            orchestrator.reset()
            console.print("[dim]History cleared.[/dim]")
            continue
        await orchestrator.handle_turn(text)


@main.command()
@_agent_options
def telegram(provider: str | None, model: str | None, workdir: str | None, verbose: bool) -> None:
    """Serve the agent over a Telegram bot."""
    _setup_logging(verbose)
    config = _load_config(provider, model, workdir)
    if not config.telegram_bot_token or not config.telegram_chat_id:
        console.print("[red]TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID must be set.[/red]")
        raise SystemExit(1)

    messenger = TelegramMessenger(
        config.telegram_bot_token,
        config.telegram_chat_id,
        download_dir=config.workdir / config.transient_dir,
    )
    orchestrator = _build(config, messenger)
    console.print(f"[bold green]Listening on Telegram[/bold green] for chat {config.telegram_chat_id}")
    try:
        asyncio.run(_telegram_loop(orchestrator, messenger))
    except KeyboardInterrupt:
        console.print("[dim]Stopped.[/dim]")


async def _telegram_loop(orchestrator: TurnOrchestrator, messenger: TelegramMessenger) -> None:
    try:
        async for inbound in messenger.poll():
            if inbound.text in _CLEAR_COMMANDS:
                orchestrator.reset()
                await messenger.send_message("History cleared.")
                continue
            await orchestrator.handle_turn(inbound.text, inbound.attachment)
    finally:
        await messenger.close()


@main.command()
def capabilities() -> None:
    """List the capabilities the agent can load on demand."""
    table = Table(title="Capabilities")
    table.add_column("Name", style="cyan")
    table.add_column("Description")
    table.add_column("Tools", style="green")
    for summary in CapabilityRegistry().list():
        table.add_row(summary.name, summary.description, ", ".join(summary.tool_names))
    console.print(table)


if __name__ == "__main__":
    main()
