"""Terminal chat front end for chatstream."""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path

import click
from prompt_toolkit import PromptSession
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.history import FileHistory
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from chatstream import __version__
from chatstream.config import AppConfig, ProviderKind, load_config
from chatstream.core.orchestrator import ConversationOrchestrator
from chatstream.errors import CompletionError
from chatstream.types import ChatEvent, EventType

console = Console()

_HELP = """\
Commands:
  /history   - Show the conversation so far
  /help      - Show this help
  /quit      - Exit
"""


class StreamingDisplay:
    """Renders chat events to the terminal as they arrive."""

    def __init__(self, con: Console):
        self.con = con

    def handle(self, event: ChatEvent):
        if event.type is EventType.CHAT_TOKEN:
            self.con.print(event.data["token"], end="", highlight=False, markup=False)
        elif event.type is EventType.CHAT_DONE:
            self.con.print()
        elif event.type is EventType.CHAT_ERROR:
            self.con.print(f"\n[red]{escape(event.data['error'])}[/red]", highlight=False)


def _show_history(orchestrator: ConversationOrchestrator):
    table = Table(show_header=True, header_style="bold")
    table.add_column("#", style="dim", width=4)
    table.add_column("Role", width=10)
    table.add_column("Content")
    for i, msg in enumerate(orchestrator.history, 1):
        content = msg.content if len(msg.content) <= 200 else msg.content[:200] + "..."
        table.add_row(str(i), msg.role.value, content)
    console.print(table)


async def _send(orchestrator: ConversationOrchestrator, text: str) -> bool:
    start = time.monotonic()
    try:
        await orchestrator.send_message(text)
    except CompletionError:
        # Already rendered through the chat.error event
        return False
    console.print(f"[dim]({time.monotonic() - start:.1f}s)[/dim]")
    return True


async def _repl(orchestrator: ConversationOrchestrator):
    history_path = Path("~/.config/chatstream/history").expanduser()
    history_path.parent.mkdir(parents=True, exist_ok=True)
    session: PromptSession[str] = PromptSession(history=FileHistory(str(history_path)))

    while True:
        try:
            user_input = (await session.prompt_async(HTML("<ansigreen><b>❯ </b></ansigreen>"))).strip()
        except (EOFError, KeyboardInterrupt):
            console.print("\n[dim]Goodbye![/dim]")
            return

        if not user_input:
            continue
        if user_input.startswith("/"):
            cmd = user_input.split()[0].lower()
            if cmd in ("/quit", "/exit"):
                console.print("[dim]Goodbye![/dim]")
                return
            if cmd == "/history":
                _show_history(orchestrator)
            else:
                console.print(_HELP)
            continue

        try:
            await _send(orchestrator, user_input)
        except KeyboardInterrupt:
            console.print("\n[yellow]Interrupted[/yellow]")


@click.command()
@click.option("--config", "-c", "config_path", default=None,
              help="Path to chatstream.yaml (auto-detected from CWD or ~/.config/chatstream/)")
@click.option("--provider", "-p", type=click.Choice([k.value for k in ProviderKind]),
              default=None, help="Override the configured provider")
@click.option("--model-path", default=None, help="GGUF model file for the builtin provider")
@click.option("--temperature", "-t", type=click.FloatRange(0.0, 2.0), default=None,
              help="Sampling temperature (0 = deterministic)")
@click.option("--message", "-m", default=None, help="Send one message and exit")
@click.option("--verbose", "-v", is_flag=True, help="Verbose logging")
@click.version_option(__version__)
def main(config_path: str | None, provider: str | None, model_path: str | None,
         temperature: float | None, message: str | None, verbose: bool):
    """chatstream - streaming chat with remote APIs or a local model."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)

    try:
        config, config_file = load_config(config_path)
    except FileNotFoundError as e:
        raise click.ClickException(str(e))

    overrides: dict[str, object] = {}
    if provider:
        overrides["provider"] = ProviderKind(provider)
    if model_path:
        overrides["builtin_model_path"] = model_path
    if temperature is not None:
        overrides["temperature"] = temperature
    if overrides:
        config = AppConfig.model_validate({**config.model_dump(), **overrides})

    orchestrator = ConversationOrchestrator(config)
    display = StreamingDisplay(console)
    orchestrator.event_bus.subscribe("*", display.handle)

    if message is not None:
        ok = asyncio.run(_send(orchestrator, message))
        raise SystemExit(0 if ok else 1)

    console.print(f"[bold cyan]chatstream[/bold cyan] [dim]v{__version__}[/dim]")
    if config_file:
        console.print(f"[dim]Config: {config_file}[/dim]")
    else:
        console.print("[dim]Config: defaults (no chatstream.yaml found)[/dim]")
    console.print(f"[dim]Provider: {config.provider.value}  temperature: {config.temperature}[/dim]")
    console.print("[dim]Type /help for commands[/dim]\n")
    asyncio.run(_repl(orchestrator))


if __name__ == "__main__":
    main()
