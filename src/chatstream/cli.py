"""chatstream CLI: chat with the agent service from a terminal.

Commands: chat, health.
"""

import asyncio
import json
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.markup import escape

from chatstream.client import ChatStreamClient
from chatstream.config import BasicAuthConfig, ClientConfig
from chatstream.exceptions import ChatStreamError, ConfigError
from chatstream.models import ChatMessage
from chatstream.observability import LogLevel, configure_logging
from chatstream.stream.events import CallResult, Notification

console = Console()

app = typer.Typer(
    name="chatstream",
    help="Chat with the agent service over a streaming connection.",
    no_args_is_help=True,
)

HELP_TEXT = """Commands:
  help         Show this help
  clear        Reset conversation history
  exit, quit   Leave

Anything else is sent to the agent, together with the conversation so far."""


def _load_config(
    config_path: Path | None,
    url: str | None,
    user: str | None,
    password: str | None,
) -> ClientConfig:
    try:
        config = ClientConfig.from_file(config_path) if config_path else ClientConfig()
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}", highlight=False)
        raise typer.Exit(1) from None
    updates: dict[str, Any] = {}
    if url:
        updates["base_url"] = url
    if user is not None and password is not None:
        updates["auth"] = BasicAuthConfig(username=user, password=password)
    return config.model_copy(update=updates)


def _setup_logging(config: ClientConfig, verbose: bool) -> None:
    level = config.logging.level if verbose else LogLevel.WARNING
    configure_logging(level=level, format=config.logging.format)


def describe_tool_call(tool_call: Any) -> str:
    """One-line label for a tool call payload."""
    if isinstance(tool_call, dict) and "tool" in tool_call:
        return str(tool_call["tool"])
    return json.dumps(tool_call, default=str)


def _print_notification(notification: Notification) -> None:
    if notification.kind == "content":
        console.print(notification.text, end="", markup=False, highlight=False)


async def _send(
    client: ChatStreamClient,
    message: str,
    history: list[ChatMessage],
) -> CallResult | None:
    console.print("[bold cyan]Agent:[/bold cyan] ", end="")
    try:
        result = await client.chat_stream(message, history, on_notification=_print_notification)
    except ChatStreamError as e:
        console.print()
        console.print(f"[red]Error:[/red] {escape(str(e))}", highlight=False)
        return None

    console.print()
    if result.tool_calls:
        console.print("[bold]Actions taken:[/bold]")
        for tool_call in result.tool_calls:
            console.print(f"  └─ {describe_tool_call(tool_call)}", markup=False)
    return result


async def _interactive(client: ChatStreamClient) -> None:
    history: list[ChatMessage] = []
    console.print(HELP_TEXT)
    console.print()

    while True:
        try:
            line = console.input("[bold green]You:[/bold green] ").strip()
        except (EOFError, KeyboardInterrupt):
            console.print()
            return

        if not line:
            continue

        command = line.lower()
        if command in ("exit", "quit"):
            console.print("Goodbye!")
            return
        if command == "help":
            console.print(HELP_TEXT)
            continue
        if command == "clear":
            history.clear()
            console.print("Conversation history cleared")
            continue

        result = await _send(client, line, history)
        if result is not None:
            history.append(ChatMessage(role="user", content=line))
            history.append(ChatMessage(role="assistant", content=result.message))
        console.print()


@app.command()
def chat(
    message: str = typer.Option(
        None, "--message", "-m", help="Send one message and exit.",
    ),
    config_path: Path = typer.Option(
        None, "--config", "-c", help="YAML or JSON client configuration.",
    ),
    url: str = typer.Option(None, "--url", help="Agent service base URL."),
    user: str = typer.Option(None, "--user", help="Basic auth username."),
    password: str = typer.Option(None, "--password", help="Basic auth password."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show client logs."),
) -> None:
    """Chat with the agent, interactively or one message at a time."""
    config = _load_config(config_path, url, user, password)
    _setup_logging(config, verbose)

    async def _run() -> bool:
        async with ChatStreamClient(config) as client:
            if message:
                return await _send(client, message, []) is not None
            console.print(f"Connected to: {config.base_url}")
            await _interactive(client)
            return True

    if not asyncio.run(_run()):
        raise typer.Exit(1)


@app.command()
def health(
    config_path: Path = typer.Option(
        None, "--config", "-c", help="YAML or JSON client configuration.",
    ),
    url: str = typer.Option(None, "--url", help="Agent service base URL."),
) -> None:
    """Check that the agent service is reachable."""
    config = _load_config(config_path, url, None, None)
    _setup_logging(config, verbose=False)

    async def _check() -> bool:
        async with ChatStreamClient(config) as client:
            return await client.health()

    try:
        healthy = asyncio.run(_check())
    except ChatStreamError as e:
        console.print(f"[red]Cannot connect to {config.base_url}:[/red] {escape(str(e))}", highlight=False)
        raise typer.Exit(1) from None

    if not healthy:
        console.print(f"[red]{config.base_url} is unhealthy[/red]")
        raise typer.Exit(1)
    console.print(f"[green]{config.base_url} is healthy[/green]")


def main() -> None:
    app()
