#!/usr/bin/env python3

from __future__ import annotations
import asyncio
from pathlib import Path
from typing import Optional

import aioconsole
import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from deceptchat.client.config import ClientConfig
from deceptchat.client.session import ChatClient
from deceptchat.client.state import ChatMessage, ConnectionState, validate_identity
from deceptchat.shared.errors import NotConnectedError
from deceptchat.shared.frames import MATCH_ROLES, ChatSend, RequestMatch, decode, encode
from deceptchat.shared.log import configure_root_logging, get_logger

app = typer.Typer(help="DeceptChat terminal client")
console = Console()
logger = get_logger(__name__)

HELP_TEXT = "/match [GUESSER|MIMIC], /ping, /status, /log, /reconnect, /quit"


def _load_config(config: Optional[Path], server: Optional[str]) -> ClientConfig:
    try:
        cfg = ClientConfig.load(config)
        if server:
            cfg = cfg.with_values({"server_url": server})
            cfg.validate()
    except ValueError as e:
        console.print(f"[red]Config error[/]: {e}")
        raise typer.Exit(code=2)
    return cfg


def _render_message(message: ChatMessage) -> None:
    if message.is_self:
        console.print(f"[dim]{message.time_label()}[/] [bold green]Me[/]: {escape(message.body)}")
    elif message.sender:
        console.print(f"[dim]{message.time_label()}[/] [bold cyan]{escape(message.sender)}[/]: {escape(message.body)}")
    else:
        console.print(f"[dim]{message.time_label()}[/] {escape(message.body)}")


def _render_log(client: ChatClient) -> None:
    table = Table(title="Chat log")
    table.add_column("Time")
    table.add_column("Sender")
    table.add_column("Message")
    for message in client.log:
        sender = "Me" if message.is_self else (message.sender or "?")
        table.add_row(message.time_label(), escape(sender), escape(message.body))
    console.print(table)


@app.command()
def run(
    server: Optional[str] = typer.Option(None, help="WebSocket URL of the chat server"),
    config: Optional[Path] = typer.Option(None, help="YAML config file"),
    name: Optional[str] = typer.Option(None, help="Display name; random PlayerNNN if omitted"),
    role: Optional[str] = typer.Option(None, help="Default matchmaking role (GUESSER or MIMIC)"),
    log_level: str = typer.Option("WARNING", help="Root log level"),
):
    """Connect and chat interactively."""
    if role is not None and role.upper() not in MATCH_ROLES:
        console.print(f"[red]Unknown role[/] {role}; expected one of {sorted(MATCH_ROLES)}")
        raise typer.Exit(code=2)
    default_role = role.upper() if role else None
    if name is not None:
        try:
            validate_identity(name)
        except ValueError as e:
            console.print(f"[red]Invalid name[/]: {escape(str(e))}")
            raise typer.Exit(code=2)
    configure_root_logging(log_level)
    cfg = _load_config(config, server)

    async def main_loop() -> None:
        client = ChatClient(cfg, identity=name)
        client.on_status(lambda text: console.print(f"[bold yellow]*[/] {escape(text)}"))
        client.on_message(_render_message)
        console.print(f"[bold green]DeceptChat[/] as {client.identity} on {cfg.server_url}")

        await client.connect()
        try:
            while True:
                line = (await aioconsole.ainput(": ")).strip()
                if not line:
                    continue
                if line in {"/quit", "/exit", "/logout"}:
                    break
                if line == "/help":
                    console.print(HELP_TEXT, markup=False)
                    continue
                if line == "/status":
                    match = client.match
                    console.print(
                        f"connection={client.state.value} match={match.state.value}"
                        + (f" room={match.room_id}" if match.room_id else "")
                        + f" status={client.status_text!r}"
                    )
                    continue
                if line == "/log":
                    _render_log(client)
                    continue
                if line == "/reconnect":
                    await client.connect()
                    continue
                if line == "/ping":
                    try:
                        await client.ping()
                    except NotConnectedError as e:
                        console.print(f"[red]{e}[/]")
                    continue
                if line == "/match" or line.startswith("/match "):
                    arg = line[len("/match"):].strip().upper() or default_role
                    if arg and arg not in MATCH_ROLES:
                        console.print(f"Usage: /match [{'|'.join(sorted(MATCH_ROLES))}]", markup=False)
                        continue
                    await client.request_match(arg)
                    continue
                if line.startswith("/"):
                    console.print(f"Unknown command. {HELP_TEXT}", markup=False)
                    continue
                await client.send_chat(line)
        except (EOFError, KeyboardInterrupt):
            pass
        finally:
            await client.dispose()
            if client.state == ConnectionState.DISCONNECTED:
                console.print("Logged out")

    asyncio.run(main_loop())


@app.command(name="encode")
def encode_cmd(
    body: Optional[str] = typer.Argument(None, help="Chat body; omit with --match"),
    sender: str = typer.Option("Player0", help="Sender name for a chat frame"),
    match: bool = typer.Option(False, "--match", help="Encode REQUEST_MATCH instead"),
    role: Optional[str] = typer.Option(None, help="Role for --match"),
):
    """Print the wire text for a chat message or match request."""
    if match:
        console.print(encode(RequestMatch(role=role.upper() if role else None)), markup=False)
        return
    if body is None:
        console.print("[red]Nothing to encode[/]: pass a body or --match")
        raise typer.Exit(code=2)
    console.print(encode(ChatSend(sender=sender, body=body)), markup=False)


@app.command(name="decode")
def decode_cmd(raw: str = typer.Argument(..., help="Wire text as received")):
    """Show how an inbound wire message is classified."""
    frame = decode(raw)
    if frame is None:
        console.print("(empty frame ignored)")
        return
    console.print(repr(frame), markup=False)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
