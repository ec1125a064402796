from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Callable, NoReturn, Optional

import typer

from .client import DiscordClient
from .core.config import DiscordClientConfig, load_config
from .core.logging_utils import setup_rotating_logger
from .errors import DiscordError
from .gateway import GatewayClosed, GatewayError, GatewayEventQueue, GatewayMessage
from .models import Attachment

app = typer.Typer(add_completion=False, help="Discord bot API client.")

ClientFactory = Callable[..., DiscordClient]

# Replaced in tests to inject clients backed by fake transports.
client_factory: ClientFactory = DiscordClient.from_config


def raise_exit(message: str, *, cause: Optional[BaseException] = None) -> NoReturn:
    typer.echo(message, err=True)
    if cause is not None:
        raise typer.Exit(code=1) from cause
    raise typer.Exit(code=1)


def _load(path: Optional[Path]) -> DiscordClientConfig:
    try:
        config = load_config(path)
        config.require_token()
    except DiscordError as exc:
        raise_exit(str(exc), cause=exc)
    setup_rotating_logger("discord_bot_api", config.log)
    return config


def _format_frame(data: Any) -> str:
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return str(data)


@app.command("whoami")
def whoami(
    config_path: Optional[Path] = typer.Option(
        None, "--config", help="Path to discord-bot.yml"
    ),
) -> None:
    """Print the bot identity behind the configured token."""
    config = _load(config_path)

    async def _run() -> None:
        async with client_factory(config) as client:
            user = await client.fetch_self()
        typer.echo(f"{user.id} {user.username}")

    try:
        asyncio.run(_run())
    except DiscordError as exc:
        raise_exit(str(exc), cause=exc)


@app.command("send")
def send(
    channel_id: str = typer.Argument(..., help="Target channel id"),
    text: str = typer.Argument(..., help="Message content"),
    attach: Optional[Path] = typer.Option(
        None, "--attach", help="File to upload with the message"
    ),
    config_path: Optional[Path] = typer.Option(
        None, "--config", help="Path to discord-bot.yml"
    ),
) -> None:
    """Post a message, optionally with one file attached."""
    config = _load(config_path)
    attachment: Optional[Attachment] = None
    if attach is not None:
        try:
            attachment = Attachment(name=attach.name, content=attach.read_bytes())
        except OSError as exc:
            raise_exit(f"Failed to read {attach}: {exc}", cause=exc)

    async def _run() -> str:
        async with client_factory(config) as client:
            if attachment is not None:
                message = await client.send_message_with_attachment(
                    channel_id, text, attachment
                )
            else:
                message = await client.send_message(channel_id, text)
        return message.id

    try:
        message_id = asyncio.run(_run())
    except DiscordError as exc:
        raise_exit(str(exc), cause=exc)
    typer.echo(message_id)


@app.command("listen")
def listen(
    max_frames: Optional[int] = typer.Option(
        None, "--max-frames", min=1, help="Disconnect after this many frames"
    ),
    config_path: Optional[Path] = typer.Option(
        None, "--config", help="Path to discord-bot.yml"
    ),
) -> None:
    """Log in and print gateway frames until the connection closes."""
    config = _load(config_path)
    events = GatewayEventQueue()

    async def _run() -> int:
        async with client_factory(
            config,
            on_message=events.on_message,
            on_close=events.on_close,
            on_error=events.on_error,
        ) as client:
            user = await client.login()
            typer.echo(f"Logged in as {user.username} ({user.id})")
            async for event in events:
                if isinstance(event, GatewayMessage):
                    typer.echo(_format_frame(event.data))
                    if max_frames is not None and event.index + 1 >= max_frames:
                        await client.close()
                elif isinstance(event, GatewayClosed):
                    typer.echo(
                        f"Gateway closed: code={event.code} reason={event.reason}"
                    )
                elif isinstance(event, GatewayError):
                    typer.echo(f"Gateway error: {event.error}", err=True)
                    return 1
        return 0

    try:
        exit_code = asyncio.run(_run())
    except DiscordError as exc:
        raise_exit(str(exc), cause=exc)
    except KeyboardInterrupt:
        typer.echo("Gateway listener stopped.")
        return
    if exit_code:
        raise typer.Exit(code=exit_code)


def main() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
