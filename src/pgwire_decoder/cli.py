"""Typer CLI for inspecting captured backend byte streams."""

from __future__ import annotations

import dataclasses
from pathlib import Path

import structlog
import typer
from rich.console import Console
from rich.table import Table

from pgwire_decoder.config.loader import load_decoder_config
from pgwire_decoder.config.models import DecoderConfig
from pgwire_decoder.observability.logging import configure_from
from pgwire_decoder.protocol.decoder import BackendMessageDecoder
from pgwire_decoder.protocol.errors import ProtocolError
from pgwire_decoder.protocol.messages import BackendMessage
from pgwire_decoder.protocol.stream import MessageStream

logger = structlog.get_logger()
console = Console()
app = typer.Typer(name="pgwire-decode", help="PostgreSQL backend message decoder")


def _load(config_path: str | None) -> DecoderConfig:
    try:
        return load_decoder_config(Path(config_path) if config_path else None)
    except (FileNotFoundError, TypeError, ValueError) as exc:
        console.print(f"[red]Config error:[/red] {exc}")
        raise typer.Exit(1) from exc


def _read_capture(path: Path, as_hex: bool) -> bytes:
    if not path.exists():
        console.print(f"[red]Capture file not found: {path}[/red]")
        raise typer.Exit(1)
    if not as_hex:
        return path.read_bytes()
    try:
        return bytes.fromhex(path.read_text())
    except ValueError as exc:
        console.print(f"[red]Invalid hex in {path}:[/red] {exc}")
        raise typer.Exit(1) from exc


def describe(message: BackendMessage) -> str:
    """Render a message's payload fields as ``name=value`` pairs."""
    return ", ".join(
        f"{f.name}={getattr(message, f.name)!r}"
        for f in dataclasses.fields(message)
        if f.name != "type"
    )


@app.command()
def decode(
    capture: str = typer.Argument(..., help="File holding a backend byte stream"),
    as_hex: bool = typer.Option(False, "--hex", help="Capture is hex text"),
    chunk_size: int = typer.Option(
        0, "--chunk-size", min=0, help="Feed the capture in chunks of N bytes"
    ),
    config_path: str | None = typer.Option(None, "--config", help="Decoder YAML"),
) -> None:
    """Decode a captured backend stream and print its messages."""
    config = _load(config_path)
    configure_from(config)
    data = _read_capture(Path(capture), as_hex)

    stream = MessageStream(BackendMessageDecoder.from_config(config))
    step = chunk_size or len(data) or 1
    messages: list[BackendMessage] = []
    error: ProtocolError | None = None
    try:
        for offset in range(0, len(data), step):
            messages.extend(stream.feed(data[offset : offset + step]))
    except ProtocolError as exc:
        messages.extend(exc.messages)
        error = exc

    table = Table(title=f"Backend messages ({len(messages)})")
    table.add_column("#", justify="right")
    table.add_column("Type", style="cyan")
    table.add_column("Detail")
    for i, message in enumerate(messages, 1):
        table.add_row(str(i), message.type.name, describe(message))
    console.print(table)

    if error is not None:
        console.print(
            f"[red]Protocol error at byte {stream.bytes_consumed}:[/red] {error}"
        )
        raise typer.Exit(1)
    if stream.pending:
        console.print(f"[yellow]{stream.pending} trailing byte(s) of a partial frame[/yellow]")
    stream.close()


@app.command("validate-config")
def validate_config(
    config_path: str = typer.Argument(..., help="Path to decoder YAML"),
) -> None:
    """Validate a decoder configuration file."""
    config = _load(config_path)
    console.print("[green]Valid[/green]")
    for name, value in config.model_dump(mode="json").items():
        console.print(f"  {name}: {value}")


if __name__ == "__main__":
    app()
