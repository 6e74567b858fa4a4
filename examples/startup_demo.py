#!/usr/bin/env python3
"""Runnable demo: connect to PostgreSQL and print the startup messages.

Sends a protocol 3.0 StartupMessage and decodes the backend's replies until
the first ReadyForQuery (or an authentication request the demo cannot answer).

    python examples/startup_demo.py --host localhost --user postgres
"""

from __future__ import annotations

import asyncio
import struct

import typer
from rich.console import Console

from pgwire_decoder.cli import describe
from pgwire_decoder.config.loader import load_decoder_config
from pgwire_decoder.observability.logging import configure_from
from pgwire_decoder.protocol import BackendMessageDecoder, read_messages
from pgwire_decoder.protocol.messages import (
    Authentication,
    AuthenticationType,
    ErrorResponse,
    ReadyForQuery,
)

console = Console()

PROTOCOL_VERSION = 3 << 16


def startup_message(user: str, database: str) -> bytes:
    params = b"".join(
        key.encode() + b"\x00" + value.encode() + b"\x00"
        for key, value in (("user", user), ("database", database))
    )
    body = struct.pack("!i", PROTOCOL_VERSION) + params + b"\x00"
    return struct.pack("!i", len(body) + 4) + body


async def run(host: str, port: int, user: str, database: str) -> None:
    config = load_decoder_config()
    configure_from(config)
    reader, writer = await asyncio.open_connection(host, port)
    writer.write(startup_message(user, database))
    await writer.drain()

    decoder = BackendMessageDecoder.from_config(config)
    try:
        async for message in read_messages(
            reader, decoder, chunk_size=config.read_chunk_size
        ):
            console.print(f"[cyan]{message.type.name}[/cyan] {describe(message)}")
            if isinstance(message, (ReadyForQuery, ErrorResponse)):
                break
            if (
                isinstance(message, Authentication)
                and message.auth_type is not AuthenticationType.OK
            ):
                console.print("[yellow]Server wants a password; stopping here.[/yellow]")
                break
    finally:
        writer.close()
        await writer.wait_closed()
    console.print(f"server parameters: {dict(decoder.session.parameters)}")


def main(
    host: str = "localhost",
    port: int = 5432,
    user: str = "postgres",
    database: str = "postgres",
) -> None:
    asyncio.run(run(host, port, user, database))


if __name__ == "__main__":
    typer.run(main)
