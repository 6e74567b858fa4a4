"""Feeders: the byte-stream side of the decoder contract.

``MessageStream`` owns the cumulative buffer for one connection, appends
each network read to it and compacts away the bytes the decoder consumed.
``read_messages`` drives a ``MessageStream`` from an ``asyncio.StreamReader``;
waiting on the reader is the only point where decoding suspends.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

import structlog

from pgwire_decoder.protocol.buffer import Buffer
from pgwire_decoder.protocol.decoder import BackendMessageDecoder
from pgwire_decoder.protocol.errors import (
    IncompleteStreamError,
    ProtocolError,
    StreamClosedError,
)
from pgwire_decoder.protocol.messages import BackendMessage
from pgwire_decoder.protocol.sink import MessageSink

logger = structlog.get_logger()

DEFAULT_READ_CHUNK_SIZE = 64 * 1024


class MessageStream:
    """Cumulative buffer feeding a BackendMessageDecoder.

    After a ProtocolError the stream is failed: the connection it belongs
    to must be closed, and further feeds raise StreamClosedError.
    """

    def __init__(
        self,
        decoder: BackendMessageDecoder | None = None,
        sink: MessageSink | None = None,
    ) -> None:
        self._decoder = decoder or BackendMessageDecoder()
        self._sink = sink
        self._buffer = bytearray()
        self._closed = False
        self._failed = False
        self._bytes_consumed = 0

    @property
    def decoder(self) -> BackendMessageDecoder:
        return self._decoder

    @property
    def pending(self) -> int:
        """Bytes buffered for a frame that has not fully arrived."""
        return len(self._buffer)

    @property
    def bytes_consumed(self) -> int:
        """Total bytes of complete frames decoded over the stream's life."""
        return self._bytes_consumed

    @property
    def closed(self) -> bool:
        return self._closed or self._failed

    def feed(self, data: Buffer) -> list[BackendMessage]:
        """Append *data* and return the messages it completed.

        If a frame is bad, the ProtocolError carries the messages completed
        ahead of it, and ``bytes_consumed`` then points at the bad frame.
        """
        if self._closed:
            msg = "Cannot feed a closed MessageStream"
            raise StreamClosedError(msg)
        if self._failed:
            msg = "Cannot feed a MessageStream after a protocol error"
            raise StreamClosedError(msg)

        self._buffer += data
        try:
            result = self._decoder.decode(self._buffer, self._sink)
        except ProtocolError as exc:
            self._failed = True
            # frames before the bad one were decoded
            decoded = exc.offset or 0
            del self._buffer[:decoded]
            self._bytes_consumed += decoded
            logger.error(
                "stream.protocol_error",
                error=str(exc),
                error_type=type(exc).__name__,
                offset=self._bytes_consumed,
                decoded_before_error=len(exc.messages),
            )
            raise
        if result.consumed:
            del self._buffer[: result.consumed]
            self._bytes_consumed += result.consumed
        return result.messages

    def close(self) -> None:
        """Discard any partially received frame."""
        if self._buffer:
            logger.debug("stream.discarded_partial", pending=len(self._buffer))
        self._buffer.clear()
        self._closed = True


async def read_messages(
    reader: asyncio.StreamReader,
    decoder: BackendMessageDecoder | None = None,
    *,
    chunk_size: int = DEFAULT_READ_CHUNK_SIZE,
) -> AsyncIterator[BackendMessage]:
    """Yield backend messages read from *reader* until EOF.

    Raises IncompleteStreamError if EOF arrives inside a frame.  On a
    protocol error the messages that preceded the bad frame are yielded
    first, then the error propagates.
    """
    stream = MessageStream(decoder)
    try:
        while True:
            chunk = await reader.read(chunk_size)
            if not chunk:
                if stream.pending:
                    raise IncompleteStreamError(stream.pending)
                return
            try:
                messages = stream.feed(chunk)
            except ProtocolError as exc:
                for message in exc.messages:
                    yield message
                raise
            for message in messages:
                yield message
    finally:
        stream.close()
