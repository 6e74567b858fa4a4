"""Framer for the PostgreSQL backend message stream.

Every backend message is ``[tag:1][length:4][payload:length-4]`` where the
length covers itself but not the tag.  The framer works on a cumulative
buffer owned by the feeder: it decodes every complete frame, leaves a
trailing partial frame untouched and reports how many bytes it consumed.

Reference: https://www.postgresql.org/docs/current/protocol-overview.html
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from pgwire_decoder.protocol.buffer import Buffer, ByteSource
from pgwire_decoder.protocol.errors import (
    MalformedFrameError,
    ProtocolError,
    TrailingBytesError,
    UnknownTagError,
)
from pgwire_decoder.protocol.messages import (
    BackendMessage,
    BackendMessageType,
    ConfigurationVariable,
    ParameterStatus,
)
from pgwire_decoder.protocol.parsers import parse_payload
from pgwire_decoder.protocol.session import DEFAULT_ENCODING, Session
from pgwire_decoder.protocol.sink import MessageSink

if TYPE_CHECKING:
    from pgwire_decoder.config.models import DecoderConfig

logger = structlog.get_logger()

HEADER_LENGTH = 5  # tag + Int32 length
DEFAULT_MAX_FRAME_LENGTH = 1 << 30  # 1 GiB of payload


@dataclass(slots=True)
class DecodeResult:
    """Outcome of one ``decode`` call.

    ``consumed`` counts the bytes of complete frames; the feeder may drop
    that prefix.  ``pending`` bytes belong to a frame that has not fully
    arrived yet.
    """

    consumed: int
    pending: int
    messages: list[BackendMessage] = field(default_factory=list)

    @property
    def need_more(self) -> bool:
        """True when the buffer ends inside a frame."""
        return self.pending > 0


class BackendMessageDecoder:
    """Stateful decoder for one connection's backend byte stream.

    The decoder holds no reference to the feeder's buffer between calls.
    Its only state is the injected ``Session``, whose charset it reads while
    parsing and updates when the server reports a new ``client_encoding``.
    """

    def __init__(
        self,
        session: Session | None = None,
        *,
        max_frame_length: int = DEFAULT_MAX_FRAME_LENGTH,
    ) -> None:
        self._session = session if session is not None else Session(DEFAULT_ENCODING)
        self._max_frame_length = max_frame_length

    @classmethod
    def from_config(
        cls, config: DecoderConfig, session: Session | None = None
    ) -> BackendMessageDecoder:
        if session is None:
            session = Session(config.initial_charset)
        return cls(session, max_frame_length=config.max_frame_length)

    @property
    def session(self) -> Session:
        return self._session

    @property
    def max_frame_length(self) -> int:
        return self._max_frame_length

    def decode(self, buffer: Buffer, sink: MessageSink | None = None) -> DecodeResult:
        """Decode every complete frame in *buffer*.

        Messages are written to *sink* (if given) in stream order and also
        returned in the result.  On a ``ProtocolError`` the messages decoded
        before the failing frame have already been written to *sink* and are
        attached to the error as ``messages``; its ``offset`` is the start of
        the failing frame.
        """
        source = ByteSource(buffer)
        messages: list[BackendMessage] = []
        while source.has_remaining():
            try:
                message = self.decode_frame(source)
            except ProtocolError as exc:
                exc.messages = tuple(messages)
                raise
            if message is None:
                break
            messages.append(message)
            if sink is not None:
                sink.write(message)
            self._after_emit(message)
        return DecodeResult(
            consumed=source.position,
            pending=source.remaining,
            messages=messages,
        )

    def decode_frame(self, source: ByteSource) -> BackendMessage | None:
        """Decode one frame from *source*, or return None if it is incomplete.

        On None the cursor is left where it was.  On a ProtocolError it is
        reset to the start of the frame.
        """
        if source.remaining < HEADER_LENGTH:
            return None

        start = source.position
        source.mark()
        tag = source.read_uint8()
        length = source.read_int32()
        try:
            if length < 4:
                msg = f"length field {length} is smaller than 4"
                raise MalformedFrameError(msg)
            payload_length = length - 4
            if payload_length > self._max_frame_length:
                msg = (
                    f"payload of {payload_length} bytes exceeds the "
                    f"{self._max_frame_length} byte limit"
                )
                raise MalformedFrameError(msg)
            if source.remaining < payload_length:
                source.reset()
                return None

            kind = BackendMessageType.from_tag(tag)
            if kind is None:
                raise UnknownTagError(tag)

            payload = source.slice(payload_length)
            message = parse_payload(kind, payload, self._session)
            if payload.has_remaining():
                raise TrailingBytesError(kind, payload.remaining)
        except ProtocolError as exc:
            source.reset()
            exc.offset = start
            raise

        logger.debug("decoder.frame_decoded", type=kind.name, length=length)
        return message

    def _after_emit(self, message: BackendMessage) -> None:
        """Apply session side effects once *message* has been emitted."""
        if not isinstance(message, ParameterStatus):
            return
        self._session.record_parameter(message.name, message.value)
        if message.variable is ConfigurationVariable.CLIENT_ENCODING:
            self._session.set_client_encoding(message.value)
