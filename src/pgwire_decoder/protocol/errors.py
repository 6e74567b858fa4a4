"""Exception hierarchy for backend message decoding.

Every ``ProtocolError`` is fatal for the connection that produced it: the
byte stream can no longer be framed reliably, so the only valid response is
to close the connection.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pgwire_decoder.protocol.messages import BackendMessage, BackendMessageType


class PgWireError(Exception):
    """Base class for all pgwire-decoder errors."""


class UnsupportedEncodingError(PgWireError):
    """A PostgreSQL encoding name has no usable Python codec."""

    def __init__(self, encoding: str) -> None:
        self.encoding = encoding
        super().__init__(f"Unsupported backend encoding '{encoding}'")


class StreamClosedError(PgWireError):
    """Bytes were fed to a stream that is closed or has already failed."""


class IncompleteStreamError(PgWireError):
    """The transport reached EOF in the middle of a frame."""

    def __init__(self, pending: int) -> None:
        self.pending = pending
        super().__init__(f"Connection closed with {pending} undecoded byte(s) pending")


class ProtocolError(PgWireError):
    """The backend byte stream violates the wire protocol.

    ``offset`` is the position of the failing frame within the buffer
    handed to the decoder, once the framer has attached it.
    ``messages`` holds the messages decoded from that buffer before the
    failing frame, in stream order.
    """

    offset: int | None = None
    messages: tuple[BackendMessage, ...] = ()


class UnknownTagError(ProtocolError):
    def __init__(self, tag: int) -> None:
        self.tag = tag
        super().__init__(f"Unknown backend message tag 0x{tag:02X} ({chr(tag)!r})")


class UnknownAuthSubkindError(ProtocolError):
    def __init__(self, subkind: int) -> None:
        self.subkind = subkind
        super().__init__(f"Unknown authentication request type {subkind}")


class UnknownTxnStatusError(ProtocolError):
    def __init__(self, status: int) -> None:
        self.status = status
        super().__init__(
            f"Unrecognized transaction status 0x{status:02X} ({chr(status)!r})"
        )


class MalformedFrameError(ProtocolError):
    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Malformed frame: {reason}")


class ShortPayloadError(ProtocolError):
    """A parser asked for more bytes than the frame's payload holds."""

    def __init__(self, kind: BackendMessageType) -> None:
        self.kind = kind
        super().__init__(f"Payload of {kind.name} message ended prematurely")


class TrailingBytesError(ProtocolError):
    """A parser finished without consuming the whole payload."""

    def __init__(self, kind: BackendMessageType, count: int) -> None:
        self.kind = kind
        self.count = count
        super().__init__(
            f"{count} unread byte(s) left after decoding {kind.name} message"
        )


class CharsetDecodeError(ProtocolError):
    def __init__(self, field: str, encoding: str) -> None:
        self.field = field
        self.encoding = encoding
        super().__init__(f"Field '{field}' is not valid {encoding}")
