"""PostgreSQL backend message framing and parsing."""

from pgwire_decoder.protocol.buffer import ByteSource
from pgwire_decoder.protocol.decoder import BackendMessageDecoder, DecodeResult
from pgwire_decoder.protocol.errors import (
    CharsetDecodeError,
    IncompleteStreamError,
    MalformedFrameError,
    PgWireError,
    ProtocolError,
    ShortPayloadError,
    StreamClosedError,
    TrailingBytesError,
    UnknownAuthSubkindError,
    UnknownTagError,
    UnknownTxnStatusError,
    UnsupportedEncodingError,
)
from pgwire_decoder.protocol.session import Session
from pgwire_decoder.protocol.sink import CallbackSink, ListSink, MessageSink
from pgwire_decoder.protocol.stream import MessageStream, read_messages

__all__ = [
    "BackendMessageDecoder",
    "ByteSource",
    "CallbackSink",
    "CharsetDecodeError",
    "DecodeResult",
    "IncompleteStreamError",
    "ListSink",
    "MalformedFrameError",
    "MessageSink",
    "MessageStream",
    "PgWireError",
    "ProtocolError",
    "Session",
    "ShortPayloadError",
    "StreamClosedError",
    "TrailingBytesError",
    "UnknownAuthSubkindError",
    "UnknownTagError",
    "UnknownTxnStatusError",
    "UnsupportedEncodingError",
    "read_messages",
]
