"""Unit tests for the backend message framer."""

from __future__ import annotations

import struct

import pytest

from pgwire_decoder.protocol.buffer import ByteSource
from pgwire_decoder.protocol.decoder import BackendMessageDecoder
from pgwire_decoder.protocol.errors import (
    CharsetDecodeError,
    MalformedFrameError,
    ShortPayloadError,
    TrailingBytesError,
    UnknownTagError,
)
from pgwire_decoder.protocol.messages import (
    EMPTY_PAYLOAD_TYPES,
    Authentication,
    AuthenticationType,
    BackendKeyData,
    BackendMessage,
    BackendMessageType,
    ColumnDescription,
    CommandComplete,
    ConfigurationVariable,
    CopyBothResponse,
    CopyData,
    CopyInResponse,
    CopyOutResponse,
    DataRow,
    ErrorField,
    ErrorResponse,
    FormatCode,
    FunctionCallResponse,
    NegotiateProtocolVersion,
    NoticeResponse,
    NotificationResponse,
    ParameterDescription,
    ParameterStatus,
    ReadyForQuery,
    RowDescription,
    SimpleMessage,
    TransactionStatus,
    UnknownVariable,
)
from pgwire_decoder.protocol.parsers import PARSERS
from pgwire_decoder.protocol.session import Session
from pgwire_decoder.protocol.sink import ListSink

READY_IDLE = bytes.fromhex("5A 00 00 00 05 49")
KEY_DATA = bytes.fromhex("4B 00 00 00 0C 00 00 1A E0 7F FF FF FF")
AUTH_MD5 = bytes.fromhex("52 00 00 00 0C 00 00 00 05 DE AD BE EF")


def _frame(tag: bytes, payload: bytes = b"") -> bytes:
    """Build a backend frame: tag + Int32 length (incl. itself) + payload."""
    return tag + struct.pack("!i", len(payload) + 4) + payload


def _cstr(value: str, encoding: str = "utf-8") -> bytes:
    return value.encode(encoding) + b"\x00"


def _encode(message: BackendMessage) -> bytes:
    """Serialize a decoded message back into its wire frame."""
    tag = message.type.value.encode()
    if isinstance(message, SimpleMessage):
        payload = b""
    elif isinstance(message, Authentication):
        payload = struct.pack("!i", message.auth_type)
        if message.auth_type == AuthenticationType.SASL:
            payload += b"".join(_cstr(m) for m in message.mechanisms) + b"\x00"
        else:
            payload += message.data
    elif isinstance(message, BackendKeyData):
        payload = struct.pack("!ii", message.pid, message.secret_key)
    elif isinstance(message, ParameterStatus):
        payload = _cstr(message.name) + _cstr(message.value)
    elif isinstance(message, ReadyForQuery):
        payload = message.status.value.encode()
    elif isinstance(message, (ErrorResponse, NoticeResponse)):
        payload = (
            b"".join(str(code).encode() + _cstr(v) for code, v in message.fields.items())
            + b"\x00"
        )
    elif isinstance(message, NotificationResponse):
        payload = (
            struct.pack("!i", message.pid)
            + _cstr(message.channel)
            + _cstr(message.payload)
        )
    elif isinstance(message, RowDescription):
        payload = struct.pack("!H", len(message.columns))
        for col in message.columns:
            payload += _cstr(col.name) + struct.pack(
                "!IhIhih",
                col.table_oid,
                col.column_attr,
                col.type_oid,
                col.type_size,
                col.type_modifier,
                col.format_code,
            )
    elif isinstance(message, (DataRow, FunctionCallResponse)):
        values = message.values if isinstance(message, DataRow) else (message.value,)
        payload = struct.pack("!H", len(values)) if isinstance(message, DataRow) else b""
        for value in values:
            if value is None:
                payload += struct.pack("!i", -1)
            else:
                payload += struct.pack("!i", len(value)) + value
    elif isinstance(message, CommandComplete):
        payload = _cstr(message.tag)
    elif isinstance(message, (CopyInResponse, CopyOutResponse, CopyBothResponse)):
        n = len(message.column_formats)
        payload = struct.pack("!BH", message.overall_format, n) + struct.pack(
            f"!{n}h", *message.column_formats
        )
    elif isinstance(message, CopyData):
        payload = message.data
    elif isinstance(message, ParameterDescription):
        n = len(message.type_oids)
        payload = struct.pack("!H", n) + struct.pack(f"!{n}I", *message.type_oids)
    elif isinstance(message, NegotiateProtocolVersion):
        payload = struct.pack(
            "!ii", message.newest_minor_version, len(message.unrecognized_options)
        ) + b"".join(_cstr(o) for o in message.unrecognized_options)
    else:  # pragma: no cover
        raise TypeError(type(message))
    return _frame(tag, payload)


SAMPLE_MESSAGES: list[BackendMessage] = [
    *(SimpleMessage(kind) for kind in sorted(EMPTY_PAYLOAD_TYPES)),
    Authentication(AuthenticationType.OK),
    Authentication(AuthenticationType.CRYPT_PASSWORD, data=b"ab"),
    Authentication(AuthenticationType.MD5_PASSWORD, data=b"\xde\xad\xbe\xef"),
    Authentication(AuthenticationType.SASL, mechanisms=("SCRAM-SHA-256", "SCRAM-SHA-256-PLUS")),
    Authentication(AuthenticationType.SASL_CONTINUE, data=b"r=abc,s=xyz,i=4096"),
    Authentication(AuthenticationType.SASL_FINAL, data=b"v=signature"),
    Authentication(AuthenticationType.GSS_CONTINUE, data=b"\x00\x01\x02"),
    BackendKeyData(pid=6880, secret_key=-12345),
    ParameterStatus(ConfigurationVariable.SERVER_VERSION, "16.2"),
    ParameterStatus(UnknownVariable("my.custom_setting"), "on"),
    ReadyForQuery(TransactionStatus.IN_TRANSACTION),
    ErrorResponse(
        {
            ErrorField.SEVERITY: "ERROR",
            ErrorField.SQLSTATE: "42P01",
            ErrorField.MESSAGE: 'relation "missing" does not exist',
            ErrorField.POSITION: "15",
        }
    ),
    NoticeResponse({ErrorField.SEVERITY: "NOTICE", ErrorField.MESSAGE: "hello"}),
    NotificationResponse(pid=42, channel="jobs", payload="{\"id\": 7}"),
    RowDescription(
        (
            ColumnDescription("id", 16384, 1, 23, 4, -1, FormatCode.TEXT),
            ColumnDescription("payload", 16384, 2, 17, -1, -1, FormatCode.BINARY),
        )
    ),
    DataRow((b"1", None, b"", b"\x00\xff")),
    CommandComplete("INSERT 0 3"),
    CopyInResponse(FormatCode.TEXT, (FormatCode.TEXT, FormatCode.TEXT)),
    CopyOutResponse(FormatCode.BINARY, (FormatCode.BINARY,)),
    CopyBothResponse(FormatCode.BINARY, ()),
    CopyData(b"1\tAlice\n"),
    ParameterDescription((23, 25, 4294967295)),
    FunctionCallResponse(b"\x00\x00\x00\x2a"),
    FunctionCallResponse(None),
    NegotiateProtocolVersion(0, ("_pq_.compression",)),
]


def _ids(message: BackendMessage) -> str:
    return message.type.name


class TestScenarios:
    def test_ready_for_query_idle(self):
        decoder = BackendMessageDecoder()
        result = decoder.decode(READY_IDLE)
        assert result.messages == [ReadyForQuery(TransactionStatus.IDLE)]
        assert result.consumed == len(READY_IDLE)
        assert result.pending == 0

    def test_backend_key_data(self):
        result = BackendMessageDecoder().decode(KEY_DATA)
        assert result.messages == [BackendKeyData(pid=6880, secret_key=0x7FFFFFFF)]

    def test_authentication_md5(self):
        result = BackendMessageDecoder().decode(AUTH_MD5)
        (message,) = result.messages
        assert message.auth_type is AuthenticationType.MD5_PASSWORD
        assert message.salt == bytes([0xDE, 0xAD, 0xBE, 0xEF])

    def test_parameter_status_client_encoding(self):
        data = _frame(b"S", _cstr("client_encoding") + _cstr("UTF8"))
        session = Session("SQL_ASCII")
        result = BackendMessageDecoder(session).decode(data)
        assert result.messages == [
            ParameterStatus(ConfigurationVariable.CLIENT_ENCODING, "UTF8")
        ]
        assert session.charset == "utf_8"
        assert session.encoding == "UTF8"
        assert dict(session.parameters) == {"client_encoding": "UTF8"}

    def test_unknown_tag_leaves_cursor_at_frame_start(self):
        decoder = BackendMessageDecoder()
        source = ByteSource(bytes.fromhex("58 00 00 00 04"))
        with pytest.raises(UnknownTagError) as exc_info:
            decoder.decode_frame(source)
        assert exc_info.value.tag == 0x58
        assert exc_info.value.offset == 0
        assert source.position == 0

    def test_unknown_tag_after_valid_frame_reports_offset(self):
        sink = ListSink()
        with pytest.raises(UnknownTagError) as exc_info:
            BackendMessageDecoder().decode(READY_IDLE + _frame(b"X"), sink)
        assert exc_info.value.offset == len(READY_IDLE)
        assert sink.messages == [ReadyForQuery(TransactionStatus.IDLE)]
        assert list(exc_info.value.messages) == sink.messages

    def test_error_without_sink_carries_decoded_messages(self):
        with pytest.raises(UnknownTagError) as exc_info:
            BackendMessageDecoder().decode(READY_IDLE + KEY_DATA + _frame(b"X"))
        assert exc_info.value.messages == (
            ReadyForQuery(TransactionStatus.IDLE),
            BackendKeyData(pid=6880, secret_key=0x7FFFFFFF),
        )


class TestFraming:
    @pytest.mark.parametrize("size", range(5))
    def test_short_header_needs_more_data(self, size: int):
        result = BackendMessageDecoder().decode(READY_IDLE[:size])
        assert result.messages == []
        assert result.consumed == 0
        assert result.pending == size
        assert result.need_more == (size > 0)

    def test_partial_payload_needs_more_data(self):
        decoder = BackendMessageDecoder()
        source = ByteSource(KEY_DATA[:-1])
        assert decoder.decode_frame(source) is None
        assert source.position == 0

    def test_trailing_partial_frame_is_left_pending(self):
        data = READY_IDLE + KEY_DATA[:7]
        result = BackendMessageDecoder().decode(data)
        assert len(result.messages) == 1
        assert result.consumed == len(READY_IDLE)
        assert result.pending == 7
        assert result.need_more

    def test_int_max_length_is_malformed(self):
        data = b"Z" + struct.pack("!i", 2**31 - 1)
        with pytest.raises(MalformedFrameError):
            BackendMessageDecoder().decode(data)

    @pytest.mark.parametrize("length", [-1, 0, 3])
    def test_length_below_four_is_malformed(self, length: int):
        data = b"Z" + struct.pack("!i", length) + b"I"
        with pytest.raises(MalformedFrameError) as exc_info:
            BackendMessageDecoder().decode(data)
        assert exc_info.value.offset == 0

    def test_custom_frame_ceiling(self):
        decoder = BackendMessageDecoder(max_frame_length=8)
        assert decoder.decode(_frame(b"d", b"x" * 8)).messages == [CopyData(b"x" * 8)]
        with pytest.raises(MalformedFrameError):
            decoder.decode(_frame(b"d", b"x" * 9))

    def test_empty_payload_on_payload_kind_is_short(self):
        with pytest.raises(ShortPayloadError) as exc_info:
            BackendMessageDecoder().decode(_frame(b"Z"))
        assert exc_info.value.kind is BackendMessageType.READY_FOR_QUERY

    def test_empty_key_data_is_short(self):
        with pytest.raises(ShortPayloadError):
            BackendMessageDecoder().decode(_frame(b"K", b"\x00\x00"))

    @pytest.mark.parametrize("kind", sorted(EMPTY_PAYLOAD_TYPES))
    def test_empty_payload_kinds_reject_payload(self, kind: BackendMessageType):
        with pytest.raises(TrailingBytesError) as exc_info:
            BackendMessageDecoder().decode(_frame(kind.value.encode(), b"\x01\x02"))
        assert exc_info.value.kind is kind
        assert exc_info.value.count == 2

    def test_trailing_bytes_after_ready_for_query(self):
        with pytest.raises(TrailingBytesError) as exc_info:
            BackendMessageDecoder().decode(_frame(b"Z", b"II"))
        assert exc_info.value.count == 1

    def test_sink_receives_messages_in_order(self):
        sink = ListSink()
        result = BackendMessageDecoder().decode(KEY_DATA + READY_IDLE + AUTH_MD5, sink)
        assert sink.messages == result.messages
        assert [m.type for m in sink] == [
            BackendMessageType.BACKEND_KEY_DATA,
            BackendMessageType.READY_FOR_QUERY,
            BackendMessageType.AUTHENTICATION,
        ]

    def test_accepts_bytearray_and_memoryview(self):
        decoder = BackendMessageDecoder()
        assert decoder.decode(bytearray(READY_IDLE)).messages
        assert decoder.decode(memoryview(READY_IDLE)).messages


class TestRoundTrip:
    def test_every_kind_has_a_parser(self):
        assert set(PARSERS) == set(BackendMessageType)

    def test_samples_cover_every_kind(self):
        assert {m.type for m in SAMPLE_MESSAGES} == set(BackendMessageType)

    @pytest.mark.parametrize("message", SAMPLE_MESSAGES, ids=_ids)
    def test_decode_of_encode(self, message: BackendMessage):
        result = BackendMessageDecoder().decode(_encode(message))
        assert result.messages == [message]
        assert result.pending == 0

    @pytest.mark.parametrize("message", SAMPLE_MESSAGES, ids=_ids)
    def test_cursor_advances_by_length_plus_one(self, message: BackendMessage):
        data = _encode(message)
        declared = struct.unpack_from("!i", data, 1)[0]
        source = ByteSource(data + READY_IDLE)
        BackendMessageDecoder().decode_frame(source)
        assert source.position == declared + 1


class TestCharsetOrdering:
    def test_client_encoding_applies_to_next_message_in_same_delivery(self):
        data = _frame(b"S", _cstr("client_encoding") + _cstr("LATIN1")) + _frame(
            b"C", _cstr("SELECT 1 café", "latin-1")
        )
        decoder = BackendMessageDecoder(Session("UTF8"))
        result = decoder.decode(data)
        assert result.messages[1] == CommandComplete("SELECT 1 café")
        assert decoder.session.encoding == "LATIN1"

    def test_message_before_update_uses_previous_charset(self):
        data = _frame(b"C", _cstr("SELECT café", "latin-1")) + _frame(
            b"S", _cstr("client_encoding") + _cstr("LATIN1")
        )
        with pytest.raises(CharsetDecodeError) as exc_info:
            BackendMessageDecoder(Session("UTF8")).decode(data)
        assert exc_info.value.field == "command tag"
        assert exc_info.value.offset == 0

    def test_unsupported_client_encoding_keeps_current_charset(self):
        data = _frame(b"S", _cstr("client_encoding") + _cstr("MULE_INTERNAL"))
        decoder = BackendMessageDecoder(Session("UTF8"))
        result = decoder.decode(data)
        assert result.messages[0].value == "MULE_INTERNAL"
        assert decoder.session.charset == "utf_8"

    def test_raw_bytes_ignore_charset(self):
        data = _frame(b"d", b"\xff\xfe") + _frame(b"D", struct.pack("!Hi", 1, 1) + b"\xff")
        result = BackendMessageDecoder(Session("SQL_ASCII")).decode(data)
        assert result.messages == [CopyData(b"\xff\xfe"), DataRow((b"\xff",))]
