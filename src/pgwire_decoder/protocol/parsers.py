"""Payload parsers, one per backend message kind.

Each parser receives a ``ByteSource`` limited to exactly one frame's payload
and the connection ``Session``.  Integers are big-endian; string fields are
NUL-terminated and decoded under ``session.charset``.  Column values, COPY
data and function results stay raw bytes.
"""

from __future__ import annotations

from collections.abc import Callable

import structlog

from pgwire_decoder.protocol.buffer import BufferUnderflow, ByteSource
from pgwire_decoder.protocol.errors import (
    MalformedFrameError,
    ShortPayloadError,
    UnknownAuthSubkindError,
    UnknownTxnStatusError,
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
from pgwire_decoder.protocol.session import Session

logger = structlog.get_logger()

PayloadParser = Callable[[ByteSource, Session], BackendMessage]

_NULL_LENGTH = -1

# Authentication requests whose payload ends after the discriminator.
_AUTH_WITHOUT_DATA = frozenset(
    {
        AuthenticationType.OK,
        AuthenticationType.KERBEROS_V5,
        AuthenticationType.CLEARTEXT_PASSWORD,
        AuthenticationType.SCM_CREDENTIAL,
        AuthenticationType.GSS,
        AuthenticationType.SSPI,
    }
)
_AUTH_WITH_DATA = frozenset(
    {
        AuthenticationType.GSS_CONTINUE,
        AuthenticationType.SASL_CONTINUE,
        AuthenticationType.SASL_FINAL,
    }
)
_SALT_LENGTH = {
    AuthenticationType.CRYPT_PASSWORD: 2,
    AuthenticationType.MD5_PASSWORD: 4,
}


def _format_code(value: int) -> int:
    try:
        return FormatCode(value)
    except ValueError:
        return value


def _read_length_prefixed(payload: ByteSource, what: str) -> bytes | None:
    """Read an Int32 length followed by that many bytes; -1 means NULL."""
    length = payload.read_int32()
    if length == _NULL_LENGTH:
        return None
    if length < 0:
        msg = f"negative {what} length {length}"
        raise MalformedFrameError(msg)
    return payload.read_bytes(length)


def _simple(kind: BackendMessageType) -> PayloadParser:
    message = SimpleMessage(kind)

    def parse(payload: ByteSource, session: Session) -> SimpleMessage:
        # Leftover bytes are reported by the framer as TrailingBytesError.
        return message

    return parse


def parse_authentication(payload: ByteSource, session: Session) -> Authentication:
    subkind = payload.read_int32()
    try:
        auth_type = AuthenticationType(subkind)
    except ValueError:
        raise UnknownAuthSubkindError(subkind) from None

    if auth_type in _AUTH_WITHOUT_DATA:
        return Authentication(auth_type)
    if auth_type in _SALT_LENGTH:
        return Authentication(auth_type, data=payload.read_bytes(_SALT_LENGTH[auth_type]))
    if auth_type in _AUTH_WITH_DATA:
        return Authentication(auth_type, data=payload.read_remaining())

    # SASL: mechanism names, terminated by an empty name
    mechanisms: list[str] = []
    while True:
        name = payload.read_cstring(session.charset, "mechanism")
        if not name:
            break
        mechanisms.append(name)
    return Authentication(auth_type, mechanisms=tuple(mechanisms))


def parse_backend_key_data(payload: ByteSource, session: Session) -> BackendKeyData:
    pid = payload.read_int32()
    secret_key = payload.read_int32()
    return BackendKeyData(pid=pid, secret_key=secret_key)


def resolve_variable(name: str) -> ConfigurationVariable | UnknownVariable:
    """Resolve a reported parameter name, preserving unknown names."""
    try:
        return ConfigurationVariable(name)
    except ValueError:
        logger.warning("parameter_status.unknown_variable", name=name)
        return UnknownVariable(name)


def parse_parameter_status(payload: ByteSource, session: Session) -> ParameterStatus:
    charset = session.charset
    name = payload.read_cstring(charset, "name")
    value = payload.read_cstring(charset, "value")
    return ParameterStatus(variable=resolve_variable(name), value=value)


def parse_ready_for_query(payload: ByteSource, session: Session) -> ReadyForQuery:
    status = payload.read_uint8()
    try:
        return ReadyForQuery(TransactionStatus(chr(status)))
    except ValueError:
        raise UnknownTxnStatusError(status) from None


def _parse_response_fields(
    payload: ByteSource, session: Session
) -> dict[ErrorField | str, str]:
    """Read (code byte, string) pairs up to the zero terminator.

    Codes without an ErrorField member are kept under their raw character.
    """
    fields: dict[ErrorField | str, str] = {}
    while True:
        code = payload.read_uint8()
        if code == 0:
            return fields
        key = chr(code)
        try:
            field: ErrorField | str = ErrorField(key)
            name = field.name.lower()
        except ValueError:
            field = name = key
        fields[field] = payload.read_cstring(session.charset, name)


def parse_error_response(payload: ByteSource, session: Session) -> ErrorResponse:
    return ErrorResponse(_parse_response_fields(payload, session))


def parse_notice_response(payload: ByteSource, session: Session) -> NoticeResponse:
    return NoticeResponse(_parse_response_fields(payload, session))


def parse_notification_response(
    payload: ByteSource, session: Session
) -> NotificationResponse:
    pid = payload.read_int32()
    channel = payload.read_cstring(session.charset, "channel")
    body = payload.read_cstring(session.charset, "payload")
    return NotificationResponse(pid=pid, channel=channel, payload=body)


def parse_row_description(payload: ByteSource, session: Session) -> RowDescription:
    n_fields = payload.read_uint16()
    columns: list[ColumnDescription] = []
    for _ in range(n_fields):
        name = payload.read_cstring(session.charset, "column name")
        columns.append(
            ColumnDescription(
                name=name,
                table_oid=payload.read_uint32(),
                column_attr=payload.read_int16(),
                type_oid=payload.read_uint32(),
                type_size=payload.read_int16(),
                type_modifier=payload.read_int32(),
                format_code=_format_code(payload.read_int16()),
            )
        )
    return RowDescription(tuple(columns))


def parse_data_row(payload: ByteSource, session: Session) -> DataRow:
    n_cols = payload.read_uint16()
    values = tuple(_read_length_prefixed(payload, "column") for _ in range(n_cols))
    return DataRow(values)


def parse_command_complete(payload: ByteSource, session: Session) -> CommandComplete:
    return CommandComplete(payload.read_cstring(session.charset, "command tag"))


def _copy_response(
    cls: type[CopyInResponse] | type[CopyOutResponse] | type[CopyBothResponse],
) -> PayloadParser:
    def parse(payload: ByteSource, session: Session) -> BackendMessage:
        overall = _format_code(payload.read_uint8())
        n_cols = payload.read_uint16()
        formats = tuple(_format_code(payload.read_int16()) for _ in range(n_cols))
        return cls(overall_format=overall, column_formats=formats)

    return parse


def parse_copy_data(payload: ByteSource, session: Session) -> CopyData:
    return CopyData(payload.read_remaining())


def parse_parameter_description(
    payload: ByteSource, session: Session
) -> ParameterDescription:
    n_params = payload.read_uint16()
    return ParameterDescription(tuple(payload.read_uint32() for _ in range(n_params)))


def parse_function_call_response(
    payload: ByteSource, session: Session
) -> FunctionCallResponse:
    return FunctionCallResponse(_read_length_prefixed(payload, "result"))


def parse_negotiate_protocol_version(
    payload: ByteSource, session: Session
) -> NegotiateProtocolVersion:
    minor = payload.read_int32()
    n_options = payload.read_int32()
    if n_options < 0:
        msg = f"negative option count {n_options}"
        raise MalformedFrameError(msg)
    options = tuple(
        payload.read_cstring(session.charset, "option") for _ in range(n_options)
    )
    return NegotiateProtocolVersion(newest_minor_version=minor, unrecognized_options=options)


PARSERS: dict[BackendMessageType, PayloadParser] = {
    BackendMessageType.AUTHENTICATION: parse_authentication,
    BackendMessageType.BACKEND_KEY_DATA: parse_backend_key_data,
    BackendMessageType.PARAMETER_STATUS: parse_parameter_status,
    BackendMessageType.READY_FOR_QUERY: parse_ready_for_query,
    BackendMessageType.ROW_DESCRIPTION: parse_row_description,
    BackendMessageType.DATA_ROW: parse_data_row,
    BackendMessageType.COMMAND_COMPLETE: parse_command_complete,
    BackendMessageType.ERROR_RESPONSE: parse_error_response,
    BackendMessageType.NOTICE_RESPONSE: parse_notice_response,
    BackendMessageType.NOTIFICATION_RESPONSE: parse_notification_response,
    BackendMessageType.COPY_IN_RESPONSE: _copy_response(CopyInResponse),
    BackendMessageType.COPY_OUT_RESPONSE: _copy_response(CopyOutResponse),
    BackendMessageType.COPY_BOTH_RESPONSE: _copy_response(CopyBothResponse),
    BackendMessageType.COPY_DATA: parse_copy_data,
    BackendMessageType.PARAMETER_DESCRIPTION: parse_parameter_description,
    BackendMessageType.FUNCTION_CALL_RESPONSE: parse_function_call_response,
    BackendMessageType.NEGOTIATE_PROTOCOL_VERSION: parse_negotiate_protocol_version,
    **{kind: _simple(kind) for kind in EMPTY_PAYLOAD_TYPES},
}


def parse_payload(
    kind: BackendMessageType, payload: ByteSource, session: Session
) -> BackendMessage:
    """Parse one payload, mapping buffer underflow to ShortPayloadError."""
    try:
        return PARSERS[kind](payload, session)
    except BufferUnderflow:
        raise ShortPayloadError(kind) from None
