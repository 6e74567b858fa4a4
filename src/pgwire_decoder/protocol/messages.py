"""Backend message data model.

Every decoded message is a frozen dataclass exposing ``type`` (its
``BackendMessageType``).  Kinds without a payload share ``SimpleMessage``.

Reference: https://www.postgresql.org/docs/current/protocol-message-formats.html
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import IntEnum, StrEnum
from typing import ClassVar


class BackendMessageType(StrEnum):
    """Backend message kinds keyed by their one-byte ASCII tag."""

    AUTHENTICATION = "R"
    BACKEND_KEY_DATA = "K"
    PARAMETER_STATUS = "S"
    READY_FOR_QUERY = "Z"
    PARSE_COMPLETE = "1"
    BIND_COMPLETE = "2"
    CLOSE_COMPLETE = "3"
    COPY_DONE = "c"
    EMPTY_QUERY_RESPONSE = "I"
    NO_DATA = "n"
    PORTAL_SUSPENDED = "s"
    ROW_DESCRIPTION = "T"
    DATA_ROW = "D"
    COMMAND_COMPLETE = "C"
    ERROR_RESPONSE = "E"
    NOTICE_RESPONSE = "N"
    NOTIFICATION_RESPONSE = "A"
    COPY_IN_RESPONSE = "G"
    COPY_OUT_RESPONSE = "H"
    COPY_BOTH_RESPONSE = "W"
    COPY_DATA = "d"
    PARAMETER_DESCRIPTION = "t"
    FUNCTION_CALL_RESPONSE = "V"
    NEGOTIATE_PROTOCOL_VERSION = "v"

    @property
    def tag(self) -> int:
        return ord(self.value)

    @classmethod
    def from_tag(cls, tag: int) -> BackendMessageType | None:
        """Resolve a tag byte, returning None for undocumented tags."""
        try:
            return cls(chr(tag))
        except ValueError:
            return None


EMPTY_PAYLOAD_TYPES = frozenset(
    {
        BackendMessageType.PARSE_COMPLETE,
        BackendMessageType.BIND_COMPLETE,
        BackendMessageType.CLOSE_COMPLETE,
        BackendMessageType.COPY_DONE,
        BackendMessageType.EMPTY_QUERY_RESPONSE,
        BackendMessageType.NO_DATA,
        BackendMessageType.PORTAL_SUSPENDED,
    }
)


class AuthenticationType(IntEnum):
    """Discriminator of an Authentication ('R') message."""

    OK = 0
    KERBEROS_V5 = 2
    CLEARTEXT_PASSWORD = 3
    CRYPT_PASSWORD = 4  # pre-7.2 servers only
    MD5_PASSWORD = 5
    SCM_CREDENTIAL = 6
    GSS = 7
    GSS_CONTINUE = 8
    SSPI = 9
    SASL = 10
    SASL_CONTINUE = 11
    SASL_FINAL = 12


class TransactionStatus(StrEnum):
    """Backend transaction status reported by ReadyForQuery."""

    IDLE = "I"
    IN_TRANSACTION = "T"
    FAILED = "E"


class FormatCode(IntEnum):
    TEXT = 0
    BINARY = 1


class ConfigurationVariable(StrEnum):
    """Run-time parameters a server reports via ParameterStatus.

    Lookup by name is case-insensitive, as it is on the server.
    """

    APPLICATION_NAME = "application_name"
    CLIENT_ENCODING = "client_encoding"
    DATE_STYLE = "DateStyle"
    DEFAULT_TRANSACTION_READ_ONLY = "default_transaction_read_only"
    IN_HOT_STANDBY = "in_hot_standby"
    INTEGER_DATETIMES = "integer_datetimes"
    INTERVAL_STYLE = "IntervalStyle"
    IS_SUPERUSER = "is_superuser"
    SCRAM_ITERATIONS = "scram_iterations"
    SEARCH_PATH = "search_path"
    SERVER_ENCODING = "server_encoding"
    SERVER_VERSION = "server_version"
    SESSION_AUTHORIZATION = "session_authorization"
    STANDARD_CONFORMING_STRINGS = "standard_conforming_strings"
    TIME_ZONE = "TimeZone"

    @classmethod
    def _missing_(cls, value: object) -> ConfigurationVariable | None:
        if isinstance(value, str):
            folded = value.lower()
            for member in cls:
                if member.value.lower() == folded:
                    return member
        return None


@dataclass(frozen=True, slots=True)
class UnknownVariable:
    """A reported parameter whose name is not a ConfigurationVariable."""

    name: str

    def __str__(self) -> str:
        return self.name


class ErrorField(StrEnum):
    """Field codes of ErrorResponse and NoticeResponse messages."""

    SEVERITY = "S"
    SEVERITY_NONLOCALIZED = "V"
    SQLSTATE = "C"
    MESSAGE = "M"
    DETAIL = "D"
    HINT = "H"
    POSITION = "P"
    INTERNAL_POSITION = "p"
    INTERNAL_QUERY = "q"
    WHERE = "W"
    SCHEMA_NAME = "s"
    TABLE_NAME = "t"
    COLUMN_NAME = "c"
    DATA_TYPE_NAME = "d"
    CONSTRAINT_NAME = "n"
    FILE = "F"
    LINE = "L"
    ROUTINE = "R"


# -- messages --------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SimpleMessage:
    """A message kind that carries no payload, e.g. ParseComplete."""

    type: BackendMessageType


@dataclass(frozen=True, slots=True)
class Authentication:
    type: ClassVar[BackendMessageType] = BackendMessageType.AUTHENTICATION

    auth_type: AuthenticationType
    data: bytes = b""
    mechanisms: tuple[str, ...] = ()

    @property
    def salt(self) -> bytes | None:
        if self.auth_type in (
            AuthenticationType.CRYPT_PASSWORD,
            AuthenticationType.MD5_PASSWORD,
        ):
            return self.data
        return None


@dataclass(frozen=True, slots=True)
class BackendKeyData:
    type: ClassVar[BackendMessageType] = BackendMessageType.BACKEND_KEY_DATA

    pid: int
    secret_key: int


@dataclass(frozen=True, slots=True)
class ParameterStatus:
    type: ClassVar[BackendMessageType] = BackendMessageType.PARAMETER_STATUS

    variable: ConfigurationVariable | UnknownVariable
    value: str

    @property
    def name(self) -> str:
        """The parameter name as the server reported it."""
        if isinstance(self.variable, UnknownVariable):
            return self.variable.name
        return self.variable.value


@dataclass(frozen=True, slots=True)
class ReadyForQuery:
    type: ClassVar[BackendMessageType] = BackendMessageType.READY_FOR_QUERY

    status: TransactionStatus


class _ResponseFields:
    """Accessors shared by ErrorResponse and NoticeResponse."""

    __slots__ = ()

    fields: Mapping[ErrorField | str, str]

    @property
    def severity(self) -> str | None:
        return self.fields.get(ErrorField.SEVERITY_NONLOCALIZED) or self.fields.get(
            ErrorField.SEVERITY
        )

    @property
    def code(self) -> str | None:
        return self.fields.get(ErrorField.SQLSTATE)

    @property
    def message(self) -> str | None:
        return self.fields.get(ErrorField.MESSAGE)


@dataclass(frozen=True, slots=True)
class ErrorResponse(_ResponseFields):
    type: ClassVar[BackendMessageType] = BackendMessageType.ERROR_RESPONSE

    fields: Mapping[ErrorField | str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class NoticeResponse(_ResponseFields):
    type: ClassVar[BackendMessageType] = BackendMessageType.NOTICE_RESPONSE

    fields: Mapping[ErrorField | str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class NotificationResponse:
    type: ClassVar[BackendMessageType] = BackendMessageType.NOTIFICATION_RESPONSE

    pid: int
    channel: str
    payload: str


@dataclass(frozen=True, slots=True)
class ColumnDescription:
    """One field of a RowDescription."""

    name: str
    table_oid: int
    column_attr: int
    type_oid: int
    type_size: int
    type_modifier: int
    format_code: int  # FormatCode for known codes


@dataclass(frozen=True, slots=True)
class RowDescription:
    type: ClassVar[BackendMessageType] = BackendMessageType.ROW_DESCRIPTION

    columns: tuple[ColumnDescription, ...]


@dataclass(frozen=True, slots=True)
class DataRow:
    """Raw column values; None is SQL NULL."""

    type: ClassVar[BackendMessageType] = BackendMessageType.DATA_ROW

    values: tuple[bytes | None, ...]


@dataclass(frozen=True, slots=True)
class CommandComplete:
    """Command tag such as ``INSERT 0 3``, ``SELECT 10`` or ``CREATE TABLE``."""

    type: ClassVar[BackendMessageType] = BackendMessageType.COMMAND_COMPLETE

    tag: str

    @property
    def command(self) -> str:
        words = self.tag.split()
        while words and words[-1].isdigit():
            words.pop()
        return " ".join(words)

    @property
    def rows(self) -> int | None:
        """Row count from the tag, or None for commands that report none."""
        words = self.tag.split()
        if len(words) > 1 and words[-1].isdigit():
            return int(words[-1])
        return None


@dataclass(frozen=True, slots=True)
class CopyInResponse:
    type: ClassVar[BackendMessageType] = BackendMessageType.COPY_IN_RESPONSE

    overall_format: int
    column_formats: tuple[int, ...]


@dataclass(frozen=True, slots=True)
class CopyOutResponse:
    type: ClassVar[BackendMessageType] = BackendMessageType.COPY_OUT_RESPONSE

    overall_format: int
    column_formats: tuple[int, ...]


@dataclass(frozen=True, slots=True)
class CopyBothResponse:
    type: ClassVar[BackendMessageType] = BackendMessageType.COPY_BOTH_RESPONSE

    overall_format: int
    column_formats: tuple[int, ...]


@dataclass(frozen=True, slots=True)
class CopyData:
    type: ClassVar[BackendMessageType] = BackendMessageType.COPY_DATA

    data: bytes


@dataclass(frozen=True, slots=True)
class ParameterDescription:
    type: ClassVar[BackendMessageType] = BackendMessageType.PARAMETER_DESCRIPTION

    type_oids: tuple[int, ...]


@dataclass(frozen=True, slots=True)
class FunctionCallResponse:
    type: ClassVar[BackendMessageType] = BackendMessageType.FUNCTION_CALL_RESPONSE

    value: bytes | None


@dataclass(frozen=True, slots=True)
class NegotiateProtocolVersion:
    type: ClassVar[BackendMessageType] = BackendMessageType.NEGOTIATE_PROTOCOL_VERSION

    newest_minor_version: int
    unrecognized_options: tuple[str, ...]


BackendMessage = (
    SimpleMessage
    | Authentication
    | BackendKeyData
    | ParameterStatus
    | ReadyForQuery
    | ErrorResponse
    | NoticeResponse
    | NotificationResponse
    | RowDescription
    | DataRow
    | CommandComplete
    | CopyInResponse
    | CopyOutResponse
    | CopyBothResponse
    | CopyData
    | ParameterDescription
    | FunctionCallResponse
    | NegotiateProtocolVersion
)
