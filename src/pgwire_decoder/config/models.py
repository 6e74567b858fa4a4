"""Pydantic configuration models for the backend message decoder."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field, field_validator

from pgwire_decoder.protocol.errors import UnsupportedEncodingError
from pgwire_decoder.protocol.session import DEFAULT_ENCODING, resolve_encoding

# Largest payload whose length (payload + 4) still fits a signed Int32.
MAX_PAYLOAD_LENGTH = 2**31 - 1 - 4


class LogLevel(StrEnum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class DecoderConfig(BaseModel):
    """Settings for one connection's decoder.

    ``initial_charset`` is the PostgreSQL encoding name string fields are
    decoded under until the server reports a ``client_encoding``.
    """

    initial_charset: str = DEFAULT_ENCODING
    max_frame_length: int = Field(default=1 << 30, ge=0, le=MAX_PAYLOAD_LENGTH)
    read_chunk_size: int = Field(default=64 * 1024, ge=1)
    log_level: LogLevel = LogLevel.INFO
    log_json: bool = False

    @field_validator("initial_charset")
    @classmethod
    def validate_charset(cls, v: str) -> str:
        """Reject encodings without a codec that can decode wire strings."""
        try:
            resolve_encoding(v)
        except UnsupportedEncodingError as exc:
            raise ValueError(str(exc)) from exc
        return v
