"""Per-connection session state consulted by the decoder."""

from __future__ import annotations

import codecs
from collections.abc import Mapping
from types import MappingProxyType

import structlog

from pgwire_decoder.protocol.errors import UnsupportedEncodingError

logger = structlog.get_logger()

DEFAULT_ENCODING = "UTF8"

# PostgreSQL encoding name -> Python codec name.
# https://www.postgresql.org/docs/current/multibyte.html
PG_ENCODINGS: dict[str, str] = {
    "BIG5": "big5",
    "EUC_CN": "gb2312",
    "EUC_JP": "euc_jp",
    "EUC_JIS_2004": "euc_jis_2004",
    "EUC_KR": "euc_kr",
    "GB18030": "gb18030",
    "GBK": "gbk",
    "ISO_8859_5": "iso8859_5",
    "ISO_8859_6": "iso8859_6",
    "ISO_8859_7": "iso8859_7",
    "ISO_8859_8": "iso8859_8",
    "JOHAB": "johab",
    "KOI8R": "koi8_r",
    "KOI8U": "koi8_u",
    "LATIN1": "iso8859_1",
    "LATIN2": "iso8859_2",
    "LATIN3": "iso8859_3",
    "LATIN4": "iso8859_4",
    "LATIN5": "iso8859_9",
    "LATIN6": "iso8859_10",
    "LATIN7": "iso8859_13",
    "LATIN8": "iso8859_14",
    "LATIN9": "iso8859_15",
    "LATIN10": "iso8859_16",
    "SHIFT_JIS_2004": "shift_jis_2004",
    "SJIS": "shift_jis",
    "SQL_ASCII": "ascii",
    "UHC": "cp949",
    "UTF8": "utf_8",
    "WIN866": "cp866",
    "WIN874": "cp874",
    "WIN1250": "cp1250",
    "WIN1251": "cp1251",
    "WIN1252": "cp1252",
    "WIN1253": "cp1253",
    "WIN1254": "cp1254",
    "WIN1255": "cp1255",
    "WIN1256": "cp1256",
    "WIN1257": "cp1257",
    "WIN1258": "cp1258",
}

# Spellings the server accepts for client_encoding besides the canonical ones.
_ALIASES = {
    "UNICODE": "UTF8",
    "UTF_8": "UTF8",
    "ISO88591": "LATIN1",
    "ISO_8859_1": "LATIN1",
    "SHIFTJIS": "SJIS",
    "MSKANJI": "SJIS",
    "KOI8": "KOI8R",
    "KOI8_R": "KOI8R",
    "KOI8_U": "KOI8U",
    "WIN": "WIN1251",
    "ALT": "WIN866",
    "TCVN": "WIN1258",
}

# Must encode byte-for-byte as ASCII under any fallback codec.
_ASCII_PROBE = "A=z\x00"


def resolve_encoding(name: str) -> str:
    """Map a PostgreSQL encoding name to a Python codec name.

    Names outside the PostgreSQL table are tried against Python's codec
    registry, which must yield an ASCII-compatible text codec: string fields
    are split on a single zero byte before decoding.  Raises
    UnsupportedEncodingError otherwise.
    """
    key = name.strip().upper().replace("-", "_")
    key = _ALIASES.get(key, key)
    if key in PG_ENCODINGS:
        return PG_ENCODINGS[key]
    try:
        codec = codecs.lookup(name).name
        # rejects bytes-to-bytes codecs (hex, zlib) and wide ones (utf-16)
        usable = _ASCII_PROBE.encode(codec) == _ASCII_PROBE.encode("ascii")
    except (LookupError, UnicodeError) as exc:
        raise UnsupportedEncodingError(name) from exc
    if not usable:
        raise UnsupportedEncodingError(name)
    return codec


class Session:
    """Mutable connection state: the backend charset and reported parameters.

    The decoder reads ``charset`` while parsing string fields and calls
    ``set_client_encoding`` after it has emitted a ``client_encoding``
    ParameterStatus, so the change applies from the next message on.
    """

    def __init__(self, encoding: str = DEFAULT_ENCODING) -> None:
        self._charset = resolve_encoding(encoding)
        self._encoding = encoding
        self._parameters: dict[str, str] = {}

    @property
    def charset(self) -> str:
        """Python codec name used to decode string fields."""
        return self._charset

    @property
    def encoding(self) -> str:
        """PostgreSQL name of the charset in force."""
        return self._encoding

    @property
    def parameters(self) -> Mapping[str, str]:
        """Last reported value of every server parameter, by name."""
        return MappingProxyType(self._parameters)

    def set_client_encoding(self, encoding: str) -> bool:
        """Switch the backend charset; returns False if *encoding* is unusable.

        An unusable name keeps the current charset in force.
        """
        try:
            charset = resolve_encoding(encoding)
        except UnsupportedEncodingError:
            logger.warning(
                "session.unsupported_client_encoding",
                encoding=encoding,
                current=self._encoding,
            )
            return False
        if charset != self._charset:
            logger.info(
                "session.client_encoding_changed",
                previous=self._encoding,
                encoding=encoding,
                charset=charset,
            )
        self._charset = charset
        self._encoding = encoding
        return True

    def record_parameter(self, name: str, value: str) -> None:
        self._parameters[name] = value
