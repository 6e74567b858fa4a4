"""Cursor-based reader over a cumulative byte buffer.

A ``ByteSource`` never copies the buffer it reads from: it keeps an integer
cursor and an exclusive limit into the caller's ``bytes``/``bytearray``.
Checkpointing is just saving the cursor, and a payload "view" is another
``ByteSource`` over the same buffer with a narrower limit.  Only values that
outlive the decode call (``read_bytes``, ``read_cstring``) are materialized.
"""

from __future__ import annotations

import struct

from pgwire_decoder.protocol.errors import CharsetDecodeError

Buffer = bytes | bytearray | memoryview


class BufferUnderflow(Exception):
    """A read ran past the limit of a ByteSource."""

    def __init__(self, wanted: int, available: int) -> None:
        self.wanted = wanted
        self.available = available
        super().__init__(f"wanted {wanted} byte(s), {available} available")


class ByteSource:
    """Big-endian reader with mark/reset over ``data[start:end]``."""

    __slots__ = ("_data", "_pos", "_limit", "_mark")

    def __init__(self, data: Buffer, start: int = 0, end: int | None = None) -> None:
        if isinstance(data, memoryview):
            data = data.tobytes()
        self._data: bytes | bytearray = data
        self._pos = start
        self._limit = len(data) if end is None else end
        self._mark = start

    @property
    def position(self) -> int:
        return self._pos

    @property
    def remaining(self) -> int:
        return self._limit - self._pos

    def has_remaining(self) -> bool:
        return self._pos < self._limit

    def mark(self) -> None:
        self._mark = self._pos

    def reset(self) -> None:
        self._pos = self._mark

    def _take(self, n: int) -> int:
        """Advance the cursor by *n* and return the old position."""
        if n > self._limit - self._pos:
            raise BufferUnderflow(n, self._limit - self._pos)
        pos = self._pos
        self._pos += n
        return pos

    def skip(self, n: int) -> None:
        self._take(n)

    # -- fixed-width integers ---------------------------------------------------

    def read_int8(self) -> int:
        return struct.unpack_from("!b", self._data, self._take(1))[0]

    def read_uint8(self) -> int:
        return self._data[self._take(1)]

    def read_int16(self) -> int:
        return struct.unpack_from("!h", self._data, self._take(2))[0]

    def read_uint16(self) -> int:
        return struct.unpack_from("!H", self._data, self._take(2))[0]

    def read_int32(self) -> int:
        return struct.unpack_from("!i", self._data, self._take(4))[0]

    def read_uint32(self) -> int:
        return struct.unpack_from("!I", self._data, self._take(4))[0]

    # -- byte blocks ------------------------------------------------------------

    def read_bytes(self, n: int) -> bytes:
        """Read exactly *n* bytes as an owned copy."""
        pos = self._take(n)
        return bytes(self._data[pos : pos + n])

    def read_remaining(self) -> bytes:
        return self.read_bytes(self.remaining)

    def slice(self, n: int) -> ByteSource:
        """Return a reader limited to the next *n* bytes and skip past them."""
        pos = self._take(n)
        return ByteSource(self._data, pos, pos + n)

    # -- strings ----------------------------------------------------------------

    def read_cstring(self, encoding: str, field: str = "string") -> str:
        """Read a NUL-terminated string and decode it under *encoding*.

        The terminator is consumed but not included in the result.
        """
        end = self._data.find(0, self._pos, self._limit)
        if end < 0:
            raise BufferUnderflow(self.remaining + 1, self.remaining)
        raw = self._data[self._pos : end]
        self._pos = end + 1
        try:
            return raw.decode(encoding)
        except UnicodeDecodeError as exc:
            raise CharsetDecodeError(field, encoding) from exc
