"""Unit tests for the ByteSource reader."""

from __future__ import annotations

import struct

import pytest

from pgwire_decoder.protocol.buffer import BufferUnderflow, ByteSource
from pgwire_decoder.protocol.errors import CharsetDecodeError


class TestByteSource:
    def test_reads_big_endian_integers(self):
        data = struct.pack("!bBhHiI", -1, 255, -2, 65535, -3, 4294967295)
        source = ByteSource(data)
        assert source.read_int8() == -1
        assert source.read_uint8() == 255
        assert source.read_int16() == -2
        assert source.read_uint16() == 65535
        assert source.read_int32() == -3
        assert source.read_uint32() == 4294967295
        assert not source.has_remaining()

    def test_mark_and_reset(self):
        source = ByteSource(b"\x00\x01\x02\x03")
        source.skip(1)
        source.mark()
        source.read_uint16()
        assert source.position == 3
        source.reset()
        assert source.position == 1
        assert source.remaining == 3

    def test_underflow_does_not_advance(self):
        source = ByteSource(b"\x00\x01")
        with pytest.raises(BufferUnderflow):
            source.read_int32()
        assert source.position == 0

    def test_slice_is_limited_and_advances_parent(self):
        source = ByteSource(b"abcdef")
        view = source.slice(3)
        assert source.position == 3
        assert view.remaining == 3
        assert view.read_bytes(3) == b"abc"
        with pytest.raises(BufferUnderflow):
            view.read_uint8()

    def test_read_bytes_is_a_copy(self):
        data = bytearray(b"abcd")
        value = ByteSource(data).read_bytes(2)
        data[0] = ord("z")
        assert value == b"ab"
        assert isinstance(value, bytes)

    def test_read_cstring(self):
        source = ByteSource(b"foo\x00bar\x00")
        assert source.read_cstring("utf_8") == "foo"
        assert source.read_cstring("utf_8") == "bar"
        assert source.remaining == 0

    def test_read_cstring_empty(self):
        source = ByteSource(b"\x00x")
        assert source.read_cstring("ascii") == ""
        assert source.position == 1

    def test_cstring_terminator_outside_limit(self):
        view = ByteSource(b"abc\x00").slice(3)
        with pytest.raises(BufferUnderflow):
            view.read_cstring("ascii")

    def test_cstring_charset_error_names_field(self):
        source = ByteSource(b"\xff\x00")
        with pytest.raises(CharsetDecodeError) as exc_info:
            source.read_cstring("utf_8", "channel")
        assert exc_info.value.field == "channel"

    def test_read_cstring_under_charset(self):
        source = ByteSource("ñandú".encode("cp1252") + b"\x00")
        assert source.read_cstring("cp1252") == "ñandú"

    def test_read_remaining(self):
        source = ByteSource(b"\x01\x02\x03")
        source.skip(1)
        assert source.read_remaining() == b"\x02\x03"
        assert source.read_remaining() == b""
