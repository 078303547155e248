"""Tests for conductor.pty.buffer.OutputBuffer."""

from __future__ import annotations

import pytest

from conductor.pty.buffer import OutputBuffer


class TestOutputBufferBasics:
    def test_empty(self) -> None:
        buf = OutputBuffer()
        assert buf.line_count == 0
        assert buf.total_lines == 0
        assert buf.read_tail() == []
        assert buf.read_bytes() == b""

    def test_feed_lines(self) -> None:
        buf = OutputBuffer()
        buf.feed(b"line1\nline2\nline3\n")
        assert buf.line_count == 3
        assert buf.read_tail() == ["line1", "line2", "line3"]

    def test_crlf_is_one_line_break(self) -> None:
        buf = OutputBuffer()
        buf.feed(b"hi\r\nbye\r\n")
        assert buf.read_tail() == ["hi", "bye"]
        assert buf.read_tail_raw() == ["hi", "bye"]

    def test_empty_chunk_ignored(self) -> None:
        buf = OutputBuffer()
        buf.feed(b"")
        assert buf.total_bytes == 0

    def test_invalid_bounds(self) -> None:
        with pytest.raises(ValueError):
            OutputBuffer(max_lines=0)
        with pytest.raises(ValueError):
            OutputBuffer(max_bytes=0)


class TestOutputBufferPartialLines:
    def test_pending_line_visible_in_tail(self) -> None:
        buf = OutputBuffer()
        buf.feed(b"done\n> ")
        assert buf.line_count == 1
        assert buf.read_tail() == ["done", "> "]

    def test_line_split_across_chunks(self) -> None:
        buf = OutputBuffer()
        buf.feed(b"hel")
        buf.feed(b"lo\nwor")
        buf.feed(b"ld\n")
        assert buf.read_tail() == ["hello", "world"]
        assert buf.total_lines == 2

    def test_utf8_split_across_chunks(self) -> None:
        buf = OutputBuffer()
        encoded = "café\n".encode("utf-8")
        buf.feed(encoded[:4])  # splits the two-byte é
        buf.feed(encoded[4:])
        assert buf.read_tail() == ["café"]


class TestOutputBufferViews:
    def test_clean_strips_ansi_raw_keeps_it(self) -> None:
        buf = OutputBuffer()
        buf.feed(b"\x1b[31mred\x1b[0m\n")
        assert buf.read_tail() == ["red"]
        assert buf.read_tail_raw() == ["\x1b[31mred\x1b[0m"]

    def test_read_bytes_exact(self) -> None:
        buf = OutputBuffer()
        buf.feed(b"\x1b[1mab")
        buf.feed(b"cd")
        assert buf.read_bytes() == b"\x1b[1mabcd"
        assert buf.read_bytes(2) == b"cd"
        assert buf.read_bytes(0) == b""


class TestOutputBufferOverflow:
    def test_max_lines_drops_oldest(self) -> None:
        buf = OutputBuffer(max_lines=5)
        for i in range(10):
            buf.feed(f"line {i}\n".encode())
        assert buf.line_count == 5
        assert buf.total_lines == 10
        assert buf.read_tail(100) == ["line 5", "line 6", "line 7", "line 8", "line 9"]

    def test_max_bytes_drops_oldest(self) -> None:
        buf = OutputBuffer(max_bytes=8)
        buf.feed(b"0123456789abcdef")
        assert buf.byte_count == 8
        assert buf.total_bytes == 16
        assert buf.read_bytes() == b"89abcdef"

    def test_newline_less_stream_stays_bounded(self) -> None:
        buf = OutputBuffer(max_lines=10, max_bytes=1024)
        for _ in range(1000):
            buf.feed(b"y" * 1024)
        tail = buf.read_tail_raw(1)
        assert len(tail) == 1
        assert len(tail[0]) <= 1024
        assert buf.byte_count == 1024
        assert buf.line_count == 0

    def test_pending_trim_keeps_newest_text(self) -> None:
        buf = OutputBuffer(max_bytes=8)
        buf.feed(b"\rprogress 10%")
        buf.feed(b"\rprogress 99%")
        assert buf.read_tail_raw(1) == ["ress 99%"]
        buf.feed(b"\ndone\n")
        assert buf.read_tail(2) == ["ress 99%", "done"]


class TestOutputBufferTail:
    def test_read_tail(self) -> None:
        buf = OutputBuffer()
        for i in range(10):
            buf.feed(f"line {i}\n".encode())
        assert buf.read_tail(3) == ["line 7", "line 8", "line 9"]

    def test_read_tail_more_than_available(self) -> None:
        buf = OutputBuffer()
        buf.feed(b"a\nb\n")
        assert buf.read_tail(10) == ["a", "b"]

    def test_read_tail_zero(self) -> None:
        buf = OutputBuffer()
        buf.feed(b"a\n")
        assert buf.read_tail(0) == []


class TestOutputBufferClear:
    def test_clear(self) -> None:
        buf = OutputBuffer()
        buf.feed(b"line\npartial")
        buf.clear()
        assert buf.line_count == 0
        assert buf.total_lines == 0
        assert buf.read_tail() == []
        assert buf.read_bytes() == b""
