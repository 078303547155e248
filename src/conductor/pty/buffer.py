"""Bounded output retention for agent terminals."""

from __future__ import annotations

import codecs
import threading
from collections import deque

from conductor.pty.text import clean_line

DEFAULT_MAX_LINES = 10_000
DEFAULT_MAX_BYTES = 1024 * 1024


class OutputBuffer:
    """Thread-safe ring of recent PTY output.

    Keeps three views of the same stream, each trimmed oldest-first once
    its bound is exceeded:

    * **raw bytes** (``_raw``) — the exact byte stream, capped at
      ``max_bytes``, for terminal emulators that replay it.
    * **raw lines** (``_raw_lines``) — decoded text split on newlines with
      ANSI sequences preserved.
    * **cleaned lines** (``_lines``) — ANSI-stripped, binary-sanitized
      text for plain display.

    Bytes are decoded incrementally, so a UTF-8 sequence split across two
    chunks is not mangled. A trailing line without a newline is held as
    pending and shows up at the end of tail reads until it completes; it
    keeps only its last ``max_bytes`` characters.
    """

    def __init__(
        self, max_lines: int = DEFAULT_MAX_LINES, max_bytes: int = DEFAULT_MAX_BYTES
    ) -> None:
        if max_lines <= 0 or max_bytes <= 0:
            raise ValueError("OutputBuffer bounds must be positive")
        self.max_lines = max_lines
        self.max_bytes = max_bytes
        self._lines: deque[str] = deque(maxlen=max_lines)
        self._raw_lines: deque[str] = deque(maxlen=max_lines)
        self._raw = bytearray()
        self._pending = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._total_lines = 0  # Completed lines ever added
        self._total_bytes = 0
        self._lock = threading.Lock()

    def feed(self, data: bytes) -> None:
        """Append a chunk of raw terminal output."""
        if not data:
            return
        with self._lock:
            self._raw.extend(data)
            self._total_bytes += len(data)
            overflow = len(self._raw) - self.max_bytes
            if overflow > 0:
                del self._raw[:overflow]

            text = self._pending + self._decoder.decode(data)
            *complete, self._pending = text.split("\n")
            for line in complete:
                raw_line = line.rstrip("\r")
                self._raw_lines.append(raw_line)
                self._lines.append(clean_line(raw_line))
                self._total_lines += 1
            # A redraw loop may never emit a newline
            if len(self._pending) > self.max_bytes:
                self._pending = self._pending[-self.max_bytes :]

    def read_tail(self, n: int = 100) -> list[str]:
        """Read the last N cleaned lines, pending partial line included."""
        with self._lock:
            lines = list(self._lines)
            if self._pending:
                lines.append(clean_line(self._pending.rstrip("\r")))
        return _tail(lines, n)

    def read_tail_raw(self, n: int = 100) -> list[str]:
        """Read the last N raw lines (ANSI preserved)."""
        with self._lock:
            lines = list(self._raw_lines)
            if self._pending:
                lines.append(self._pending.rstrip("\r"))
        return _tail(lines, n)

    def read_bytes(self, max_bytes: int | None = None) -> bytes:
        """Read the most recent raw bytes, at most ``max_bytes`` of them."""
        with self._lock:
            if max_bytes is None or max_bytes >= len(self._raw):
                return bytes(self._raw)
            if max_bytes <= 0:
                return b""
            return bytes(self._raw[-max_bytes:])

    @property
    def line_count(self) -> int:
        """Current number of completed lines retained."""
        with self._lock:
            return len(self._lines)

    @property
    def total_lines(self) -> int:
        """Total number of completed lines ever added."""
        with self._lock:
            return self._total_lines

    @property
    def byte_count(self) -> int:
        with self._lock:
            return len(self._raw)

    @property
    def total_bytes(self) -> int:
        with self._lock:
            return self._total_bytes

    def clear(self) -> None:
        """Clear the buffer."""
        with self._lock:
            self._lines.clear()
            self._raw_lines.clear()
            self._raw.clear()
            self._pending = ""
            self._decoder.reset()
            self._total_lines = 0
            self._total_bytes = 0


def _tail(lines: list[str], n: int) -> list[str]:
    if n <= 0:
        return []
    return lines[-n:] if len(lines) > n else lines
