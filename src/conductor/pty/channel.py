"""PTY channel — one pseudo-terminal pair and the child on its slave end."""

from __future__ import annotations

import errno
import fcntl
import logging
import os
import pty
import select
import shutil
import signal
import struct
import subprocess
import termios
import threading
from collections.abc import Mapping, Sequence

from conductor.errors import AgentIOError, SpawnError, SpawnFailure

logger = logging.getLogger(__name__)

DEFAULT_ROWS = 24
DEFAULT_COLS = 80
DEFAULT_TERM = "xterm-256color"
DEFAULT_COLORTERM = "truecolor"
READ_CHUNK_BYTES = 4096


def _set_winsize(fd: int, rows: int, cols: int) -> None:
    winsize = struct.pack("HHHH", rows, cols, 0, 0)
    fcntl.ioctl(fd, termios.TIOCSWINSZ, winsize)


def _acquire_controlling_tty() -> None:
    # Runs in the child after setsid(); makes the slave its controlling
    # terminal so ^C and window-size changes reach the foreground group.
    fcntl.ioctl(0, termios.TIOCSCTTY, 0)


class PtyChannel:
    """A launched child attached to the slave side of a pseudo-terminal.

    The parent keeps only the master fd. Writes and resizes are serialized
    by a per-channel lock; reads are expected from a single reader thread.
    The child runs in its own session and process group, so signals can be
    delivered to the whole tree it starts.
    """

    def __init__(
        self,
        proc: subprocess.Popen,
        master_fd: int,
        command: Sequence[str],
        rows: int = DEFAULT_ROWS,
        cols: int = DEFAULT_COLS,
    ) -> None:
        self._proc = proc
        self._master_fd = master_fd
        self.command = tuple(command)
        self.rows = rows
        self.cols = cols
        self._lock = threading.Lock()
        self._closed = False

    @property
    def pid(self) -> int:
        return self._proc.pid

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, data: bytes) -> None:
        """Write all of ``data`` to the child's input."""
        with self._lock:
            if self._closed:
                raise AgentIOError("PTY channel is closed.")
            view = memoryview(data)
            try:
                while view:
                    written = os.write(self._master_fd, view)
                    view = view[written:]
            except OSError as exc:
                raise AgentIOError(f"PTY write failed: {exc}") from exc

    def resize(self, rows: int, cols: int) -> None:
        """Change the terminal geometry; the kernel signals SIGWINCH."""
        if rows <= 0 or cols <= 0:
            raise ValueError(f"Invalid PTY size: {rows}x{cols}")
        with self._lock:
            if self._closed:
                raise AgentIOError("PTY channel is closed.")
            try:
                _set_winsize(self._master_fd, rows, cols)
            except OSError as exc:
                raise AgentIOError(f"PTY resize failed: {exc}") from exc
            self.rows = rows
            self.cols = cols

    def read(
        self, max_bytes: int = READ_CHUNK_BYTES, timeout: float | None = None
    ) -> bytes | None:
        """Blocking read of the child's combined output.

        Returns ``None`` when ``timeout`` elapses with nothing to read and
        ``b""`` at end of stream. Linux reports a hung-up slave side as EIO,
        which is end of stream too. Any other OS error propagates.
        """
        if self._closed:
            return b""
        readable, _, _ = select.select([self._master_fd], [], [], timeout)
        if not readable:
            return None
        try:
            return os.read(self._master_fd, max_bytes)
        except OSError as exc:
            if exc.errno == errno.EIO:
                return b""
            raise

    def poll(self) -> int | None:
        """Exit code of the child, or ``None`` while it is still running."""
        return self._proc.poll()

    def terminate(self, timeout: float = 2.0) -> int | None:
        """Force-kill the child's process group and reap it.

        Blocks for at most ``timeout`` seconds waiting for the exit.
        """
        if self._proc.poll() is None:
            try:
                os.killpg(self._proc.pid, signal.SIGKILL)
                logger.info("Killed PTY child pid=%d", self._proc.pid)
            except ProcessLookupError:
                logger.debug("Process group already gone: %d", self._proc.pid)
            except PermissionError as exc:
                logger.warning("Cannot kill pid=%d: %s", self._proc.pid, exc)
        try:
            return self._proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            logger.warning("PTY child pid=%d did not exit in %.1fs", self.pid, timeout)
            return None

    def release(self) -> None:
        """Close the master fd. Idempotent; later writes raise AgentIOError."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            try:
                os.close(self._master_fd)
            except OSError:
                logger.debug("Master fd %d already closed", self._master_fd)


def spawn_channel(
    command: Sequence[str],
    cwd: str | None = None,
    env: Mapping[str, str] | None = None,
    *,
    rows: int = DEFAULT_ROWS,
    cols: int = DEFAULT_COLS,
    term: str = DEFAULT_TERM,
    colorterm: str = DEFAULT_COLORTERM,
) -> PtyChannel:
    """Allocate a PTY and launch ``command`` on its slave side.

    Raises:
        SpawnError: LAUNCH_FAILED if the executable cannot be found or
            started, PTY_ALLOCATION_FAILED if no pseudo-terminal is
            available. Nothing is left open on failure.
    """
    if not command:
        raise SpawnError("PTY command cannot be empty.", hint="Configure an executable.")
    executable = shutil.which(command[0])
    if executable is None:
        raise SpawnError(
            f"Executable not found: {command[0]}",
            reason=SpawnFailure.LAUNCH_FAILED,
            hint="Install the CLI or point its executable setting at it.",
        )

    try:
        master_fd, slave_fd = pty.openpty()
    except OSError as exc:
        raise SpawnError(
            f"Could not allocate a pseudo-terminal: {exc}",
            reason=SpawnFailure.PTY_ALLOCATION_FAILED,
        ) from exc

    child_env = {**os.environ, **(env or {})}
    child_env["TERM"] = term
    child_env["COLORTERM"] = colorterm

    try:
        _set_winsize(slave_fd, rows, cols)
        proc = subprocess.Popen(
            [executable, *command[1:]],
            stdin=slave_fd,
            stdout=slave_fd,
            stderr=slave_fd,
            cwd=cwd,
            env=child_env,
            start_new_session=True,
            preexec_fn=_acquire_controlling_tty,
            close_fds=True,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        os.close(master_fd)
        raise SpawnError(
            f"Failed to launch {command[0]}: {exc}",
            reason=SpawnFailure.LAUNCH_FAILED,
            hint="Check the executable and the workspace directory.",
        ) from exc
    finally:
        # Parent always closes the slave fd
        os.close(slave_fd)

    logger.info(
        "PTY child started: pid=%d cmd=%s cwd=%s", proc.pid, " ".join(command), cwd or "."
    )
    return PtyChannel(proc, master_fd, command, rows=rows, cols=cols)
