"""Tests for conductor.pty.channel against real pseudo-terminals."""

from __future__ import annotations

import pytest

from conductor.errors import AgentIOError, SpawnError, SpawnFailure
from conductor.pty.channel import spawn_channel

from conftest import read_until


class TestSpawn:
    def test_echo_roundtrip(self) -> None:
        channel = spawn_channel(["cat"])
        try:
            channel.write(b"hello pty\n")
            assert b"hello pty" in read_until(channel, b"hello pty")
            assert channel.poll() is None
        finally:
            channel.terminate()
            channel.release()

    def test_terminal_environment(self) -> None:
        channel = spawn_channel(["sh", "-c", 'echo "term=$TERM color=$COLORTERM"'])
        try:
            out = read_until(channel, b"color=truecolor")
            assert b"term=xterm-256color" in out
            assert b"color=truecolor" in out
        finally:
            channel.terminate()
            channel.release()

    def test_environment_overrides(self) -> None:
        channel = spawn_channel(["sh", "-c", 'echo "v=$CONDUCTOR_TEST_VAR"'], env={"CONDUCTOR_TEST_VAR": "42"})
        try:
            assert b"v=42" in read_until(channel, b"v=42")
        finally:
            channel.terminate()
            channel.release()

    def test_initial_geometry(self) -> None:
        channel = spawn_channel(["sh", "-c", "stty size"])
        try:
            assert b"24 80" in read_until(channel, b"24 80")
        finally:
            channel.terminate()
            channel.release()

    def test_working_directory(self, tmp_path) -> None:
        channel = spawn_channel(["pwd"], cwd=str(tmp_path))
        try:
            assert tmp_path.name.encode() in read_until(channel, tmp_path.name.encode())
        finally:
            channel.terminate()
            channel.release()

    def test_missing_executable(self) -> None:
        with pytest.raises(SpawnError) as info:
            spawn_channel(["definitely-not-an-agent-cli-xyz"])
        assert info.value.reason is SpawnFailure.LAUNCH_FAILED

    def test_missing_workspace(self, tmp_path) -> None:
        with pytest.raises(SpawnError) as info:
            spawn_channel(["cat"], cwd=str(tmp_path / "missing"))
        assert info.value.reason is SpawnFailure.LAUNCH_FAILED

    def test_empty_command(self) -> None:
        with pytest.raises(SpawnError):
            spawn_channel([])


class TestChannelIO:
    def test_end_of_stream(self) -> None:
        channel = spawn_channel(["true"])
        try:
            for _ in range(100):
                data = channel.read(timeout=0.1)
                if data == b"":
                    break
            assert data == b""
        finally:
            channel.terminate()
            channel.release()

    def test_resize(self) -> None:
        channel = spawn_channel(["sh", "-c", "sleep 0.3; stty size"])
        try:
            channel.resize(40, 100)
            assert (channel.rows, channel.cols) == (40, 100)
            assert b"40 100" in read_until(channel, b"40 100")
        finally:
            channel.terminate()
            channel.release()

    def test_resize_rejects_bad_geometry(self) -> None:
        channel = spawn_channel(["cat"])
        try:
            with pytest.raises(ValueError):
                channel.resize(0, 80)
        finally:
            channel.terminate()
            channel.release()

    def test_write_after_release_fails(self) -> None:
        channel = spawn_channel(["cat"])
        channel.terminate()
        channel.release()
        assert channel.closed
        with pytest.raises(AgentIOError):
            channel.write(b"x")
        with pytest.raises(AgentIOError):
            channel.resize(10, 10)
        assert channel.read(timeout=0) == b""

    def test_release_idempotent(self) -> None:
        channel = spawn_channel(["cat"])
        channel.terminate()
        channel.release()
        channel.release()

    def test_terminate_reaps_child(self) -> None:
        channel = spawn_channel(["cat"])
        try:
            exit_code = channel.terminate()
            assert exit_code is not None
            assert channel.poll() is not None
        finally:
            channel.release()
