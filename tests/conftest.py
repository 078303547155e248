"""Shared fixtures: real PTYs driven by small coreutils instead of agent CLIs."""

from __future__ import annotations

import asyncio
import sys
import time
from collections.abc import AsyncIterator, Callable

import pytest

from conductor.agent.orchestrator import AgentOrchestrator
from conductor.agent.process import AgentProcess
from conductor.config import ConductorConfig
from conductor.pty.channel import PtyChannel

if sys.platform == "win32":
    collect_ignore_glob = ["test_channel.py", "test_process.py", "test_orchestrator.py"]


def make_config(claude: str = "cat", gemini: str = "cat", **process: float) -> ConductorConfig:
    return ConductorConfig(
        executables={"claude": claude, "gemini": gemini},
        process={
            "kill_grace_seconds": 0.05,
            "read_poll_seconds": 0.05,
            "terminate_timeout_seconds": 2.0,
            **process,
        },
    )


@pytest.fixture
def config() -> ConductorConfig:
    return make_config()


@pytest.fixture
def config_factory() -> Callable[..., ConductorConfig]:
    return make_config


@pytest.fixture
async def orchestrator(config: ConductorConfig) -> AsyncIterator[AgentOrchestrator]:
    orch = AgentOrchestrator(config)
    try:
        yield orch
    finally:
        await orch.shutdown()


def read_until(channel: PtyChannel, needle: bytes, timeout: float = 5.0) -> bytes:
    """Read from a channel until ``needle`` shows up or the stream ends."""
    deadline = time.monotonic() + timeout
    seen = b""
    while time.monotonic() < deadline:
        data = channel.read(timeout=0.05)
        if data is None:
            continue
        if not data:
            break
        seen += data
        if needle in seen:
            break
    return seen


async def collect_output(
    process: AgentProcess, needle: bytes, timeout: float = 5.0
) -> bytes:
    """Consume process output until ``needle`` shows up or the stream ends."""
    seen = b""

    async def _collect() -> None:
        nonlocal seen
        while needle not in seen:
            chunk = await process.get_output()
            if chunk is None:
                return
            seen += chunk

    await asyncio.wait_for(_collect(), timeout=timeout)
    return seen


async def eventually(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    """Poll ``predicate`` until it holds or ``timeout`` passes."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(0.02)
    return predicate()
