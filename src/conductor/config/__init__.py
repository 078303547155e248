"""Configuration — Pydantic models for conductor settings."""

from __future__ import annotations

import json
import os
import shlex
from typing import Any

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field, field_validator

from conductor.agent.models import AgentType


class TerminalConfig(BaseModel):
    """Pseudo-terminal geometry and capability variables for agent CLIs."""

    rows: int = Field(default=24, gt=0)
    cols: int = Field(default=80, gt=0)
    term: str = Field(default="xterm-256color")
    colorterm: str = Field(default="truecolor")
    env: dict[str, str] = Field(
        default_factory=dict,
        description="Extra environment variables for every agent process",
    )


class ProcessConfig(BaseModel):
    """Agent process lifecycle tuning."""

    kill_grace_seconds: float = Field(
        default=0.5, ge=0, description="Pause between interrupt and end-of-input on kill"
    )
    output_channel_capacity: int = Field(
        default=100, gt=0, description="Chunks queued before the reader blocks"
    )
    read_chunk_bytes: int = Field(default=4096, gt=0)
    read_poll_seconds: float = Field(
        default=0.2, gt=0, description="Reader wake-up interval while idle"
    )
    terminate_timeout_seconds: float = Field(
        default=2.0, gt=0, description="Wait for a force-killed child to be reaped"
    )


class OutputConfig(BaseModel):
    """Retained output per agent."""

    max_lines: int = Field(default=10_000, gt=0)
    max_bytes: int = Field(default=1024 * 1024, gt=0)
    default_lines: int = Field(default=100, gt=0)


class BusConfig(BaseModel):
    capacity: int = Field(
        default=1000, gt=0, description="Messages buffered per subscriber before gaps"
    )


class ConductorConfig(BaseModel):
    """Top-level conductor configuration."""

    executables: dict[str, str] = Field(
        default_factory=lambda: {t.value: t.value for t in AgentType},
        description="Agent type -> command line used to launch it",
    )
    terminal: TerminalConfig = Field(default_factory=TerminalConfig)
    process: ProcessConfig = Field(default_factory=ProcessConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    bus: BusConfig = Field(default_factory=BusConfig)

    @field_validator("executables")
    @classmethod
    def _known_agent_types(cls, value: dict[str, str]) -> dict[str, str]:
        merged = {t.value: t.value for t in AgentType}
        for key, command in value.items():
            agent_type = AgentType.parse(key)
            if not command.strip():
                raise ValueError(f"Empty command for agent type {agent_type.value}")
            merged[agent_type.value] = command
        return merged

    def command_for(self, agent_type: AgentType | str) -> list[str]:
        """Command line (argv) that launches the given agent type."""
        return shlex.split(self.executables[AgentType.parse(agent_type).value])

    @classmethod
    def load(cls, config_path: str | None = None) -> ConductorConfig:
        """Load config from file, env vars, or defaults.

        Priority: env vars > config file > defaults.

        Env vars:
            CONDUCTOR_CLAUDE_BIN     - Command line for claude agents
            CONDUCTOR_GEMINI_BIN     - Command line for gemini agents
            CONDUCTOR_KILL_GRACE     - Seconds between interrupt and EOF on kill
            CONDUCTOR_OUTPUT_LINES   - Lines retained per agent
            CONDUCTOR_BUS_CAPACITY   - Per-subscriber notification ring size
        """
        load_dotenv(find_dotenv(usecwd=True))

        config_data: dict[str, Any] = {}
        if config_path and os.path.exists(config_path):
            with open(config_path) as f:
                config_data = json.load(f)

        executables = dict(config_data.get("executables", {}))
        for agent_type in AgentType:
            env_bin = os.environ.get(f"CONDUCTOR_{agent_type.value.upper()}_BIN")
            if env_bin:
                executables[agent_type.value] = env_bin
        if executables:
            config_data["executables"] = executables

        env_grace = os.environ.get("CONDUCTOR_KILL_GRACE")
        if env_grace:
            config_data.setdefault("process", {})["kill_grace_seconds"] = float(env_grace)

        env_lines = os.environ.get("CONDUCTOR_OUTPUT_LINES")
        if env_lines:
            config_data.setdefault("output", {})["max_lines"] = int(env_lines)

        env_capacity = os.environ.get("CONDUCTOR_BUS_CAPACITY")
        if env_capacity:
            config_data.setdefault("bus", {})["capacity"] = int(env_capacity)

        return cls.model_validate(config_data)
