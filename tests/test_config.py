"""Tests for conductor.config.ConductorConfig."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from conductor.agent.models import AgentType
from conductor.config import ConductorConfig

_ENV_VARS = (
    "CONDUCTOR_CLAUDE_BIN",
    "CONDUCTOR_GEMINI_BIN",
    "CONDUCTOR_KILL_GRACE",
    "CONDUCTOR_OUTPUT_LINES",
    "CONDUCTOR_BUS_CAPACITY",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    # Keep a developer's .env out of the picture
    monkeypatch.chdir(tmp_path)


class TestDefaults:
    def test_defaults(self) -> None:
        config = ConductorConfig()
        assert config.executables == {"claude": "claude", "gemini": "gemini"}
        assert (config.terminal.rows, config.terminal.cols) == (24, 80)
        assert config.terminal.term == "xterm-256color"
        assert config.terminal.colorterm == "truecolor"
        assert config.process.kill_grace_seconds == 0.5
        assert config.process.output_channel_capacity == 100
        assert config.output.default_lines == 100
        assert config.bus.capacity == 1000

    def test_command_for(self) -> None:
        config = ConductorConfig(executables={"gemini": "gemini --yolo"})
        assert config.command_for(AgentType.GEMINI) == ["gemini", "--yolo"]
        assert config.command_for("claude") == ["claude"]


class TestValidation:
    def test_unknown_agent_type_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ConductorConfig(executables={"codex": "codex"})

    def test_empty_command_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ConductorConfig(executables={"claude": "  "})

    def test_non_positive_geometry_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ConductorConfig.model_validate({"terminal": {"rows": 0}})


class TestLoad:
    def test_load_without_file(self) -> None:
        assert ConductorConfig.load() == ConductorConfig()

    def test_load_from_file(self, tmp_path: Path) -> None:
        path = tmp_path / "conductor.json"
        path.write_text(
            json.dumps({"executables": {"claude": "cat"}, "process": {"kill_grace_seconds": 0.1}})
        )
        config = ConductorConfig.load(str(path))
        assert config.executables["claude"] == "cat"
        assert config.executables["gemini"] == "gemini"
        assert config.process.kill_grace_seconds == 0.1

    def test_env_overrides_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = tmp_path / "conductor.json"
        path.write_text(json.dumps({"executables": {"claude": "from-file"}}))
        monkeypatch.setenv("CONDUCTOR_CLAUDE_BIN", "from-env")
        monkeypatch.setenv("CONDUCTOR_KILL_GRACE", "0.25")
        monkeypatch.setenv("CONDUCTOR_OUTPUT_LINES", "500")
        monkeypatch.setenv("CONDUCTOR_BUS_CAPACITY", "10")
        config = ConductorConfig.load(str(path))
        assert config.executables["claude"] == "from-env"
        assert config.process.kill_grace_seconds == 0.25
        assert config.output.max_lines == 500
        assert config.bus.capacity == 10

    def test_missing_file_falls_back_to_defaults(self, tmp_path: Path) -> None:
        config = ConductorConfig.load(str(tmp_path / "nope.json"))
        assert config == ConductorConfig()
