"""Tests for `tripsync init` and `tripsync config`."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from tripsync.cli.main import cli
from tripsync.core.config import ACTOR_ENV, URL_ENV
from tripsync.storage.fs import TRIPSYNC_ROOT_ENV


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (ACTOR_ENV, URL_ENV, TRIPSYNC_ROOT_ENV):
        monkeypatch.delenv(name, raising=False)


class TestInit:
    """tripsync init writes .tripsync/config.json once."""

    def test_creates_config(self, tmp_path: Path) -> None:
        runner = CliRunner()
        result = runner.invoke(
            cli, ["init", "--path", str(tmp_path), "--actor", "alice", "--url", "ws://h:1"]
        )
        assert result.exit_code == 0, result.output
        config = json.loads((tmp_path / ".tripsync" / "config.json").read_text())
        assert config["actor_id"] == "alice"
        assert config["backend_url"] == "ws://h:1"
        assert config["echo_window_seconds"] == 15.0

    def test_idempotent(self, tmp_path: Path) -> None:
        runner = CliRunner()
        runner.invoke(cli, ["init", "--path", str(tmp_path), "--actor", "alice"])
        result = runner.invoke(
            cli, ["init", "--path", str(tmp_path), "--actor", "bob", "--json"]
        )
        assert result.exit_code == 0
        assert json.loads(result.output) == {
            "ok": True,
            "data": {"path": str(tmp_path / ".tripsync"), "created": False},
        }
        config = json.loads((tmp_path / ".tripsync" / "config.json").read_text())
        assert config["actor_id"] == "alice"

    def test_env_not_persisted(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(ACTOR_ENV, "from-env")
        result = CliRunner().invoke(cli, ["init", "--path", str(tmp_path)])
        assert result.exit_code == 0
        config = json.loads((tmp_path / ".tripsync" / "config.json").read_text())
        assert config["actor_id"] == ""

    def test_invalid_actor(self, tmp_path: Path) -> None:
        result = CliRunner().invoke(
            cli, ["init", "--path", str(tmp_path), "--actor", "two words", "--json"]
        )
        assert result.exit_code == 1
        assert json.loads(result.output)["error"]["code"] == "INVALID_ACTOR"
        assert not (tmp_path / ".tripsync").exists()

    def test_tripsync_is_a_file(self, tmp_path: Path) -> None:
        (tmp_path / ".tripsync").write_text("")
        result = CliRunner().invoke(cli, ["init", "--path", str(tmp_path), "--json"])
        assert result.exit_code == 1
        assert json.loads(result.output)["error"]["code"] == "NOT_A_DIRECTORY"


class TestConfigCommand:
    """tripsync config shows the effective configuration."""

    def test_json_reflects_file_and_env(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        runner = CliRunner()
        runner.invoke(cli, ["init", "--path", str(tmp_path), "--actor", "alice"])
        monkeypatch.setenv(TRIPSYNC_ROOT_ENV, str(tmp_path))
        monkeypatch.setenv(URL_ENV, "ws://override:2")
        result = runner.invoke(cli, ["config", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)["data"]
        assert data["actor_id"] == "alice"
        assert data["backend_url"] == "ws://override:2"

    def test_human_output(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        result = CliRunner().invoke(cli, ["config"])
        assert result.exit_code == 0
        assert "echo_window_seconds: 15.0" in result.output

    def test_bad_config(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        (tmp_path / ".tripsync").mkdir()
        (tmp_path / ".tripsync" / "config.json").write_text("{broken")
        monkeypatch.setenv(TRIPSYNC_ROOT_ENV, str(tmp_path))
        result = CliRunner().invoke(cli, ["config", "--json"])
        assert result.exit_code == 1
        assert json.loads(result.output)["error"]["code"] == "BAD_CONFIG"

    def test_bad_root_env(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(TRIPSYNC_ROOT_ENV, str(tmp_path / "missing"))
        result = CliRunner().invoke(cli, ["config"])
        assert result.exit_code == 1
        assert "TRIPSYNC_ROOT" in result.output
