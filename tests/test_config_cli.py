"""CLI tests for configuration commands."""

import os
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from iconic.cli import cli
from iconic.config import ConfigManager


def _env_with_home(tmp_path: Path) -> dict[str, Any]:
    env = {key: value for key, value in os.environ.items() if not key.startswith("ICONIC__")}
    env["HOME"] = str(tmp_path)
    return env


def _config_path(tmp_path: Path) -> Path:
    return tmp_path / ".iconic" / "config.yaml"


def test_config_view_creates_and_displays_config(tmp_path: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(cli, ["config", "view"], env=_env_with_home(tmp_path))

    assert result.exit_code == 0, result.output
    assert "oracle:" in result.output
    assert "batch_size" in result.output
    assert _config_path(tmp_path).exists()


def test_config_view_applies_env_overrides_unless_disabled(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)
    env["ICONIC__ANALYSIS__BATCH_SIZE"] = "42"

    with_env = runner.invoke(cli, ["config", "view"], env=env)
    without_env = runner.invoke(cli, ["config", "view", "--no-env"], env=env)

    assert "batch_size: 42" in with_env.output
    assert "batch_size: 42" not in without_env.output


def test_config_set_updates_value_and_writes_diff(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(cli, ["config", "set", "analysis.batch_size", "--value", "5"], env=env)

    assert result.exit_code == 0, result.output
    assert "Updated analysis.batch_size" in result.output

    manager = ConfigManager(config_path=_config_path(tmp_path))
    config = manager.load(include_env=False)
    assert config.analysis.batch_size == 5

    repeated = runner.invoke(cli, ["config", "set", "analysis.batch_size", "--value", "5"], env=env)
    assert repeated.exit_code == 0
    assert "No changes applied" in repeated.output


def test_config_set_rejects_invalid_values(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    unknown = runner.invoke(cli, ["config", "set", "analysis.nope", "--value", "1"], env=env)
    below_minimum = runner.invoke(
        cli, ["config", "set", "analysis.batch_size", "--value", "0"], env=env
    )

    assert unknown.exit_code != 0
    assert below_minimum.exit_code != 0
    config = ConfigManager(config_path=_config_path(tmp_path)).load(include_env=False)
    assert config.analysis.batch_size == 15


def test_config_edit_applies_changes(tmp_path: Path, monkeypatch) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    manager = ConfigManager(config_path=_config_path(tmp_path))
    manager.ensure_exists()

    def _mock_edit(text: str, **_: Any) -> str:
        return text.replace("temperature: 0.1", "temperature: 0.55")

    monkeypatch.setattr("iconic.cli.click.edit", _mock_edit)

    result = runner.invoke(cli, ["config", "edit"], env=env)

    assert result.exit_code == 0, result.output
    assert "updated" in result.output.lower()

    config = manager.load(include_env=False)
    assert config.oracle.temperature == pytest.approx(0.55)


def test_config_edit_rejects_invalid_yaml(tmp_path: Path, monkeypatch) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    manager = ConfigManager(config_path=_config_path(tmp_path))
    manager.ensure_exists()
    original = manager.read_text()

    monkeypatch.setattr("iconic.cli.click.edit", lambda text, **_: "oracle: [unclosed")

    result = runner.invoke(cli, ["config", "edit"], env=env)

    assert result.exit_code != 0
    assert "Invalid YAML" in result.output
    assert manager.read_text() == original
