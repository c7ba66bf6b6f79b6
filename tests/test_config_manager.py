"""Unit tests for configuration management."""

from pathlib import Path

import pytest

from iconic.config import (
    ConfigError,
    ConfigManager,
    IconicConfig,
    flatten_for_env,
    resolve_with_precedence,
)


def _fresh_manager(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> ConfigManager:
    monkeypatch.setenv("HOME", str(tmp_path))
    return ConfigManager()


def test_ensure_exists_creates_default_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)

    path = manager.ensure_exists()

    assert path == tmp_path / ".iconic" / "config.yaml"
    text = path.read_text(encoding="utf-8")
    assert "Iconic configuration file" in text
    assert "Last updated:" in text

    config = manager.load(include_env=False)
    assert isinstance(config, IconicConfig)
    assert config.analysis.batch_size == 15
    assert config.organization.unused_assets_dir == "_Unused_Assets"


def test_resolve_with_precedence_respects_order(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)
    manager.ensure_exists()

    manager.save({"oracle": {"model": "openai/gpt-4o-mini"}, "analysis": {"batch_size": 5}})

    env = {"ICONIC__ORACLE__TEMPERATURE": "0.7", "ICONIC__ANALYSIS__COOLDOWN_SECONDS": "1"}
    cli = {"oracle.temperature": 0.2}

    config = manager.load(cli_overrides=cli, env_overrides=env)

    assert config.oracle.model == "openai/gpt-4o-mini"
    assert config.analysis.batch_size == 5
    assert config.analysis.cooldown_seconds == pytest.approx(1.0)
    # CLI overrides take precedence over environment
    assert config.oracle.temperature == pytest.approx(0.2)


def test_environment_values_are_parsed_as_yaml(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)

    config = manager.load(
        env_overrides={
            "ICONIC__ORGANIZATION__MULTI_TAG": "false",
            "ICONIC__CATEGORIES__DEFAULTS": "[Synth, Bass]",
            "UNRELATED": "ignored",
        }
    )

    assert config.organization.multi_tag is False
    assert config.categories.defaults == ["Synth", "Bass"]


def test_invalid_yaml_raises_config_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)
    manager.ensure_exists()

    manager.config_path.write_text("- not-a-mapping", encoding="utf-8")

    with pytest.raises(ConfigError):
        manager.load()


def test_unknown_keys_are_rejected() -> None:
    with pytest.raises(ConfigError):
        resolve_with_precedence(
            defaults=IconicConfig(), file_overrides={"analysis": {"batchsize": 3}}
        )


def test_flatten_for_env_round_trips_defaults() -> None:
    flat = flatten_for_env(IconicConfig())

    assert flat["ICONIC__ORACLE__PROVIDER"] == "gemini"
    assert flat["ICONIC__ANALYSIS__BATCH_SIZE"] == "15"
    assert flat["ICONIC__ORACLE__API_KEY"] == "null"
    assert "ICONIC__CATEGORIES__PROFILES" in flat


def test_resolve_with_precedence_invalid_value_raises() -> None:
    with pytest.raises(ConfigError):
        resolve_with_precedence(
            defaults=IconicConfig(),
            file_overrides={"analysis": {"batch_size": "not-an-int"}},
        )


def test_extensions_are_normalized() -> None:
    config = resolve_with_precedence(
        defaults=IconicConfig(),
        file_overrides={"bundles.main_extension": "FST", "bundles.image_extensions": ["JPG", ".png"]},
    )

    assert config.bundles.main_extension == ".fst"
    assert config.bundles.image_extensions == [".jpg", ".png"]


def test_credential_accepts_key_or_custom_endpoint() -> None:
    config = IconicConfig()
    assert not config.oracle.has_credential

    with_key = resolve_with_precedence(defaults=config, cli_overrides={"oracle.api_key": "k"})
    with_endpoint = resolve_with_precedence(
        defaults=config, cli_overrides={"oracle.api_base_url": "http://localhost:11434"}
    )

    assert with_key.oracle.has_credential
    assert with_endpoint.oracle.has_credential
