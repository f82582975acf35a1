"""Tests for YAML configuration loading."""
import pytest
from pydantic import ValidationError

from app.config import AppConfig, RealtimeSettings, load_config


def test_defaults_when_files_missing(tmp_path):
    """Missing settings and secrets files fall back to model defaults."""
    cfg = load_config(
        settings_path=tmp_path / "missing.settings.yaml",
        secrets_path=tmp_path / "missing.secrets.yaml",
    )
    assert cfg.store.backend == "redis"
    assert cfg.realtime.history_size == 100
    assert cfg.realtime.history_key == "chat:history"
    assert cfg.realtime.online_set_key == "online_users"
    assert cfg.secrets.jwt.algorithm == "HS256"


def test_settings_and_secrets_are_merged(tmp_path):
    settings_file = tmp_path / "relay.settings.yaml"
    settings_file.write_text(
        "store:\n"
        "  backend: memory\n"
        "realtime:\n"
        "  history_size: 25\n"
        "logging:\n"
        "  level: DEBUG\n",
        encoding="utf-8",
    )
    secrets_file = tmp_path / "relay.secrets.yaml"
    secrets_file.write_text(
        "jwt:\n"
        "  secret_key: from-secrets-file\n"
        "redis:\n"
        "  password: hunter2\n",
        encoding="utf-8",
    )

    cfg = load_config(settings_path=settings_file, secrets_path=secrets_file)
    assert cfg.store.backend == "memory"
    assert cfg.realtime.history_size == 25
    assert cfg.logging.level == "debug"
    assert cfg.secrets.jwt.secret_key == "from-secrets-file"
    assert cfg.secrets.redis.password == "hunter2"


def test_environment_variables_select_files(tmp_path, monkeypatch):
    settings_file = tmp_path / "custom.yaml"
    settings_file.write_text("server:\n  port: 9100\n", encoding="utf-8")
    monkeypatch.setenv("RELAY_SETTINGS_FILE", str(settings_file))
    monkeypatch.setenv("RELAY_SECRETS_FILE", str(tmp_path / "none.yaml"))

    cfg = load_config()
    assert cfg.server.port == 9100


def test_history_size_must_be_positive():
    with pytest.raises(ValidationError):
        RealtimeSettings(history_size=0)


def test_unknown_log_level_rejected():
    with pytest.raises(ValidationError):
        AppConfig(logging={"level": "chatty"})
