"""Relay application configuration.

Loads settings from two YAML files:
  * relay.settings.yaml: non-secret configuration
  * relay.secrets.yaml: secrets (never committed)

Both locations can be overridden with the RELAY_SETTINGS_FILE and
RELAY_SECRETS_FILE environment variables.
"""
from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("relay.settings.yaml")
SECRETS_FILE  = Path("relay.secrets.yaml")

_LOG_LEVELS = ("critical", "error", "warning", "info", "debug")


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Secrets models
# ---------------------------------------------------------------------------


class JWTSecrets(BaseModel):
    secret_key: str = "change-me-in-production"
    algorithm:  str = "HS256"


class RedisSecrets(BaseModel):
    password: Optional[str] = None


class Secrets(BaseModel):
    jwt:   JWTSecrets   = Field(default_factory=JWTSecrets)
    redis: RedisSecrets = Field(default_factory=RedisSecrets)


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str       = "0.0.0.0"
    port:            int       = 8000
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])


class LoggingSettings(BaseModel):
    level: str = "info"

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        if value.lower() not in _LOG_LEVELS:
            raise ValueError(f"Unknown log level: {value}")
        return value.lower()


class StoreSettings(BaseModel):
    """Shared key-value store used for presence and history."""
    backend: Literal["redis", "memory"] = "redis"
    url:     str                        = "redis://localhost:6379/0"


class RealtimeSettings(BaseModel):
    history_size:        int = 100
    history_key:         str = "chat:history"
    online_set_key:      str = "online_users"
    presence_key_prefix: str = "presence:"
    private_room_prefix: str = "user:"

    @field_validator("history_size")
    @classmethod
    def _positive_history(cls, value: int) -> int:
        if value < 1:
            raise ValueError("history_size must be at least 1")
        return value


class AuthSettings(BaseModel):
    token_expire_minutes: int = 60 * 24 * 7


class AppConfig(BaseModel):
    server:   ServerSettings   = Field(default_factory=ServerSettings)
    logging:  LoggingSettings  = Field(default_factory=LoggingSettings)
    store:    StoreSettings    = Field(default_factory=StoreSettings)
    realtime: RealtimeSettings = Field(default_factory=RealtimeSettings)
    auth:     AuthSettings     = Field(default_factory=AuthSettings)
    secrets:  Secrets          = Field(default_factory=Secrets)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_config(
    settings_path: Optional[Union[str, Path]] = None,
    secrets_path: Optional[Union[str, Path]] = None,
) -> AppConfig:
    """Load and merge settings + secrets into a single *AppConfig* object."""
    settings_file = Path(
        settings_path or os.environ.get("RELAY_SETTINGS_FILE", SETTINGS_FILE)
    )
    secrets_file = Path(
        secrets_path or os.environ.get("RELAY_SECRETS_FILE", SECRETS_FILE)
    )

    settings_data = _load_yaml(settings_file)
    secrets_data  = _load_yaml(secrets_file)

    # Merge: secrets live under the "secrets" key in AppConfig
    settings_data["secrets"] = secrets_data

    config = AppConfig(**settings_data)
    logger.info(
        "Settings loaded (server=%s:%s, store=%s, history_size=%d)",
        config.server.host,
        config.server.port,
        config.store.backend,
        config.realtime.history_size,
    )
    return config


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """Return the process-wide configuration, loading it on first use."""
    return load_config()
