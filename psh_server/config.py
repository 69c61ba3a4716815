from __future__ import annotations

import logging
import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from psh_server.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "/app/config.yaml"


def expand_env_vars(config_str: str) -> str:
    """
    Expand environment variables in the format ${VAR_NAME} within a YAML string.
    Skips expansion in YAML comments (lines starting with #).

    Raises:
        KeyError: If a referenced environment variable is not set
    """
    def replace_var(match: re.Match[str]) -> str:
        var_name = match.group(1)
        try:
            return os.environ[var_name]
        except KeyError:
            msg = f"Environment variable '{var_name}' referenced in config.yaml but not set"
            raise KeyError(msg) from None

    lines = []
    for line in config_str.split("\n"):
        if line.lstrip().startswith("#"):
            lines.append(line)
        else:
            lines.append(re.sub(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}", replace_var, line))

    return "\n".join(lines)


def load_config_from_yaml(config_path: str | None = None) -> dict[str, Any]:
    """
    Load the YAML configuration file and expand environment variables.

    Args:
        config_path: Path to config.yaml. If None, uses the CONFIG_PATH environment
                     variable, then /app/config.yaml. A missing default file is not
                     an error: the relay then runs from environment variables alone.

    Returns:
        Parsed configuration mapping (empty when no file is used)

    Raises:
        ConfigurationError: If an explicit file is missing, the YAML is invalid,
                            or a referenced environment variable is not set
    """
    explicit = config_path is not None or "CONFIG_PATH" in os.environ
    if config_path is None:
        config_path = os.environ.get("CONFIG_PATH", DEFAULT_CONFIG_PATH)

    config_file = Path(config_path)
    if not config_file.exists():
        if explicit:
            msg = f"Configuration file not found at {config_path}"
            raise ConfigurationError(msg, context={"config_file": config_path})
        return {}

    config_str = config_file.read_text()

    try:
        expanded_config = expand_env_vars(config_str)
    except KeyError as e:
        msg = f"Error expanding environment variables in config.yaml: {e}"
        raise ConfigurationError(msg, context={"config_file": config_path}) from None

    try:
        config_dict = yaml.safe_load(expanded_config)
    except yaml.YAMLError as e:
        msg = f"Invalid YAML in config.yaml: {e}"
        raise ConfigurationError(msg, context={"config_file": config_path}) from None

    if config_dict is None:
        return {}
    if not isinstance(config_dict, dict):
        msg = "config.yaml must contain a YAML mapping/dictionary at root level"
        raise ConfigurationError(msg, context={"config_file": config_path})

    return config_dict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=None,
        case_sensitive=False,
    )

    # Relational store
    database_url: str = "sqlite+aiosqlite:///data.db"

    # APNs token authentication, shared by the sandbox and production clients
    apns_key_path: Path | None = None
    apns_key_id: str | None = None
    apns_team_id: str | None = None
    apns_topic: str | None = None
    apns_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Upper bound for a single APNs send",
    )

    # Dispatch
    dispatch_concurrency: int = Field(
        default=1,
        ge=1,
        description="Maximum concurrent APNs sends per broadcast",
    )

    # Security (open relay when unset)
    auth_token: str | None = None

    # Observability
    log_level: str = "INFO"
    log_json: bool = True

    @field_validator("database_url", mode="after")
    @classmethod
    def use_async_sqlite_driver(cls, v: str) -> str:
        """Accept `sqlite:path` URLs and route them through aiosqlite."""
        if v.startswith("sqlite+"):
            return v
        if v.startswith("sqlite://"):
            return "sqlite+aiosqlite://" + v.removeprefix("sqlite://")
        if v.startswith("sqlite:"):
            return "sqlite+aiosqlite:///" + v.removeprefix("sqlite:")
        return v

    @field_validator("log_level", mode="after")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in logging.getLevelNamesMapping():
            msg = f"Unknown log level: {v}"
            raise ValueError(msg)
        return level

    def missing_apns_settings(self) -> list[str]:
        required = {
            "apns.key_path": self.apns_key_path,
            "apns.key_id": self.apns_key_id,
            "apns.team_id": self.apns_team_id,
            "apns.topic": self.apns_topic,
        }
        return [name for name, value in required.items() if not value]

    def read_apns_key(self) -> str:
        """
        Read the P8 signing key.

        Raises:
            ConfigurationError: If credentials are incomplete or the key is unreadable
        """
        key_path = self.apns_key_path
        missing = self.missing_apns_settings()
        if missing or key_path is None:
            msg = f"Missing APNs configuration: {', '.join(missing)}"
            raise ConfigurationError(msg, context={"missing": missing})

        try:
            return key_path.read_text()
        except OSError as e:
            msg = f"Failed to read APNs key: {e}"
            raise ConfigurationError(msg, context={"key_path": str(key_path)}) from e


def _flatten_config(config_dict: dict[str, Any]) -> dict[str, Any]:
    """Map the nested config.yaml layout onto flat Settings field names."""
    sections = {
        "database": {"url": "database_url"},
        "apns": {
            "key_path": "apns_key_path",
            "key_id": "apns_key_id",
            "team_id": "apns_team_id",
            "topic": "apns_topic",
            "timeout_seconds": "apns_timeout_seconds",
        },
        "dispatch": {"concurrency": "dispatch_concurrency"},
        "auth": {"token": "auth_token"},
        "logging": {"level": "log_level", "json": "log_json"},
    }

    flat_config: dict[str, Any] = {}
    for section, keys in sections.items():
        values = config_dict.get(section)
        if not isinstance(values, dict):
            continue
        for key, field_name in keys.items():
            if values.get(key) is not None:
                flat_config[field_name] = values[key]

    return flat_config


def build_settings(config_path: str | None = None) -> Settings:
    """
    Build settings from config.yaml layered over environment variables.

    Raises:
        ConfigurationError: If the file or the resulting values are invalid
    """
    flat_config = _flatten_config(load_config_from_yaml(config_path))

    try:
        return Settings(**flat_config)
    except ValidationError as e:
        msg = f"Configuration validation error: {e}"
        raise ConfigurationError(msg) from e


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings, loaded once."""
    return build_settings()
