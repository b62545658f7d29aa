"""Engine settings: Pydantic model, TOML load, and environment overlays."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

from tiergate.core.constants import (
    DEFAULT_UPGRADE_THRESHOLD,
    ENV_CONFIG,
    ENV_DEVELOPMENT,
    ENV_ENVIRONMENT,
    ENV_HISTORY_LIMIT,
    ENV_LOG_JSON,
    ENV_LOG_LEVEL,
    ENV_UPGRADE_THRESHOLD,
    VALID_ENVIRONMENTS,
)
from tiergate.core.exceptions import ConfigError, ConfigNotFoundError

_VALID_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})

# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------


class LoggingSettings(BaseModel):
    level: str = "INFO"
    json_output: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        v = v.upper()
        if v not in _VALID_LEVELS:
            raise ValueError(f"Invalid log level {v!r}. Must be one of: {sorted(_VALID_LEVELS)}")
        return v


class StoreSettings(BaseModel):
    history_limit: int = Field(default=0, ge=0)
    """Maximum update events kept in memory; 0 keeps everything."""

    apply_environment_preset: bool = True
    """Apply the environment preset to the store when the engine starts."""


class AdvisorSettings(BaseModel):
    upgrade_threshold: float = Field(default=DEFAULT_UPGRADE_THRESHOLD, gt=0.0, le=1.0)
    """Usage/limit ratio above which an upgrade is recommended."""


class EngineSettings(BaseModel):
    """Top-level settings for a governance engine instance."""

    environment: str = ENV_DEVELOPMENT
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    advisor: AdvisorSettings = Field(default_factory=AdvisorSettings)

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        v = v.lower()
        if v not in VALID_ENVIRONMENTS:
            raise ValueError(
                f"Invalid environment {v!r}. Must be one of: {sorted(VALID_ENVIRONMENTS)}"
            )
        return v


# ---------------------------------------------------------------------------
# Load
# ---------------------------------------------------------------------------


def _settings_file_path() -> Path | None:
    if env_path := os.environ.get(ENV_CONFIG):
        return Path(env_path)
    return None


def load_settings(path: Path | str | None = None) -> EngineSettings:
    """
    Load EngineSettings from an optional TOML file, overlaid with environment variables.

    Priority (highest to lowest):
      1. Environment variables (TIERGATE_*)
      2. Settings file (explicit *path*, else ``$TIERGATE_CONFIG``)
      3. Model defaults

    An explicit *path* that does not exist raises ``ConfigNotFoundError``;
    with no path at all, defaults are used.
    """
    import tomllib

    cfg_path = Path(path) if path is not None else _settings_file_path()
    data: dict[str, Any] = {}

    if cfg_path is not None:
        if not cfg_path.exists():
            raise ConfigNotFoundError(f"Settings file not found: {cfg_path}")
        try:
            with open(cfg_path, "rb") as f:
                data = tomllib.load(f)
        except Exception as exc:
            raise ConfigError(f"Cannot read settings file {cfg_path}: {exc}") from exc

    try:
        _apply_env_overrides(data)
    except ValueError as exc:
        raise ConfigError(f"Invalid TIERGATE_* environment override: {exc}") from exc

    try:
        return EngineSettings.model_validate(data)
    except Exception as exc:
        source = cfg_path if cfg_path is not None else "environment"
        raise ConfigError(f"Invalid settings from {source}: {exc}") from exc


def _apply_env_overrides(data: dict[str, Any]) -> None:
    """Overlay TIERGATE_* environment variables onto parsed TOML."""

    if env := os.environ.get(ENV_ENVIRONMENT, ""):
        data["environment"] = env
    if level := os.environ.get(ENV_LOG_LEVEL, ""):
        data.setdefault("logging", {})["level"] = level
    if log_json := os.environ.get(ENV_LOG_JSON, ""):
        data.setdefault("logging", {})["json_output"] = log_json.lower() in ("1", "true", "yes")
    if threshold := os.environ.get(ENV_UPGRADE_THRESHOLD, ""):
        data.setdefault("advisor", {})["upgrade_threshold"] = float(threshold)
    if limit := os.environ.get(ENV_HISTORY_LIMIT, ""):
        data.setdefault("store", {})["history_limit"] = int(limit)
