"""
Default configuration entries and per-environment presets.

``load_defaults`` declares the baseline keys (with their rules) in an empty
store.  ``apply_environment_preset`` then pushes the recommended values for
one deployment environment through ``ConfigStore.set``, the same validated
path as any other update, so a preset value that breaks a rule is
rejected, logged and reported back instead of being applied.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import structlog

from tiergate.core.constants import (
    ALL,
    DEFAULT_UPGRADE_THRESHOLD,
    ENV_DEVELOPMENT,
    ENV_PRODUCTION,
    ENV_STAGING,
    SYSTEM_ACTOR,
    UPGRADE_THRESHOLD_KEY,
)
from tiergate.core.exceptions import ConfigValidationError
from tiergate.runtime.store import ConfigStore
from tiergate.runtime.values import ValidationRules

logger = structlog.get_logger()


@dataclass(frozen=True)
class DefaultEntry:
    key: str
    value: Any
    category: str
    description: str = ""
    validation: ValidationRules | None = None
    environment: str = ALL
    tier: str = ALL


DEFAULT_ENTRIES: tuple[DefaultEntry, ...] = (
    # api
    DefaultEntry(
        "api.rate_limit.requests_per_minute",
        120,
        "api",
        "Sustained request budget per actor",
        ValidationRules(required=True, min=1, max=100_000),
    ),
    DefaultEntry(
        "api.timeout.seconds",
        30,
        "api",
        "Upstream request timeout",
        ValidationRules(required=True, min=1, max=300),
    ),
    DefaultEntry(
        "api.base_path",
        "/api/v1",
        "api",
        validation=ValidationRules(required=True, pattern=r"^/[a-z0-9/_-]*$"),
    ),
    # cache
    DefaultEntry(
        "cache.ttl.default",
        300,
        "cache",
        "Default cache entry lifetime in seconds",
        ValidationRules(required=True, min=60, max=86_400),
    ),
    DefaultEntry("cache.enabled", True, "cache"),
    # security
    DefaultEntry(
        "security.session_timeout_minutes",
        60,
        "security",
        "Idle session lifetime",
        ValidationRules(required=True, min=5, max=1_440),
    ),
    DefaultEntry(
        "security.allowed_origins",
        ["http://localhost:3000"],
        "security",
        "CORS allow-list",
    ),
    DefaultEntry(
        "security.password_policy",
        {"min_length": 12, "require_symbols": True},
        "security",
    ),
    # logging
    DefaultEntry(
        "logging.level",
        "info",
        "logging",
        validation=ValidationRules(
            required=True, allowed_values=["debug", "info", "warning", "error"]
        ),
    ),
    # advisor
    DefaultEntry(
        UPGRADE_THRESHOLD_KEY,
        DEFAULT_UPGRADE_THRESHOLD,
        "billing",
        "Usage/limit ratio above which an upgrade is recommended",
        ValidationRules(required=True, min=0.01, max=1.0),
    ),
)


@dataclass(frozen=True)
class EnvironmentPreset:
    environment: str
    values: dict[str, Any] = field(default_factory=dict)


ENVIRONMENT_PRESETS: dict[str, EnvironmentPreset] = {
    ENV_DEVELOPMENT: EnvironmentPreset(
        ENV_DEVELOPMENT,
        {
            "api.rate_limit.requests_per_minute": 10_000,
            "cache.ttl.default": 60,
            "cache.enabled": False,
            "security.session_timeout_minutes": 1_440,
            "logging.level": "debug",
        },
    ),
    ENV_STAGING: EnvironmentPreset(
        ENV_STAGING,
        {
            "api.rate_limit.requests_per_minute": 600,
            "cache.ttl.default": 300,
            "security.session_timeout_minutes": 120,
            "logging.level": "info",
        },
    ),
    ENV_PRODUCTION: EnvironmentPreset(
        ENV_PRODUCTION,
        {
            "api.rate_limit.requests_per_minute": 120,
            "cache.ttl.default": 900,
            "cache.enabled": True,
            "security.session_timeout_minutes": 30,
            "security.allowed_origins": [],
            "logging.level": "warning",
        },
    ),
}


def load_defaults(
    store: ConfigStore,
    entries: tuple[DefaultEntry, ...] = DEFAULT_ENTRIES,
    actor: str = SYSTEM_ACTOR,
) -> None:
    """Declare every default entry that the store does not hold yet."""
    for d in entries:
        if d.key in store:
            continue
        store.define(
            d.key,
            d.value,
            category=d.category,
            validation=d.validation,
            environment=d.environment,
            tier=d.tier,
            description=d.description,
            actor=actor,
        )


def apply_environment_preset(
    store: ConfigStore,
    environment: str,
    actor: str = SYSTEM_ACTOR,
    presets: dict[str, EnvironmentPreset] | None = None,
) -> list[str]:
    """Apply the preset for *environment* through ``store.set``.

    Returns the keys whose preset value was rejected.  An unknown
    environment applies nothing.
    """
    preset = (presets if presets is not None else ENVIRONMENT_PRESETS).get(environment)
    if preset is None:
        logger.warning("environment_preset_unknown", environment=environment)
        return []

    rejected: list[str] = []
    for key, value in preset.values.items():
        try:
            store.set(key, value, actor, reason=f"preset:{environment}")
        except ConfigValidationError:
            rejected.append(key)

    logger.info(
        "environment_preset_applied",
        environment=environment,
        applied=len(preset.values) - len(rejected),
        rejected=len(rejected),
    )
    return rejected
