"""Tiergate constants — env var names, reserved keys, defaults."""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Environment variables
# ---------------------------------------------------------------------------

ENV_CONFIG = "TIERGATE_CONFIG"
ENV_ENVIRONMENT = "TIERGATE_ENVIRONMENT"
ENV_LOG_LEVEL = "TIERGATE_LOG_LEVEL"
ENV_LOG_JSON = "TIERGATE_LOG_JSON"
ENV_UPGRADE_THRESHOLD = "TIERGATE_UPGRADE_THRESHOLD"
ENV_HISTORY_LIMIT = "TIERGATE_HISTORY_LIMIT"

# ---------------------------------------------------------------------------
# Deployment environments
# ---------------------------------------------------------------------------

ENV_DEVELOPMENT = "development"
ENV_STAGING = "staging"
ENV_PRODUCTION = "production"
VALID_ENVIRONMENTS = frozenset({ENV_DEVELOPMENT, ENV_STAGING, ENV_PRODUCTION})

# Restriction value meaning "applies everywhere" (environment and tier).
ALL = "all"

# ---------------------------------------------------------------------------
# Reserved configuration keys
# ---------------------------------------------------------------------------

UPGRADE_THRESHOLD_KEY = "upgrade.usage_threshold"
FEATURE_TOGGLE_PREFIX = "features."
FEATURE_TOGGLE_SUFFIX = ".enabled"

DEFAULT_UPGRADE_THRESHOLD = 0.8
DEFAULT_CATEGORY = "custom"
SYSTEM_ACTOR = "system"

# Per-feature tier value meaning "no ceiling".
UNLIMITED = -1


def feature_toggle_key(feature_id: str) -> str:
    """Store key holding the global on/off toggle for *feature_id*."""
    return f"{FEATURE_TOGGLE_PREFIX}{feature_id}{FEATURE_TOGGLE_SUFFIX}"
