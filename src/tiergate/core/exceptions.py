"""Tiergate exception hierarchy."""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from tiergate.access.controller import AccessDecision


class TiergateError(Exception):
    """Base exception for all Tiergate errors."""


class ConfigError(TiergateError):
    """Raised when the engine settings are invalid or cannot be read."""


class ConfigNotFoundError(ConfigError):
    """Raised when an explicitly requested settings file does not exist."""


class ValidationRule(StrEnum):
    """Rule that a rejected configuration value violated."""

    TYPE = "type"
    REQUIRED = "required"
    MIN = "min"
    MAX = "max"
    PATTERN = "pattern"
    ENUM = "enum"


class ConfigValidationError(TiergateError):
    """Raised by ``ConfigStore.set`` when a value violates the key's rules.

    The store is never partially updated when this is raised.
    """

    def __init__(self, key: str, rule: ValidationRule, value: Any, message: str) -> None:
        self.key = key
        self.rule = rule
        self.value = value
        self.message = message
        super().__init__(f"{key}: {message} (rule={rule.value}, value={value!r})")


class RegistryError(TiergateError):
    """Raised when a feature registry or tier catalog is malformed."""


class CyclicDependencyError(RegistryError):
    """Raised when feature dependencies form a cycle."""

    def __init__(self, cycle: list[str]) -> None:
        self.cycle = cycle
        super().__init__("Cyclic feature dependency: " + " -> ".join(cycle))


class UsageUnavailableError(TiergateError):
    """Raised by a usage oracle that cannot answer for a feature/actor."""


class FeatureUnavailableError(TiergateError):
    """Raised by ``require_feature`` when the access controller denies a feature."""

    def __init__(self, decision: AccessDecision, feature_id: str) -> None:
        self.decision = decision
        self.feature_id = feature_id
        super().__init__(f"Feature {feature_id!r} denied: {decision.reason}")
