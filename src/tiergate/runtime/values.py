"""
Configuration value types and validation rules.

Every entry records its ``ValueType`` next to the value, so an update that
changes the kind of value (a string where a number was declared) is
rejected rather than silently stored.

Validation order (first violation wins):
  1. required   — ``None`` / empty string rejected when the rule is set
  2. type       — value must match the declared ValueType
  3. enum       — value must be one of ``allowed_values``
  4. min / max  — numeric bounds; length bounds for strings and lists
  5. pattern    — regex search on string values
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, field_validator, model_validator

from tiergate.core.exceptions import ConfigValidationError, ValidationRule


class ValueType(StrEnum):
    """Discriminator for the payload stored in a configuration entry."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    OBJECT = "object"
    LIST = "list"


def infer_value_type(value: Any) -> ValueType:
    """Return the ValueType for a Python value.

    Raises:
        TypeError: if the value has no configuration representation.
    """
    # bool is a subclass of int; test it first.
    if isinstance(value, bool):
        return ValueType.BOOLEAN
    if isinstance(value, int | float):
        return ValueType.NUMBER
    if isinstance(value, str):
        return ValueType.STRING
    if isinstance(value, Mapping):
        return ValueType.OBJECT
    if isinstance(value, list | tuple):
        return ValueType.LIST
    raise TypeError(f"Unsupported configuration value type: {type(value).__name__}")


def matches_type(value: Any, value_type: ValueType) -> bool:
    try:
        return infer_value_type(value) == value_type
    except TypeError:
        return False


class ValidationRules(BaseModel):
    """Declarative rule set attached to a configuration entry."""

    model_config = {"extra": "forbid", "frozen": True}

    required: bool = False
    min: float | None = None
    max: float | None = None
    pattern: str | None = None
    allowed_values: list[Any] | None = None

    @field_validator("pattern")
    @classmethod
    def pattern_compiles(cls, v: str | None) -> str | None:
        if v is not None:
            try:
                re.compile(v)
            except re.error as exc:
                raise ValueError(f"Invalid pattern {v!r}: {exc}") from exc
        return v

    @model_validator(mode="after")
    def bounds_ordered(self) -> ValidationRules:
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError(f"min ({self.min}) must not exceed max ({self.max})")
        return self


def _measure(value: Any) -> float | None:
    """Quantity compared against min/max: the number itself, or a length."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return value
    if isinstance(value, str | list | tuple):
        return len(value)
    return None


def validate_value(
    key: str,
    value: Any,
    value_type: ValueType,
    rules: ValidationRules | None,
) -> None:
    """Check *value* against the declared type and rules.

    Raises:
        ConfigValidationError: naming the first violated rule.
    """
    required = rules is not None and rules.required
    if value is None or (isinstance(value, str) and value == "" and required):
        if required:
            raise ConfigValidationError(key, ValidationRule.REQUIRED, value, "value is required")
        return

    if not matches_type(value, value_type):
        raise ConfigValidationError(
            key,
            ValidationRule.TYPE,
            value,
            f"expected {value_type.value}, got {type(value).__name__}",
        )

    if rules is None:
        return

    if rules.allowed_values is not None and value not in rules.allowed_values:
        raise ConfigValidationError(
            key,
            ValidationRule.ENUM,
            value,
            f"must be one of {rules.allowed_values!r}",
        )

    measured = _measure(value)
    if measured is not None:
        if rules.min is not None and measured < rules.min:
            raise ConfigValidationError(
                key, ValidationRule.MIN, value, f"must be at least {rules.min:g}"
            )
        if rules.max is not None and measured > rules.max:
            raise ConfigValidationError(
                key, ValidationRule.MAX, value, f"must be at most {rules.max:g}"
            )

    if rules.pattern is not None and isinstance(value, str):
        if re.search(rules.pattern, value) is None:
            raise ConfigValidationError(
                key,
                ValidationRule.PATTERN,
                value,
                f"does not match pattern {rules.pattern!r}",
            )
