"""Configuration store records: entries, update events, rejections, snapshots."""

from __future__ import annotations

import copy
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from types import MappingProxyType
from typing import Any

from tiergate.core.constants import ALL, DEFAULT_CATEGORY
from tiergate.runtime.values import ValidationRules, ValueType


class _Absent:
    """Marker for "no value": a deleted key, or no recorded previous value."""

    _instance: _Absent | None = None

    def __new__(cls) -> _Absent:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False

    def __copy__(self) -> _Absent:
        return self

    def __deepcopy__(self, memo: dict[int, Any]) -> _Absent:
        return self


ABSENT = _Absent()


def utc_now() -> str:
    return datetime.now(UTC).isoformat()


class UpdateType(StrEnum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    ROLLBACK = "rollback"
    RESTORE = "restore"


@dataclass
class ConfigEntry:
    """A single versioned configuration value with its metadata.

    Entries held by the store are private; callers always receive copies
    (``ConfigStore.get_entry`` / snapshots), so mutating a returned entry
    never changes the live store.
    """

    key: str
    value: Any
    value_type: ValueType
    category: str = DEFAULT_CATEGORY
    environment: str = ALL
    tier: str = ALL
    validation: ValidationRules | None = None
    description: str = ""
    version: int = 1
    last_modified: str = field(default_factory=utc_now)
    modified_by: str = ""
    previous_value: Any = ABSENT

    @property
    def has_previous(self) -> bool:
        return self.previous_value is not ABSENT

    def applies_to(self, environment: str | None = None, tier: str | None = None) -> bool:
        """True if this entry's environment/tier restriction admits the given scope.

        ``None`` for either argument means "do not filter on it".
        """
        if environment is not None and self.environment not in (ALL, environment):
            return False
        if tier is not None and self.tier not in (ALL, tier):
            return False
        return True

    def copy(self) -> ConfigEntry:
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "value": copy.deepcopy(self.value),
            "value_type": self.value_type.value,
            "category": self.category,
            "environment": self.environment,
            "tier": self.tier,
            "validation": (
                self.validation.model_dump(exclude_none=True) if self.validation else None
            ),
            "description": self.description,
            "version": self.version,
            "last_modified": self.last_modified,
            "modified_by": self.modified_by,
        }


@dataclass(frozen=True)
class UpdateEvent:
    """One accepted store mutation. Immutable once appended to the history.

    ``key`` is ``None`` for the store-wide snapshot-restore marker.
    """

    event_id: str
    type: UpdateType
    key: str | None
    old_value: Any
    new_value: Any
    version: int
    actor: str
    timestamp: str
    reason: str | None = None
    snapshot_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "type": self.type.value,
            "key": self.key,
            "old_value": None if self.old_value is ABSENT else self.old_value,
            "new_value": None if self.new_value is ABSENT else self.new_value,
            "version": self.version,
            "actor": self.actor,
            "timestamp": self.timestamp,
            "reason": self.reason,
            "snapshot_id": self.snapshot_id,
        }


@dataclass(frozen=True)
class RejectedUpdate:
    """Audit record of a mutation refused by validation. Never applied."""

    key: str
    value: Any
    rule: str
    message: str
    actor: str
    timestamp: str
    reason: str | None = None


@dataclass(frozen=True)
class ConfigSnapshot:
    """Named, immutable copy of every entry at a point in time."""

    snapshot_id: str
    name: str
    description: str
    created_at: str
    created_by: str
    _entries: Mapping[str, ConfigEntry] = field(repr=False)

    @classmethod
    def capture(
        cls,
        snapshot_id: str,
        name: str,
        description: str,
        created_by: str,
        entries: Mapping[str, ConfigEntry],
    ) -> ConfigSnapshot:
        frozen = MappingProxyType({k: e.copy() for k, e in entries.items()})
        return cls(
            snapshot_id=snapshot_id,
            name=name,
            description=description,
            created_at=utc_now(),
            created_by=created_by,
            _entries=frozen,
        )

    @property
    def keys(self) -> list[str]:
        return sorted(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def entries(self) -> dict[str, ConfigEntry]:
        """Independent copies of the captured entries."""
        return {k: e.copy() for k, e in self._entries.items()}

    def value(self, key: str, default: Any = None) -> Any:
        entry = self._entries.get(key)
        return default if entry is None else copy.deepcopy(entry.value)

    def summary(self) -> dict[str, Any]:
        return {
            "snapshot_id": self.snapshot_id,
            "name": self.name,
            "description": self.description,
            "created_at": self.created_at,
            "created_by": self.created_by,
            "entries": len(self._entries),
        }
