"""Runtime configuration store — versioned entries, history, snapshots."""

from tiergate.runtime.models import (
    ABSENT,
    ConfigEntry,
    ConfigSnapshot,
    RejectedUpdate,
    UpdateEvent,
    UpdateType,
)
from tiergate.runtime.replay import replay_history
from tiergate.runtime.store import WILDCARD, ConfigStore
from tiergate.runtime.values import ValidationRules, ValueType

__all__ = [
    "ABSENT",
    "ConfigEntry",
    "ConfigSnapshot",
    "ConfigStore",
    "RejectedUpdate",
    "UpdateEvent",
    "UpdateType",
    "ValidationRules",
    "ValueType",
    "WILDCARD",
    "replay_history",
]
