"""
Export document format for ``ConfigStore.export_entries`` / ``import_entries``.

The document is JSON::

    {
      "format_version": 1,
      "exported_at": "2026-10-17T09:00:00+00:00",
      "environment": "production",
      "entries": [
        {"key": "cache.ttl.default", "value": 300, "value_type": "number",
         "category": "cache", "validation": {"min": 60.0}, ...}
      ]
    }

Import validates the envelope first and each entry separately, so one
malformed entry is rejected without discarding the rest.
"""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from tiergate.core.constants import ALL, DEFAULT_CATEGORY
from tiergate.runtime.values import ValidationRules, ValueType

if TYPE_CHECKING:
    from tiergate.runtime.models import ConfigEntry

EXPORT_FORMAT_VERSION = 1


class ExportedEntry(BaseModel):
    model_config = {"extra": "ignore"}

    key: str = Field(min_length=1)
    value: Any = None
    value_type: ValueType
    category: str = DEFAULT_CATEGORY
    environment: str = ALL
    tier: str = ALL
    validation: ValidationRules | None = None
    description: str = ""
    version: int = Field(default=1, ge=1)

    @classmethod
    def from_entry(cls, entry: ConfigEntry) -> ExportedEntry:
        return cls(
            key=entry.key,
            value=copy.deepcopy(entry.value),
            value_type=entry.value_type,
            category=entry.category,
            environment=entry.environment,
            tier=entry.tier,
            validation=entry.validation,
            description=entry.description,
            version=entry.version,
        )


class ExportDocument(BaseModel):
    format_version: int = EXPORT_FORMAT_VERSION
    exported_at: str
    environment: str = ALL
    entries: list[ExportedEntry] = Field(default_factory=list)


class ImportDocument(BaseModel):
    """Envelope accepted by import.  Entries stay raw until validated one by one."""

    format_version: int = Field(default=EXPORT_FORMAT_VERSION, ge=1, le=EXPORT_FORMAT_VERSION)
    environment: str = ALL
    entries: list[Any]
