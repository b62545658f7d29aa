"""
ConfigStore — in-process runtime configuration with history and snapshots.

Every mutation goes through one validated path:

  set / define / rollback / delete
    → validate (set, define)
    → apply under the store lock (version bump, previous_value, audit fields)
    → append an UpdateEvent
    → notify subscribers (outside the lock, each callback isolated)

A rejected mutation leaves the entry untouched and is recorded only in the
rejected-attempt log.  Reads never raise.

Thread safety:
  One re-entrant lock guards the entry map, the history and the subscriber
  lists.  Subscriber callbacks run after the lock is released, in
  registration order, on the thread that performed the mutation.
"""

from __future__ import annotations

import copy
import json
import secrets
import threading
from collections.abc import Callable, Iterator
from typing import Any

import structlog
from pydantic import ValidationError

from tiergate.core.constants import ALL, DEFAULT_CATEGORY, SYSTEM_ACTOR
from tiergate.core.exceptions import ConfigValidationError, ValidationRule
from tiergate.runtime.models import (
    ABSENT,
    ConfigEntry,
    ConfigSnapshot,
    RejectedUpdate,
    UpdateEvent,
    UpdateType,
    utc_now,
)
from tiergate.runtime.transfer import ExportDocument, ExportedEntry, ImportDocument
from tiergate.runtime.values import ValidationRules, ValueType, infer_value_type, validate_value

logger = structlog.get_logger()

# Callback signature: (key, new_value) -> None.  new_value is ABSENT on delete.
Subscriber = Callable[[str, Any], None]

# Subscribing to this key receives notifications for every key.
WILDCARD = "*"


class ConfigStore:
    """
    Versioned key/value configuration store.

    Usage::

        store = ConfigStore(environment="production")
        store.define("cache.ttl.default", 300, category="cache",
                     validation=ValidationRules(min=60))
        store.set("cache.ttl.default", 600, actor="ops", reason="peak load")
        store.rollback("cache.ttl.default", actor="ops")
    """

    def __init__(self, *, environment: str = ALL, history_limit: int = 0) -> None:
        self._environment = environment
        self._history_limit = history_limit
        self._lock = threading.RLock()
        self._entries: dict[str, ConfigEntry] = {}
        self._history: list[UpdateEvent] = []
        self._rejected: list[RejectedUpdate] = []
        self._snapshots: dict[str, ConfigSnapshot] = {}
        self._subscribers: dict[str, list[Subscriber]] = {}

    @property
    def environment(self) -> str:
        return self._environment

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        """Return the current value for *key*, or *default* if absent."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            return copy.deepcopy(entry.value)

    def get_effective(
        self,
        key: str,
        default: Any = None,
        *,
        environment: str | None = None,
        tier: str | None = None,
    ) -> Any:
        """Like ``get`` but honors the entry's environment/tier restriction.

        *environment* defaults to the store's own environment.
        """
        env = environment if environment is not None else self._environment
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or not entry.applies_to(None if env == ALL else env, tier):
                return default
            return copy.deepcopy(entry.value)

    def get_entry(self, key: str) -> ConfigEntry | None:
        with self._lock:
            entry = self._entries.get(key)
            return entry.copy() if entry is not None else None

    def get_by_category(self, category: str) -> dict[str, Any]:
        with self._lock:
            return {
                k: copy.deepcopy(e.value)
                for k, e in sorted(self._entries.items())
                if e.category == category
            }

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._entries)

    def categories(self) -> list[str]:
        with self._lock:
            return sorted({e.category for e in self._entries.values()})

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def define(
        self,
        key: str,
        value: Any,
        *,
        value_type: ValueType | None = None,
        category: str = DEFAULT_CATEGORY,
        validation: ValidationRules | None = None,
        environment: str = ALL,
        tier: str = ALL,
        description: str = "",
        actor: str = SYSTEM_ACTOR,
        reason: str | None = None,
    ) -> ConfigEntry:
        """Declare a new entry with metadata and rules.

        The initial value must satisfy its own rules.  Defining a key that
        already exists is treated as ``set`` (the existing metadata wins).

        Raises:
            ConfigValidationError: if the initial value violates the rules.
        """
        with self._lock:
            exists = key in self._entries
            if not exists:
                try:
                    vt = value_type if value_type is not None else _infer_or_string(key, value)
                    validate_value(key, value, vt, validation)
                except ConfigValidationError as exc:
                    self._record_rejection(exc, actor, reason)
                    raise
                entry = ConfigEntry(
                    key=key,
                    value=copy.deepcopy(value),
                    value_type=vt,
                    category=category,
                    environment=environment,
                    tier=tier,
                    validation=validation,
                    description=description,
                    version=1,
                    last_modified=utc_now(),
                    modified_by=actor,
                )
                self._entries[key] = entry
                self._append_event(UpdateType.CREATE, key, ABSENT, value, 1, actor, reason)
                result = entry.copy()

        if exists:
            return self.set(key, value, actor, reason)
        logger.debug("config_defined", key=key, category=category, actor=actor)
        self._notify(key, value)
        return result

    def set(self, key: str, value: Any, actor: str, reason: str | None = None) -> ConfigEntry:
        """Validate and apply a new value for *key*.

        A key that does not exist yet is created with version 1 and
        category ``"custom"`` without rule validation.

        Returns:
            A copy of the updated entry.

        Raises:
            ConfigValidationError: if *value* violates the entry's type or rules.
                The entry is left unchanged.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                try:
                    vt = infer_value_type(value)
                except TypeError as exc:
                    err = _type_error(key, value, exc)
                    self._record_rejection(err, actor, reason)
                    raise err from exc
                entry = ConfigEntry(
                    key=key,
                    value=copy.deepcopy(value),
                    value_type=vt,
                    category=DEFAULT_CATEGORY,
                    version=1,
                    last_modified=utc_now(),
                    modified_by=actor,
                )
                self._entries[key] = entry
                self._append_event(UpdateType.CREATE, key, ABSENT, value, 1, actor, reason)
                result = entry.copy()
                logger.info("config_created", key=key, actor=actor)
            else:
                try:
                    validate_value(key, value, entry.value_type, entry.validation)
                except ConfigValidationError as exc:
                    self._record_rejection(exc, actor, reason)
                    raise
                old = entry.value
                self._apply(entry, value, actor)
                self._append_event(
                    UpdateType.UPDATE, key, old, value, entry.version, actor, reason
                )
                result = entry.copy()
                logger.info("config_set", key=key, version=entry.version, actor=actor)

        self._notify(key, value)
        return result

    def delete(self, key: str, actor: str, reason: str | None = None) -> bool:
        """Remove *key*.  Returns False if it was not present."""
        with self._lock:
            entry = self._entries.pop(key, None)
            if entry is None:
                return False
            self._append_event(
                UpdateType.DELETE, key, entry.value, ABSENT, entry.version, actor, reason
            )

        logger.info("config_deleted", key=key, actor=actor)
        self._notify(key, ABSENT)
        return True

    def rollback(self, key: str, actor: str, reason: str | None = None) -> bool:
        """Restore the value recorded before the last accepted mutation.

        The rollback is itself a mutation: the version keeps increasing.
        Returns False if the key is absent or has no previous value.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or not entry.has_previous:
                return False
            target = entry.previous_value
            old = entry.value
            self._apply(entry, target, actor)
            self._append_event(
                UpdateType.ROLLBACK, key, old, target, entry.version, actor, reason
            )
            version = entry.version

        logger.info("config_rolled_back", key=key, version=version, actor=actor)
        self._notify(key, target)
        return True

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, key: str, callback: Subscriber) -> Callable[[], None]:
        """Register *callback* for changes to *key* (``"*"`` for every key).

        Returns a function that removes exactly this registration.
        """
        with self._lock:
            self._subscribers.setdefault(key, []).append(callback)

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(key, [])
                for i, cb in enumerate(callbacks):
                    if cb is callback:
                        del callbacks[i]
                        break
                if not callbacks:
                    self._subscribers.pop(key, None)

        return unsubscribe

    def subscriber_count(self, key: str) -> int:
        with self._lock:
            return len(self._subscribers.get(key, []))

    def clear_subscribers(self) -> None:
        with self._lock:
            self._subscribers.clear()

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def snapshot(
        self, name: str, description: str = "", actor: str = SYSTEM_ACTOR
    ) -> ConfigSnapshot:
        """Capture an independent copy of every current entry."""
        with self._lock:
            snap = ConfigSnapshot.capture(
                snapshot_id=secrets.token_hex(8),
                name=name,
                description=description,
                created_by=actor,
                entries=self._entries,
            )
            self._snapshots[snap.snapshot_id] = snap

        logger.info(
            "config_snapshot_created",
            snapshot_id=snap.snapshot_id,
            name=name,
            entries=len(snap),
            actor=actor,
        )
        return snap

    def restore(self, snapshot_id: str, actor: str, reason: str | None = None) -> bool:
        """Replace the live entries with the snapshot's entries verbatim.

        The restore is recorded as one store-wide marker event followed by
        one per-key event for every key whose value or version changed, so
        the per-key log still replays to the live state.  Subscribers are
        notified for every key whose value changed.
        Returns False for an unknown snapshot id.
        """
        with self._lock:
            snap = self._snapshots.get(snapshot_id)
            if snap is None:
                return False
            before = {k: (e.value, e.version) for k, e in self._entries.items()}
            self._entries = snap.entries()
            after = {k: (e.value, e.version) for k, e in self._entries.items()}
            self._append_event(
                UpdateType.RESTORE,
                None,
                ABSENT,
                ABSENT,
                0,
                actor,
                reason,
                snapshot_id=snapshot_id,
            )
            changed: list[tuple[str, Any]] = []
            for k in sorted(before.keys() | after.keys()):
                old_value, old_version = before.get(k, (ABSENT, 0))
                new_value, new_version = after.get(k, (ABSENT, 0))
                if old_value == new_value and old_version == new_version:
                    continue
                self._append_event(
                    UpdateType.RESTORE,
                    k,
                    old_value,
                    new_value,
                    new_version,
                    actor,
                    reason,
                    snapshot_id=snapshot_id,
                )
                if old_value != new_value:
                    changed.append((k, copy.deepcopy(new_value)))

        logger.info(
            "config_snapshot_restored",
            snapshot_id=snapshot_id,
            changed=len(changed),
            actor=actor,
        )
        for key, value in changed:
            self._notify(key, value)
        return True

    def list_snapshots(self) -> list[ConfigSnapshot]:
        with self._lock:
            return sorted(self._snapshots.values(), key=lambda s: s.created_at)

    def get_snapshot(self, snapshot_id: str) -> ConfigSnapshot | None:
        with self._lock:
            return self._snapshots.get(snapshot_id)

    def delete_snapshot(self, snapshot_id: str) -> bool:
        with self._lock:
            return self._snapshots.pop(snapshot_id, None) is not None

    # ------------------------------------------------------------------
    # Export / import
    # ------------------------------------------------------------------

    def export_entries(self) -> str:
        """Serialize every entry (value + metadata) to a JSON document."""
        with self._lock:
            doc = ExportDocument(
                exported_at=utc_now(),
                environment=self._environment,
                entries=[ExportedEntry.from_entry(e) for _, e in sorted(self._entries.items())],
            )
        return doc.model_dump_json(indent=2)

    def import_entries(self, data: str | bytes | dict[str, Any], actor: str) -> bool:
        """Apply an exported document entry by entry.

        Existing keys go through ``set``; new keys are created with their
        exported metadata through ``define``.  A malformed or invalid entry
        is rejected on its own and does not stop the rest of the import.

        Returns False only if the document itself cannot be parsed.
        """
        try:
            raw = json.loads(data) if isinstance(data, str | bytes) else data
            doc = ImportDocument.model_validate(raw)
        except (ValueError, ValidationError) as exc:
            logger.warning("config_import_malformed", error=str(exc), actor=actor)
            return False

        applied = 0
        rejected = 0
        for index, item in enumerate(doc.entries):
            try:
                exported = ExportedEntry.model_validate(item)
            except ValidationError as exc:
                rejected += 1
                key = item.get("key", f"#{index}") if isinstance(item, dict) else f"#{index}"
                logger.warning(
                    "config_import_entry_rejected", key=key, error=str(exc), actor=actor
                )
                continue
            try:
                if exported.key in self:
                    self.set(exported.key, exported.value, actor, reason="import")
                else:
                    self.define(
                        exported.key,
                        exported.value,
                        value_type=exported.value_type,
                        category=exported.category,
                        validation=exported.validation,
                        environment=exported.environment,
                        tier=exported.tier,
                        description=exported.description,
                        actor=actor,
                        reason="import",
                    )
            except ConfigValidationError as exc:
                rejected += 1
                logger.warning(
                    "config_import_entry_rejected",
                    key=exported.key,
                    rule=exc.rule.value,
                    error=exc.message,
                    actor=actor,
                )
                continue
            applied += 1

        logger.info("config_imported", applied=applied, rejected=rejected, actor=actor)
        return True

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    def history(self, key: str | None = None) -> list[UpdateEvent]:
        """Accepted update events in order, optionally filtered to one key."""
        with self._lock:
            if key is None:
                return list(self._history)
            return [ev for ev in self._history if ev.key == key]

    def rejected_attempts(self, key: str | None = None) -> list[RejectedUpdate]:
        with self._lock:
            if key is None:
                return list(self._rejected)
            return [r for r in self._rejected if r.key == key]

    def prune_history(self, keep_last: int = 0) -> int:
        """Drop all but the newest *keep_last* events.  Returns the number removed."""
        with self._lock:
            removed = max(0, len(self._history) - keep_last)
            if removed:
                del self._history[:removed]
            self._rejected.clear()
        if removed:
            logger.info("config_history_pruned", removed=removed, kept=keep_last)
        return removed

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _apply(self, entry: ConfigEntry, value: Any, actor: str) -> None:
        entry.previous_value = entry.value
        entry.value = copy.deepcopy(value)
        entry.version += 1
        entry.last_modified = utc_now()
        entry.modified_by = actor

    def _append_event(
        self,
        type_: UpdateType,
        key: str | None,
        old_value: Any,
        new_value: Any,
        version: int,
        actor: str,
        reason: str | None,
        snapshot_id: str | None = None,
    ) -> None:
        self._history.append(
            UpdateEvent(
                event_id=secrets.token_hex(12),
                type=type_,
                key=key,
                old_value=copy.deepcopy(old_value),
                new_value=copy.deepcopy(new_value),
                version=version,
                actor=actor,
                timestamp=utc_now(),
                reason=reason,
                snapshot_id=snapshot_id,
            )
        )
        if self._history_limit and len(self._history) > self._history_limit:
            del self._history[: len(self._history) - self._history_limit]

    def _record_rejection(
        self, exc: ConfigValidationError, actor: str, reason: str | None
    ) -> None:
        self._rejected.append(
            RejectedUpdate(
                key=exc.key,
                value=copy.deepcopy(exc.value),
                rule=exc.rule.value,
                message=exc.message,
                actor=actor,
                timestamp=utc_now(),
                reason=reason,
            )
        )
        logger.warning(
            "config_validation_rejected",
            key=exc.key,
            rule=exc.rule.value,
            error=exc.message,
            actor=actor,
        )

    def _notify(self, key: str, value: Any) -> None:
        with self._lock:
            callbacks = list(self._subscribers.get(key, ()))
            callbacks.extend(self._subscribers.get(WILDCARD, ()))
        for callback in callbacks:
            try:
                callback(key, copy.deepcopy(value))
            except Exception:  # noqa: BLE001
                logger.exception(
                    "config_subscriber_failed",
                    key=key,
                    callback=getattr(callback, "__qualname__", repr(callback)),
                )


def _infer_or_string(key: str, value: Any) -> ValueType:
    if value is None:
        return ValueType.STRING
    try:
        return infer_value_type(value)
    except TypeError as exc:
        raise _type_error(key, value, exc) from exc


def _type_error(key: str, value: Any, exc: TypeError) -> ConfigValidationError:
    return ConfigValidationError(key, ValidationRule.TYPE, value, str(exc))
