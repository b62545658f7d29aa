"""Unit tests for tiergate.runtime.store — versioned configuration store."""

from __future__ import annotations

import json
import threading
from typing import Any

import pytest

from tiergate.core.exceptions import ConfigValidationError, ValidationRule
from tiergate.runtime import (
    ABSENT,
    WILDCARD,
    ConfigStore,
    UpdateType,
    ValidationRules,
    ValueType,
    replay_history,
)


def _store() -> ConfigStore:
    store = ConfigStore()
    store.define(
        "cache.ttl.default",
        300,
        category="cache",
        validation=ValidationRules(required=True, min=60, max=86_400),
    )
    store.define("cache.enabled", True, category="cache")
    store.define(
        "logging.level",
        "info",
        category="logging",
        validation=ValidationRules(allowed_values=["debug", "info", "warning"]),
    )
    return store


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


class TestReads:
    def test_get_missing_returns_default(self) -> None:
        store = ConfigStore()
        assert store.get("nope") is None
        assert store.get("nope", 42) == 42

    def test_get_returns_copy(self) -> None:
        store = ConfigStore()
        store.define("security.allowed_origins", ["a"])
        value = store.get("security.allowed_origins")
        value.append("b")
        assert store.get("security.allowed_origins") == ["a"]

    def test_get_entry_is_a_copy(self) -> None:
        store = _store()
        entry = store.get_entry("cache.ttl.default")
        assert entry is not None
        entry.value = 1
        assert store.get("cache.ttl.default") == 300

    def test_get_by_category(self) -> None:
        store = _store()
        assert store.get_by_category("cache") == {
            "cache.enabled": True,
            "cache.ttl.default": 300,
        }
        assert store.get_by_category("nothing") == {}

    def test_keys_and_categories(self) -> None:
        store = _store()
        assert store.keys() == ["cache.enabled", "cache.ttl.default", "logging.level"]
        assert store.categories() == ["cache", "logging"]
        assert "cache.enabled" in store
        assert len(store) == 3
        assert list(store) == store.keys()

    def test_get_effective_honors_restrictions(self) -> None:
        store = ConfigStore(environment="production")
        store.define("beta.banner", True, environment="staging")
        store.define("pro.quota", 50, tier="pro")
        assert store.get("beta.banner") is True
        assert store.get_effective("beta.banner", False) is False
        assert store.get_effective("beta.banner", False, environment="staging") is True
        assert store.get_effective("pro.quota", 0, tier="pro") == 50
        assert store.get_effective("pro.quota", 0, tier="starter") == 0
        assert store.get_effective("pro.quota", 0) == 50


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


class TestSet:
    def test_new_key_created_with_version_one(self) -> None:
        store = ConfigStore()
        entry = store.set("feature.x", "on", "alice")
        assert entry.version == 1
        assert entry.category == "custom"
        assert entry.value_type == ValueType.STRING
        assert entry.modified_by == "alice"

    def test_version_counts_accepted_mutations(self) -> None:
        store = _store()
        for ttl in (400, 500, 600):
            store.set("cache.ttl.default", ttl, "ops")
        entry = store.get_entry("cache.ttl.default")
        assert entry is not None
        assert entry.version == 4
        assert entry.previous_value == 500

    def test_rejected_update_leaves_entry_unchanged(self) -> None:
        store = _store()
        with pytest.raises(ConfigValidationError) as exc_info:
            store.set("cache.ttl.default", -5, "ops", reason="oops")
        assert exc_info.value.rule == ValidationRule.MIN
        entry = store.get_entry("cache.ttl.default")
        assert entry is not None
        assert entry.value == 300
        assert entry.version == 1

    def test_rejected_update_is_recorded_not_in_history(self) -> None:
        store = _store()
        before = len(store.history())
        with pytest.raises(ConfigValidationError):
            store.set("cache.ttl.default", -5, "ops", reason="oops")
        assert len(store.history()) == before
        rejected = store.rejected_attempts("cache.ttl.default")
        assert len(rejected) == 1
        assert rejected[0].value == -5
        assert rejected[0].rule == "min"
        assert rejected[0].actor == "ops"
        assert rejected[0].reason == "oops"

    def test_type_change_rejected(self) -> None:
        store = _store()
        with pytest.raises(ConfigValidationError) as exc_info:
            store.set("cache.enabled", "yes", "ops")
        assert exc_info.value.rule == ValidationRule.TYPE

    def test_enum_rejected(self) -> None:
        store = _store()
        with pytest.raises(ConfigValidationError) as exc_info:
            store.set("logging.level", "verbose", "ops")
        assert exc_info.value.rule == ValidationRule.ENUM

    def test_unsupported_value_for_new_key(self) -> None:
        store = ConfigStore()
        with pytest.raises(ConfigValidationError) as exc_info:
            store.set("weird", object(), "ops")
        assert exc_info.value.rule == ValidationRule.TYPE
        assert "weird" not in store
        assert len(store.rejected_attempts("weird")) == 1

    def test_history_records_event_fields(self) -> None:
        store = _store()
        store.set("cache.ttl.default", 600, "ops", reason="peak load")
        events = store.history("cache.ttl.default")
        assert [e.type for e in events] == [UpdateType.CREATE, UpdateType.UPDATE]
        last = events[-1]
        assert last.old_value == 300
        assert last.new_value == 600
        assert last.version == 2
        assert last.actor == "ops"
        assert last.reason == "peak load"
        assert last.event_id != events[0].event_id


class TestDefine:
    def test_initial_value_must_satisfy_rules(self) -> None:
        store = ConfigStore()
        with pytest.raises(ConfigValidationError):
            store.define("cache.ttl.default", 10, validation=ValidationRules(min=60))
        assert "cache.ttl.default" not in store
        assert len(store.rejected_attempts()) == 1

    def test_define_existing_key_acts_as_set(self) -> None:
        store = _store()
        entry = store.define("cache.ttl.default", 900, category="other")
        assert entry.version == 2
        assert entry.category == "cache"

    def test_explicit_value_type(self) -> None:
        store = ConfigStore()
        store.define("upstream.url", None, value_type=ValueType.STRING)
        store.set("upstream.url", "https://example.org", "ops")
        assert store.get("upstream.url") == "https://example.org"


class TestDeleteAndRollback:
    def test_delete(self) -> None:
        store = _store()
        assert store.delete("cache.enabled", "ops") is True
        assert "cache.enabled" not in store
        assert store.delete("cache.enabled", "ops") is False
        assert store.history("cache.enabled")[-1].type is UpdateType.DELETE

    def test_rollback_restores_previous_and_bumps_version(self) -> None:
        store = _store()
        store.set("cache.ttl.default", 600, "ops")
        assert store.rollback("cache.ttl.default", "ops") is True
        entry = store.get_entry("cache.ttl.default")
        assert entry is not None
        assert entry.value == 300
        assert entry.version == 3
        assert store.history("cache.ttl.default")[-1].type is UpdateType.ROLLBACK

    def test_rollback_twice_toggles(self) -> None:
        store = _store()
        store.set("cache.ttl.default", 600, "ops")
        store.rollback("cache.ttl.default", "ops")
        store.rollback("cache.ttl.default", "ops")
        assert store.get("cache.ttl.default") == 600

    def test_rollback_without_previous(self) -> None:
        store = _store()
        assert store.rollback("cache.ttl.default", "ops") is False
        assert store.rollback("missing", "ops") is False


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------


class TestSubscribers:
    def test_callbacks_run_in_registration_order(self) -> None:
        store = _store()
        calls: list[tuple[str, Any]] = []
        store.subscribe("cache.ttl.default", lambda k, v: calls.append(("first", v)))
        store.subscribe("cache.ttl.default", lambda k, v: calls.append(("second", v)))
        store.set("cache.ttl.default", 600, "ops")
        assert calls == [("first", 600), ("second", 600)]

    def test_unsubscribe_removes_only_that_registration(self) -> None:
        store = _store()
        calls: list[str] = []
        unsub_a = store.subscribe("cache.enabled", lambda k, v: calls.append("a"))
        store.subscribe("cache.enabled", lambda k, v: calls.append("b"))
        unsub_a()
        unsub_a()
        store.set("cache.enabled", False, "ops")
        assert calls == ["b"]
        assert store.subscriber_count("cache.enabled") == 1

    def test_failing_callback_does_not_block_others(self) -> None:
        store = _store()
        seen: list[Any] = []

        def boom(key: str, value: Any) -> None:
            raise RuntimeError("subscriber bug")

        store.subscribe("cache.enabled", boom)
        store.subscribe("cache.enabled", lambda k, v: seen.append(v))
        store.set("cache.enabled", False, "ops")
        assert seen == [False]
        assert store.get("cache.enabled") is False

    def test_not_notified_on_rejection(self) -> None:
        store = _store()
        seen: list[Any] = []
        store.subscribe("cache.ttl.default", lambda k, v: seen.append(v))
        with pytest.raises(ConfigValidationError):
            store.set("cache.ttl.default", 1, "ops")
        assert seen == []

    def test_wildcard_and_delete(self) -> None:
        store = _store()
        seen: list[tuple[str, Any]] = []
        store.subscribe(WILDCARD, lambda k, v: seen.append((k, v)))
        store.set("logging.level", "debug", "ops")
        store.delete("cache.enabled", "ops")
        assert seen == [("logging.level", "debug"), ("cache.enabled", ABSENT)]

    @pytest.mark.parametrize("redefine", [False, True])
    def test_callbacks_run_without_store_lock(self, redefine: bool) -> None:
        store = _store()
        blocked: list[bool] = []

        def read_from_other_thread(key: str, value: Any) -> None:
            reader = threading.Thread(target=store.get, args=(key,))
            reader.start()
            reader.join(timeout=2)
            blocked.append(reader.is_alive())

        store.subscribe("cache.ttl.default", read_from_other_thread)
        if redefine:
            store.define("cache.ttl.default", 600, category="cache")
        else:
            store.set("cache.ttl.default", 600, "ops")
        assert blocked == [False]

    def test_clear_subscribers(self) -> None:
        store = _store()
        store.subscribe("cache.enabled", lambda k, v: None)
        store.clear_subscribers()
        assert store.subscriber_count("cache.enabled") == 0


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


class TestSnapshots:
    def test_snapshot_independent_of_later_changes(self) -> None:
        store = _store()
        snap = store.snapshot("before-change", "baseline", actor="ops")
        store.set("cache.ttl.default", 900, "ops")
        assert snap.value("cache.ttl.default") == 300
        assert len(snap) == 3
        assert snap.summary()["name"] == "before-change"

    def test_restore_returns_exact_entries(self) -> None:
        store = _store()
        snap = store.snapshot("s1")
        captured = snap.entries()
        store.set("cache.ttl.default", 900, "ops")
        store.set("new.key", 1, "ops")
        store.delete("cache.enabled", "ops")

        assert store.restore(snap.snapshot_id, "ops") is True
        assert store.keys() == sorted(captured)
        for key, entry in captured.items():
            live = store.get_entry(key)
            assert live is not None
            assert live.value == entry.value
            assert live.version == entry.version

    def test_restore_notifies_changed_keys_and_logs_event(self) -> None:
        store = _store()
        snap = store.snapshot("s1")
        store.set("cache.ttl.default", 900, "ops")
        seen: list[tuple[str, Any]] = []
        store.subscribe(WILDCARD, lambda k, v: seen.append((k, v)))
        store.restore(snap.snapshot_id, "ops", reason="revert")
        assert seen == [("cache.ttl.default", 300)]
        restores = [e for e in store.history() if e.type is UpdateType.RESTORE]
        assert [e.key for e in restores] == [None, "cache.ttl.default"]
        assert all(e.snapshot_id == snap.snapshot_id for e in restores)
        assert restores[1].old_value == 900
        assert restores[1].new_value == 300
        assert restores[1].version == 1

    def test_restore_unknown_snapshot(self) -> None:
        store = _store()
        assert store.restore("does-not-exist", "ops") is False
        assert store.get("cache.ttl.default") == 300

    def test_list_get_delete(self) -> None:
        store = _store()
        a = store.snapshot("a")
        b = store.snapshot("b")
        assert {s.snapshot_id for s in store.list_snapshots()} == {a.snapshot_id, b.snapshot_id}
        assert store.get_snapshot(a.snapshot_id) is a
        assert store.delete_snapshot(a.snapshot_id) is True
        assert store.delete_snapshot(a.snapshot_id) is False
        assert store.get_snapshot(a.snapshot_id) is None


# ---------------------------------------------------------------------------
# Export / import
# ---------------------------------------------------------------------------


class TestExportImport:
    def test_round_trip_into_empty_store(self) -> None:
        source = _store()
        target = ConfigStore()
        assert target.import_entries(source.export_entries(), "ops") is True
        assert target.keys() == source.keys()
        entry = target.get_entry("cache.ttl.default")
        assert entry is not None
        assert entry.category == "cache"
        assert entry.validation is not None
        assert entry.validation.min == 60
        with pytest.raises(ConfigValidationError):
            target.set("cache.ttl.default", 10, "ops")

    def test_import_into_existing_goes_through_set(self) -> None:
        store = _store()
        doc = {
            "format_version": 1,
            "entries": [
                {"key": "cache.ttl.default", "value": 1200, "value_type": "number"},
            ],
        }
        assert store.import_entries(doc, "ops") is True
        entry = store.get_entry("cache.ttl.default")
        assert entry is not None
        assert entry.value == 1200
        assert entry.version == 2

    def test_invalid_entries_rejected_individually(self) -> None:
        store = _store()
        doc = {
            "entries": [
                {"key": "cache.ttl.default", "value": -5, "value_type": "number"},
                {"value": 3},
                "not-an-object",
                {"key": "cache.enabled", "value": False, "value_type": "boolean"},
            ],
        }
        assert store.import_entries(json.dumps(doc), "ops") is True
        assert store.get("cache.ttl.default") == 300
        assert store.get("cache.enabled") is False
        assert len(store.rejected_attempts("cache.ttl.default")) == 1

    @pytest.mark.parametrize(
        "payload",
        [
            "{not json",
            json.dumps({"entries": "nope"}),
            json.dumps({"format_version": 9, "entries": []}),
        ],
    )
    def test_malformed_document(self, payload: str) -> None:
        store = _store()
        assert store.import_entries(payload, "ops") is False
        assert store.get("cache.ttl.default") == 300


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


class TestHistory:
    def test_replay_reconstructs_current_state(self) -> None:
        store = _store()
        store.set("cache.ttl.default", 600, "ops")
        store.set("cache.ttl.default", 700, "ops")
        store.rollback("cache.ttl.default", "ops")
        store.set("logging.level", "debug", "ops")

        for key in store.keys():
            entry = store.get_entry(key)
            assert entry is not None
            assert replay_history(store.history(), key) == (entry.value, entry.version)

    def test_replay_after_restore(self) -> None:
        store = ConfigStore()
        store.set("k", 1, "ops")
        snap = store.snapshot("one")
        store.set("k", 2, "ops")
        store.set("k", 3, "ops")
        store.set("added", True, "ops")
        store.restore(snap.snapshot_id, "ops")

        assert replay_history(store.history(), "k") == (1, 1)
        assert replay_history(store.history(), "added") == (ABSENT, 0)
        store.set("k", 4, "ops")
        assert replay_history(store.history(), "k") == (4, 2)

    def test_replay_after_restoring_empty_snapshot(self) -> None:
        store = ConfigStore()
        empty = store.snapshot("empty")
        store.set("k", 1, "ops")
        store.restore(empty.snapshot_id, "ops")
        assert "k" not in store
        assert replay_history(store.history(), "k") == (ABSENT, 0)

    def test_restore_logs_version_only_changes(self) -> None:
        store = ConfigStore()
        store.set("k", 1, "ops")
        snap = store.snapshot("v1")
        store.set("k", 2, "ops")
        store.set("k", 1, "ops")
        seen: list[Any] = []
        store.subscribe("k", lambda k, v: seen.append(v))
        store.restore(snap.snapshot_id, "ops")
        assert seen == []
        assert replay_history(store.history(), "k") == (1, 1)

    def test_replay_after_delete(self) -> None:
        store = _store()
        store.delete("cache.enabled", "ops")
        assert replay_history(store.history(), "cache.enabled") == (ABSENT, 0)

    def test_history_limit(self) -> None:
        store = ConfigStore(history_limit=2)
        for i in range(5):
            store.set("counter", i, "ops")
        assert [e.new_value for e in store.history()] == [3, 4]

    def test_prune_history(self) -> None:
        store = _store()
        store.set("cache.ttl.default", 600, "ops")
        with pytest.raises(ConfigValidationError):
            store.set("cache.ttl.default", 1, "ops")
        removed = store.prune_history(keep_last=1)
        assert removed == 3
        assert len(store.history()) == 1
        assert store.rejected_attempts() == []


class TestConcurrency:
    def test_concurrent_sets_count_every_version(self) -> None:
        store = ConfigStore()
        store.define("hits", 0)

        def worker(n: int) -> None:
            for i in range(50):
                store.set("hits", n * 100 + i, f"worker-{n}")

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        entry = store.get_entry("hits")
        assert entry is not None
        assert entry.version == 201
        assert replay_history(store.history(), "hits") == (entry.value, entry.version)
