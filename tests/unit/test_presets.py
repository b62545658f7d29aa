"""Unit tests for default configuration entries and environment presets."""

from __future__ import annotations

import pytest

from tiergate.core.exceptions import ConfigValidationError
from tiergate.runtime import ConfigStore
from tiergate.runtime.presets import (
    DEFAULT_ENTRIES,
    ENVIRONMENT_PRESETS,
    EnvironmentPreset,
    apply_environment_preset,
    load_defaults,
)


def _defaults() -> ConfigStore:
    store = ConfigStore()
    load_defaults(store)
    return store


class TestLoadDefaults:
    def test_every_default_declared(self) -> None:
        store = _defaults()
        assert store.keys() == sorted(d.key for d in DEFAULT_ENTRIES)
        assert store.get("cache.ttl.default") == 300
        assert store.get("upgrade.usage_threshold") == 0.8

    def test_existing_keys_untouched(self) -> None:
        store = ConfigStore()
        store.define("cache.ttl.default", 120)
        load_defaults(store)
        entry = store.get_entry("cache.ttl.default")
        assert entry is not None
        assert entry.value == 120
        assert entry.version == 1

    def test_default_rules_enforced(self) -> None:
        store = _defaults()
        with pytest.raises(ConfigValidationError):
            store.set("cache.ttl.default", -5, "ops")
        with pytest.raises(ConfigValidationError):
            store.set("api.base_path", "no-leading-slash", "ops")
        with pytest.raises(ConfigValidationError):
            store.set("logging.level", "trace", "ops")


class TestEnvironmentPresets:
    @pytest.mark.parametrize("environment", sorted(ENVIRONMENT_PRESETS))
    def test_presets_apply_cleanly(self, environment: str) -> None:
        store = _defaults()
        assert apply_environment_preset(store, environment) == []
        for key, value in ENVIRONMENT_PRESETS[environment].values.items():
            assert store.get(key) == value

    def test_preset_goes_through_set(self) -> None:
        store = _defaults()
        apply_environment_preset(store, "production")
        last = store.history("cache.ttl.default")[-1]
        assert last.new_value == 900
        assert last.reason == "preset:production"

    def test_unknown_environment_applies_nothing(self) -> None:
        store = _defaults()
        before = len(store.history())
        assert apply_environment_preset(store, "moon") == []
        assert len(store.history()) == before

    def test_invalid_preset_value_reported(self) -> None:
        store = _defaults()
        presets = {"qa": EnvironmentPreset("qa", {"cache.ttl.default": 5, "cache.enabled": False})}
        assert apply_environment_preset(store, "qa", presets=presets) == ["cache.ttl.default"]
        assert store.get("cache.ttl.default") == 300
        assert store.get("cache.enabled") is False
