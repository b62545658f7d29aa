"""Unit tests for tiergate.engine — wiring and process-wide lifecycle."""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from tiergate.access import ActorContext, ReasonCode, StaticUsageOracle, TierLevel
from tiergate.core.config import AdvisorSettings, EngineSettings, StoreSettings
from tiergate.core.constants import UPGRADE_THRESHOLD_KEY, feature_toggle_key
from tiergate.core.exceptions import TiergateError
from tiergate.engine import GovernanceEngine, get_engine, init_engine, shutdown_engine
from tiergate.runtime import ConfigStore


@pytest.fixture(autouse=True)
def _no_engine() -> Iterator[None]:
    shutdown_engine()
    yield
    shutdown_engine()


class TestGovernanceEngine:
    def test_seeds_defaults_and_toggles(self) -> None:
        engine = GovernanceEngine()
        assert engine.store.get("api.base_path") == "/api/v1"
        for feature in engine.registry:
            assert engine.store.get(feature_toggle_key(feature.id)) is True
        assert "features" in engine.store.categories()

    def test_environment_preset_applied(self) -> None:
        engine = GovernanceEngine(EngineSettings(environment="production"))
        assert engine.store.environment == "production"
        assert engine.store.get("cache.ttl.default") == 900
        assert engine.store.get("logging.level") == "warning"

    def test_preset_can_be_skipped(self) -> None:
        settings = EngineSettings(
            environment="production", store=StoreSettings(apply_environment_preset=False)
        )
        assert GovernanceEngine(settings).store.get("cache.ttl.default") == 300

    def test_threshold_from_settings(self) -> None:
        settings = EngineSettings(advisor=AdvisorSettings(upgrade_threshold=0.5))
        engine = GovernanceEngine(settings)
        assert engine.store.get(UPGRADE_THRESHOLD_KEY) == 0.5
        assert engine.advisor.threshold == 0.5

    def test_existing_store_values_kept(self) -> None:
        store = ConfigStore()
        store.define(feature_toggle_key("payments"), False)
        engine = GovernanceEngine(store=store)
        assert engine.store is store
        d = engine.check_access("payments", ActorContext(actor_id="u", tier="pro"))
        assert d.reason is ReasonCode.FEATURE_DISABLED

    def test_runtime_toggle_takes_effect(self) -> None:
        engine = GovernanceEngine()
        ctx = ActorContext(actor_id="u", tier="pro")
        assert "payments" in engine.get_available_features(ctx)
        engine.store.set(feature_toggle_key("payments"), False, "ops", reason="incident")
        assert "payments" not in engine.get_available_features(ctx)

    def test_usage_oracle_wired(self) -> None:
        engine = GovernanceEngine(usage_oracle=StaticUsageOracle({"basic-forms": 10}))
        d = engine.check_access("basic-forms", ActorContext(actor_id="u", tier="starter"))
        assert d.reason is ReasonCode.LIMIT_EXCEEDED

    def test_recommend_upgrade(self) -> None:
        rec = GovernanceEngine().recommend_upgrade(
            ActorContext(actor_id="u", tier="starter"), {"form-count": 10}
        )
        assert rec is not None
        assert rec.recommended_tier is TierLevel.PRO

    def test_close(self) -> None:
        engine = GovernanceEngine()
        engine.store.subscribe("*", lambda k, v: None)
        engine.store.snapshot("baseline")
        engine.close()
        engine.close()
        assert engine.closed
        assert engine.store.subscriber_count("*") == 0
        assert engine.store.list_snapshots() == []


class TestEngineLifecycle:
    def test_get_before_init(self) -> None:
        with pytest.raises(TiergateError, match="not initialized"):
            get_engine()

    def test_init_get_shutdown(self) -> None:
        engine = init_engine(EngineSettings(environment="staging"))
        assert get_engine() is engine
        shutdown_engine()
        assert engine.closed
        with pytest.raises(TiergateError):
            get_engine()

    def test_double_init_rejected(self) -> None:
        init_engine()
        with pytest.raises(TiergateError, match="already initialized"):
            init_engine()

    def test_shutdown_without_engine(self) -> None:
        shutdown_engine()
