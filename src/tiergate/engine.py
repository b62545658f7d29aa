"""
GovernanceEngine — wires the configuration store and the access layer.

Lifecycle::

    engine = init_engine(load_settings())     # once, at process start
    get_engine().check_access("payments", ctx)
    shutdown_engine()                          # at process exit / in tests

Construction order:
  1. ConfigStore for the configured environment
  2. Default entries + one ``features.<id>.enabled`` toggle per feature
  3. Upgrade threshold from settings (through ``set``)
  4. Environment preset (through ``set``)
  5. AccessController and UpgradeAdvisor over the same store

The registry and catalog are validated (cycle check included) before any of
this happens, so a bad feature graph fails at startup.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping

import structlog

from tiergate.access.advisor import Recommendation, UpgradeAdvisor
from tiergate.access.context import ActorContext
from tiergate.access.controller import AccessController, AccessDecision
from tiergate.access.features import FeatureRegistry, default_registry
from tiergate.access.tiers import TierCatalog, default_catalog
from tiergate.access.usage import StaticUsageOracle, UsageOracle
from tiergate.core.config import EngineSettings
from tiergate.core.constants import SYSTEM_ACTOR, UPGRADE_THRESHOLD_KEY, feature_toggle_key
from tiergate.core.exceptions import ConfigValidationError, TiergateError
from tiergate.runtime.presets import apply_environment_preset, load_defaults
from tiergate.runtime.store import ConfigStore
from tiergate.runtime.values import ValueType

logger = structlog.get_logger()


class GovernanceEngine:
    """One configuration store plus the access controller and advisor over it."""

    def __init__(
        self,
        settings: EngineSettings | None = None,
        *,
        registry: FeatureRegistry | None = None,
        catalog: TierCatalog | None = None,
        usage_oracle: UsageOracle | None = None,
        store: ConfigStore | None = None,
    ) -> None:
        self.settings = settings or EngineSettings()
        self.registry = registry if registry is not None else default_registry()
        self.catalog = catalog if catalog is not None else default_catalog()
        self.usage_oracle = usage_oracle if usage_oracle is not None else StaticUsageOracle()
        self.store = store if store is not None else ConfigStore(
            environment=self.settings.environment,
            history_limit=self.settings.store.history_limit,
        )
        self._closed = False

        self._seed_store()

        self.controller = AccessController(
            self.registry,
            self.catalog,
            store=self.store,
            usage_oracle=self.usage_oracle,
        )
        self.advisor = UpgradeAdvisor(
            self.catalog,
            store=self.store,
            default_threshold=self.settings.advisor.upgrade_threshold,
        )
        logger.info(
            "engine_started",
            environment=self.settings.environment,
            features=len(self.registry),
            entries=len(self.store),
        )

    def _seed_store(self) -> None:
        load_defaults(self.store)
        for feature in self.registry:
            key = feature_toggle_key(feature.id)
            if key not in self.store:
                self.store.define(
                    key,
                    True,
                    value_type=ValueType.BOOLEAN,
                    category="features",
                    description=f"Global switch for {feature.name}",
                )

        threshold = self.settings.advisor.upgrade_threshold
        if self.store.get(UPGRADE_THRESHOLD_KEY) != threshold:
            try:
                self.store.set(UPGRADE_THRESHOLD_KEY, threshold, SYSTEM_ACTOR, reason="settings")
            except ConfigValidationError:
                logger.warning("upgrade_threshold_rejected", value=threshold)

        if self.settings.store.apply_environment_preset:
            apply_environment_preset(self.store, self.settings.environment)

    # ------------------------------------------------------------------
    # Access API
    # ------------------------------------------------------------------

    def check_access(self, feature_id: str, ctx: ActorContext) -> AccessDecision:
        return self.controller.check_access(feature_id, ctx)

    def get_available_features(self, ctx: ActorContext) -> list[str]:
        return self.controller.get_available_features(ctx)

    def recommend_upgrade(
        self, ctx: ActorContext, usage: Mapping[str, int]
    ) -> Recommendation | None:
        return self.advisor.recommend_upgrade(ctx, usage)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Release subscribers and snapshots.  The engine is unusable afterwards."""
        if self._closed:
            return
        self.store.clear_subscribers()
        for snap in self.store.list_snapshots():
            self.store.delete_snapshot(snap.snapshot_id)
        self._closed = True
        logger.info("engine_stopped")


# ---------------------------------------------------------------------------
# Process-wide instance
# ---------------------------------------------------------------------------

_engine: GovernanceEngine | None = None
_engine_lock = threading.Lock()


def init_engine(
    settings: EngineSettings | None = None,
    **kwargs: object,
) -> GovernanceEngine:
    """Create the process-wide engine.

    Raises:
        TiergateError: if an engine is already running; call
            ``shutdown_engine()`` first.
    """
    global _engine  # noqa: PLW0603
    with _engine_lock:
        if _engine is not None:
            raise TiergateError("Governance engine already initialized")
        _engine = GovernanceEngine(settings, **kwargs)  # type: ignore[arg-type]
        return _engine


def get_engine() -> GovernanceEngine:
    """Return the process-wide engine.

    Raises:
        TiergateError: if ``init_engine()`` has not been called.
    """
    if _engine is None:
        raise TiergateError("Governance engine not initialized; call init_engine() first")
    return _engine


def shutdown_engine() -> None:
    """Close and discard the process-wide engine.  Safe to call when none exists."""
    global _engine  # noqa: PLW0603
    with _engine_lock:
        if _engine is not None:
            _engine.close()
            _engine = None
