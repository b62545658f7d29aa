"""AccessController — decides whether an actor may use a feature, and why not.

Evaluation order (first failing check wins):
  1. Existence            — unknown feature id
  2. Deprecation          — feature retired
  3. Tier sufficiency     — actor tier >= required tier
  4. Subscription status  — expired / cancelled subscriptions lapse
  5. Beta gating          — explicit grant, beta participant, or enterprise
  6. Global toggle        — ``features.<id>.enabled`` in the config store
  7. Dependencies         — every dependency must itself be granted
  8. Tier-catalog toggle  — per-feature value ``False`` at the actor's tier
  9. Usage limit          — consumption below the tier ceiling
 10. Granted

Denial is a normal outcome, never an exception.  Every denial carries at
least one human-readable suggestion.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import structlog

from tiergate.access.context import ActorContext
from tiergate.access.features import FeatureDefinition, FeatureRegistry
from tiergate.access.tiers import TierCatalog, TierLevel, is_disabled_value
from tiergate.access.usage import UsageOracle
from tiergate.core.constants import feature_toggle_key

if TYPE_CHECKING:
    from tiergate.runtime.store import ConfigStore

logger = structlog.get_logger()


class ReasonCode(StrEnum):
    """Stable machine-readable denial reasons."""

    UNKNOWN_FEATURE = "unknown_feature"
    FEATURE_DISABLED = "feature_disabled"
    TIER_INSUFFICIENT = "tier_insufficient"
    BETA_ACCESS_REQUIRED = "beta_access_required"
    DEPENDENCY_MISSING = "dependency_missing"
    LIMIT_EXCEEDED = "limit_exceeded"
    USAGE_UNAVAILABLE = "usage_unavailable"


@dataclass(frozen=True)
class AccessDecision:
    """Outcome of one access check."""

    feature_id: str
    granted: bool
    reason: ReasonCode | None = None
    message: str = ""
    upgrade_to: TierLevel | None = None
    current_usage: int | None = None
    limit: int | None = None
    missing_dependency: str | None = None
    suggestions: tuple[str, ...] = ()

    def __bool__(self) -> bool:
        return self.granted

    def to_dict(self) -> dict[str, Any]:
        return {
            "feature_id": self.feature_id,
            "granted": self.granted,
            "reason": self.reason.value if self.reason else None,
            "message": self.message,
            "upgrade_to": self.upgrade_to.value if self.upgrade_to else None,
            "current_usage": self.current_usage,
            "limit": self.limit,
            "missing_dependency": self.missing_dependency,
            "suggestions": list(self.suggestions),
        }


def _grant(feature_id: str) -> AccessDecision:
    return AccessDecision(feature_id=feature_id, granted=True)


def _deny(
    feature_id: str,
    reason: ReasonCode,
    message: str,
    suggestions: list[str],
    **extra: Any,
) -> AccessDecision:
    return AccessDecision(
        feature_id=feature_id,
        granted=False,
        reason=reason,
        message=message,
        suggestions=tuple(suggestions),
        **extra,
    )


def _upgrade_hint(tier: TierLevel) -> str:
    return f"Upgrade to the {tier.value} tier to unlock this feature."


class AccessController:
    """Evaluates feature access against a registry, a tier catalog, the
    configuration store's global toggles and a usage oracle.

    ``check_access`` is pure with respect to engine state: it reads the
    store and queries the oracle but changes nothing, so it is safe to call
    repeatedly (for instance to render disabled UI state).
    """

    def __init__(
        self,
        registry: FeatureRegistry,
        catalog: TierCatalog,
        *,
        store: ConfigStore | None = None,
        usage_oracle: UsageOracle | None = None,
    ) -> None:
        self._registry = registry
        self._catalog = catalog
        self._store = store
        self._usage_oracle = usage_oracle

    @property
    def registry(self) -> FeatureRegistry:
        return self._registry

    @property
    def catalog(self) -> TierCatalog:
        return self._catalog

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def check_access(self, feature_id: str, ctx: ActorContext) -> AccessDecision:
        decision = self._evaluate(feature_id, ctx)
        if not decision.granted:
            logger.debug(
                "access_denied",
                feature_id=feature_id,
                actor_id=ctx.actor_id,
                tier=ctx.tier.value,
                reason=decision.reason.value if decision.reason else None,
            )
        return decision

    def get_available_features(self, ctx: ActorContext) -> list[str]:
        """Every feature id for which ``check_access`` grants access."""
        return [fid for fid in self._registry.ids() if self.check_access(fid, ctx).granted]

    def list_features(self, ctx: ActorContext) -> dict[str, AccessDecision]:
        return {fid: self.check_access(fid, ctx) for fid in self._registry.ids()}

    def explain(self, feature_id: str, ctx: ActorContext) -> dict[str, Any]:
        """Decision plus the inputs it was derived from, for display surfaces."""
        result = self.check_access(feature_id, ctx).to_dict()
        feature = self._registry.get(feature_id)
        result["actor"] = ctx.to_dict()
        result["feature"] = feature.to_dict() if feature is not None else None
        result["required_by"] = self._registry.dependents_of(feature_id)
        return result

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def _evaluate(self, feature_id: str, ctx: ActorContext) -> AccessDecision:
        # 1. Existence
        feature = self._registry.get(feature_id)
        if feature is None:
            return _deny(
                feature_id,
                ReasonCode.UNKNOWN_FEATURE,
                f"Unknown feature {feature_id!r}.",
                ["Check the feature id against the feature registry."],
            )

        # 2. Deprecation
        if feature.deprecated:
            if feature.replaced_by:
                hint = f"Use {feature.replaced_by!r} instead."
            else:
                hint = "This feature has been retired; no replacement is available."
            return _deny(
                feature_id,
                ReasonCode.FEATURE_DISABLED,
                f"{feature.name} is deprecated.",
                [hint],
            )

        # 3. Tier sufficiency
        if ctx.tier < feature.required_tier:
            return _deny(
                feature_id,
                ReasonCode.TIER_INSUFFICIENT,
                f"{feature.name} requires the {feature.required_tier.value} tier "
                f"(current: {ctx.tier.value}).",
                [_upgrade_hint(feature.required_tier)],
                upgrade_to=feature.required_tier,
            )

        # 4. Subscription status
        if ctx.subscription_status.lapsed:
            return _deny(
                feature_id,
                ReasonCode.TIER_INSUFFICIENT,
                f"Subscription is {ctx.subscription_status.value}; "
                f"{ctx.tier.value} tier features are unavailable.",
                ["Renew your subscription to restore access."],
            )

        # 5. Beta gating
        if feature.beta and not self._has_beta_access(feature, ctx):
            return _deny(
                feature_id,
                ReasonCode.BETA_ACCESS_REQUIRED,
                f"{feature.name} is in beta.",
                [
                    "Join the beta program to try this feature.",
                    _upgrade_hint(TierLevel.ENTERPRISE),
                ],
            )

        # 6. Global toggle
        if self._globally_disabled(feature_id, ctx):
            return _deny(
                feature_id,
                ReasonCode.FEATURE_DISABLED,
                f"{feature.name} is currently disabled.",
                [f"Ask an administrator to enable {feature_id!r}."],
            )

        # 7. Dependencies
        for dep_id in feature.dependencies:
            dep = self._evaluate(dep_id, ctx)
            if not dep.granted:
                return _deny(
                    feature_id,
                    ReasonCode.DEPENDENCY_MISSING,
                    f"{feature.name} requires {dep_id!r}: {dep.message}",
                    [f"Enable dependency {dep_id!r}.", *dep.suggestions],
                    missing_dependency=dep_id,
                    upgrade_to=dep.upgrade_to,
                )

        # 8. Tier-catalog toggle
        tier_def = self._catalog.get(ctx.tier)
        value = tier_def.feature_value(feature_id)
        if is_disabled_value(value):
            target = self._catalog.lowest_tier_enabling(feature_id, above=ctx.tier)
            return _deny(
                feature_id,
                ReasonCode.TIER_INSUFFICIENT,
                f"{feature.name} is not included in the {ctx.tier.value} tier.",
                [_upgrade_hint(target)]
                if target is not None
                else ["This feature is not offered on any tier; contact support."],
                upgrade_to=target,
            )

        # 9. Usage limit
        ceiling = self._catalog.ceiling_for(ctx.tier, feature_id, feature.limit_key)
        if ceiling is not None:
            return self._check_usage(feature, ctx, ceiling)

        return _grant(feature_id)

    def _has_beta_access(self, feature: FeatureDefinition, ctx: ActorContext) -> bool:
        return (
            ctx.has_grant(feature.id)
            or ctx.is_beta_participant
            or ctx.tier == TierLevel.ENTERPRISE
        )

    def _globally_disabled(self, feature_id: str, ctx: ActorContext) -> bool:
        if self._store is None:
            return False
        enabled = self._store.get_effective(
            feature_toggle_key(feature_id), True, tier=ctx.tier.value
        )
        return enabled is False

    def _check_usage(
        self, feature: FeatureDefinition, ctx: ActorContext, ceiling: int
    ) -> AccessDecision:
        usage = self._query_usage(feature.id, ctx)
        if usage is None:
            return _deny(
                feature.id,
                ReasonCode.USAGE_UNAVAILABLE,
                f"Current usage of {feature.name} could not be determined.",
                ["Try again shortly; usage data is temporarily unavailable."],
                limit=ceiling,
            )
        if usage >= ceiling:
            target = self._catalog.lowest_tier_allowing_usage(
                feature.id, usage, ctx.tier, feature.limit_key
            )
            suggestions = [
                f"Upgrade to the {target.value} tier to raise this limit."
                if target is not None
                else "Reduce usage or contact support to raise this limit."
            ]
            return _deny(
                feature.id,
                ReasonCode.LIMIT_EXCEEDED,
                f"{feature.name} limit reached ({usage}/{ceiling}).",
                suggestions,
                upgrade_to=target,
                current_usage=usage,
                limit=ceiling,
            )
        return _grant(feature.id)

    def _query_usage(self, feature_id: str, ctx: ActorContext) -> int | None:
        if self._usage_oracle is None:
            logger.warning("usage_oracle_missing", feature_id=feature_id)
            return None
        try:
            usage = self._usage_oracle.get_current_usage(feature_id, ctx)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "usage_oracle_failed",
                feature_id=feature_id,
                actor_id=ctx.actor_id,
                error=str(exc),
            )
            return None
        if usage is None:
            logger.warning("usage_oracle_unknown", feature_id=feature_id, actor_id=ctx.actor_id)
        return usage
