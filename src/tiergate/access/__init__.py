"""
Tier-based feature access.

Access check::

    >>> from tiergate.access import (
    ...     AccessController, ActorContext, StaticUsageOracle,
    ...     default_catalog, default_registry,
    ... )
    >>> controller = AccessController(
    ...     default_registry(), default_catalog(), usage_oracle=StaticUsageOracle()
    ... )
    >>> ctx = ActorContext(actor_id="u-1", tier="pro")
    >>> controller.check_access("sso-integration", ctx).reason
    <ReasonCode.TIER_INSUFFICIENT: 'tier_insufficient'>
"""

from __future__ import annotations

from tiergate.access.advisor import LimitPressure, Recommendation, UpgradeAdvisor
from tiergate.access.context import ActorContext
from tiergate.access.controller import AccessController, AccessDecision, ReasonCode
from tiergate.access.features import (
    DEFAULT_FEATURES,
    FeatureCategory,
    FeatureDefinition,
    FeatureRegistry,
    default_registry,
)
from tiergate.access.guard import require_feature
from tiergate.access.tiers import (
    DEFAULT_TIERS,
    TIER_ORDER,
    SubscriptionStatus,
    TierCatalog,
    TierDefinition,
    TierLevel,
    TierPricing,
    TierRecommendation,
    TierRequirements,
    default_catalog,
)
from tiergate.access.usage import StaticUsageOracle, UsageOracle

__all__ = [
    "AccessController",
    "AccessDecision",
    "ActorContext",
    "DEFAULT_FEATURES",
    "DEFAULT_TIERS",
    "FeatureCategory",
    "FeatureDefinition",
    "FeatureRegistry",
    "LimitPressure",
    "ReasonCode",
    "Recommendation",
    "StaticUsageOracle",
    "SubscriptionStatus",
    "TIER_ORDER",
    "TierCatalog",
    "TierDefinition",
    "TierLevel",
    "TierPricing",
    "TierRecommendation",
    "TierRequirements",
    "UpgradeAdvisor",
    "UsageOracle",
    "default_catalog",
    "default_registry",
    "require_feature",
]
