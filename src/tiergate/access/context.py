"""Actor context — the identity/tier bundle presented to an access check."""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from tiergate.access.tiers import SubscriptionStatus, TierLevel


@dataclass(frozen=True)
class ActorContext:
    """Already-authenticated actor as seen by the access controller.

    Attributes:
        feature_grants: Explicit per-feature grants (e.g. beta opt-in).
        metadata: Free-form attributes; ``beta_participant=True`` opts the
            actor into every beta feature.
    """

    actor_id: str
    tier: TierLevel
    organization_id: str | None = None
    feature_grants: frozenset[str] = frozenset()
    subscription_status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "tier", TierLevel(self.tier))
        object.__setattr__(
            self, "subscription_status", SubscriptionStatus(self.subscription_status)
        )
        object.__setattr__(self, "feature_grants", frozenset(self.feature_grants))
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @property
    def is_beta_participant(self) -> bool:
        return bool(self.metadata.get("beta_participant", False))

    def has_grant(self, feature_id: str) -> bool:
        return feature_id in self.feature_grants

    def with_tier(self, tier: TierLevel | str) -> ActorContext:
        return dataclasses.replace(self, tier=TierLevel(tier))

    def to_dict(self) -> dict[str, Any]:
        return {
            "actor_id": self.actor_id,
            "tier": self.tier.value,
            "organization_id": self.organization_id,
            "feature_grants": sorted(self.feature_grants),
            "subscription_status": self.subscription_status.value,
        }
