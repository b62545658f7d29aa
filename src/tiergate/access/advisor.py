"""
UpgradeAdvisor — proposes the next tier when usage approaches its limits.

For every numeric limit of the actor's current tier, ``usage / limit`` is
compared against the threshold (``upgrade.usage_threshold`` in the config
store, default 0.8).  If any ratio exceeds it, the next tier in the fixed
ordering is recommended, with its new capabilities and raised limits
listed as benefits.  Unlimited (-1) and zero limits are never pressured.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog

from tiergate.access.context import ActorContext
from tiergate.access.tiers import TierCatalog, TierLevel, format_limit
from tiergate.core.constants import DEFAULT_UPGRADE_THRESHOLD, UPGRADE_THRESHOLD_KEY

if TYPE_CHECKING:
    from tiergate.runtime.store import ConfigStore

logger = structlog.get_logger()


@dataclass(frozen=True)
class LimitPressure:
    """One limit whose usage ratio crossed the threshold."""

    limit_name: str
    usage: int
    limit: int

    @property
    def ratio(self) -> float:
        return self.usage / self.limit

    def describe(self) -> str:
        return (
            f"{self.limit_name}: {self.usage:,} of {format_limit(self.limit)} "
            f"used ({self.ratio:.0%})"
        )


@dataclass(frozen=True)
class Recommendation:
    current_tier: TierLevel
    recommended_tier: TierLevel
    triggers: tuple[LimitPressure, ...]
    benefits: tuple[str, ...]
    rationale: str
    pricing: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_tier": self.current_tier.value,
            "recommended_tier": self.recommended_tier.value,
            "triggers": [
                {
                    "limit": t.limit_name,
                    "usage": t.usage,
                    "max": t.limit,
                    "ratio": round(t.ratio, 4),
                }
                for t in self.triggers
            ],
            "benefits": list(self.benefits),
            "rationale": self.rationale,
            "pricing": self.pricing,
        }


class UpgradeAdvisor:
    def __init__(
        self,
        catalog: TierCatalog,
        *,
        store: ConfigStore | None = None,
        default_threshold: float = DEFAULT_UPGRADE_THRESHOLD,
    ) -> None:
        self._catalog = catalog
        self._store = store
        self._default_threshold = default_threshold

    @property
    def threshold(self) -> float:
        """Current threshold; a non-numeric or out-of-range store value falls back."""
        if self._store is None:
            return self._default_threshold
        value = self._store.get(UPGRADE_THRESHOLD_KEY, self._default_threshold)
        if isinstance(value, bool) or not isinstance(value, int | float) or not 0 < value <= 1:
            logger.warning("upgrade_threshold_invalid", value=value)
            return self._default_threshold
        return float(value)

    def recommend_upgrade(
        self, ctx: ActorContext, usage: Mapping[str, int]
    ) -> Recommendation | None:
        """Recommend the next tier if any limit is under pressure, else None."""
        current = self._catalog.get(ctx.tier)
        next_level = ctx.tier.next_tier()
        if next_level is None:
            return None

        threshold = self.threshold
        triggers = tuple(
            LimitPressure(name, usage[name], limit)
            for name, limit in sorted(current.limits.items())
            if limit > 0 and name in usage and usage[name] / limit > threshold
        )
        if not triggers:
            return None

        target = self._catalog.get(next_level)
        comparison = self._catalog.compare(current.level, target.level)
        benefits = [
            *comparison.added_capabilities,
            *(change.describe() for change in comparison.increased_limits),
        ]
        rationale = (
            f"Usage is above {threshold:.0%} of the {current.name} tier limits "
            f"({', '.join(t.describe() for t in triggers)}); "
            f"{target.name} raises them."
        )
        logger.info(
            "upgrade_recommended",
            actor_id=ctx.actor_id,
            current=ctx.tier.value,
            recommended=next_level.value,
            triggers=[t.limit_name for t in triggers],
        )
        return Recommendation(
            current_tier=ctx.tier,
            recommended_tier=next_level,
            triggers=triggers,
            benefits=tuple(benefits),
            rationale=rationale,
            pricing=target.pricing.describe(),
        )
