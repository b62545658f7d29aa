"""
Subscription tiers and the tier catalog.

Tier ordering is fixed: starter < pro < advanced < enterprise.

Each ``TierDefinition`` declares, for its level:
  features      — per-feature value: ``False`` (off), ``True`` (on), a
                  positive number (usage ceiling), ``-1`` (unlimited) or a
                  descriptive string (on)
  limits        — named numeric limits (``-1`` = unlimited)
  capabilities  — marketing-level capability list, used for upgrade benefits
  pricing       — informational only, never enforced here
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import Any

from tiergate.core.constants import UNLIMITED
from tiergate.core.exceptions import RegistryError

FeatureValue = bool | int | float | str

# Named limit checked against a requirement's team size.
TEAM_MEMBERS_LIMIT = "team-members"


class TierLevel(StrEnum):
    """Subscription tiers, ordered STARTER < PRO < ADVANCED < ENTERPRISE."""

    STARTER = "starter"
    PRO = "pro"
    ADVANCED = "advanced"
    ENTERPRISE = "enterprise"

    @property
    def rank(self) -> int:
        return TIER_ORDER.index(self)

    def next_tier(self) -> TierLevel | None:
        """The next tier up, or None at the top."""
        i = self.rank + 1
        return TIER_ORDER[i] if i < len(TIER_ORDER) else None

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, TierLevel):
            return NotImplemented
        return self.rank >= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, TierLevel):
            return NotImplemented
        return self.rank > other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, TierLevel):
            return NotImplemented
        return self.rank <= other.rank

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, TierLevel):
            return NotImplemented
        return self.rank < other.rank


TIER_ORDER: tuple[TierLevel, ...] = (
    TierLevel.STARTER,
    TierLevel.PRO,
    TierLevel.ADVANCED,
    TierLevel.ENTERPRISE,
)


class SubscriptionStatus(StrEnum):
    ACTIVE = "active"
    TRIAL = "trial"
    EXPIRED = "expired"
    CANCELLED = "cancelled"

    @property
    def lapsed(self) -> bool:
        return self in (SubscriptionStatus.EXPIRED, SubscriptionStatus.CANCELLED)


def is_disabled_value(value: FeatureValue | None) -> bool:
    """A per-feature tier value that switches the feature off at that tier."""
    if isinstance(value, bool):
        return value is False
    return isinstance(value, int | float) and value == 0


def ceiling_of(value: FeatureValue | None) -> int | None:
    """Usage ceiling encoded by a per-feature value, or None if it is not one.

    Positive numbers are ceilings; ``-1`` (unlimited) and non-numeric values
    are not.
    """
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    return int(value) if value > 0 else None


def format_limit(value: int) -> str:
    return "unlimited" if value == UNLIMITED else f"{value:,}"


def _within(limit: int | None, amount: int) -> bool:
    return limit is not None and (limit == UNLIMITED or amount <= limit)


@dataclass(frozen=True)
class TierPricing:
    amount: float | None = None
    currency: str = "USD"
    period: str | None = "month"
    custom: bool = False

    def describe(self) -> str:
        if self.custom or self.amount is None:
            return "custom pricing"
        if self.amount == 0:
            return "free"
        suffix = f"/{self.period}" if self.period else ""
        return f"{self.amount:g} {self.currency}{suffix}"


@dataclass(frozen=True)
class TierDefinition:
    level: TierLevel
    name: str
    features: Mapping[str, FeatureValue] = field(default_factory=dict)
    limits: Mapping[str, int] = field(default_factory=dict)
    capabilities: tuple[str, ...] = ()
    pricing: TierPricing = field(default_factory=TierPricing)

    def __post_init__(self) -> None:
        object.__setattr__(self, "level", TierLevel(self.level))
        object.__setattr__(self, "features", MappingProxyType(dict(self.features)))
        object.__setattr__(self, "limits", MappingProxyType(dict(self.limits)))
        object.__setattr__(self, "capabilities", tuple(self.capabilities))

    def feature_value(self, feature_id: str) -> FeatureValue | None:
        return self.features.get(feature_id)

    def limit(self, name: str) -> int | None:
        return self.limits.get(name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "level": self.level.value,
            "name": self.name,
            "features": dict(self.features),
            "limits": dict(self.limits),
            "capabilities": list(self.capabilities),
            "pricing": self.pricing.describe(),
        }


@dataclass(frozen=True)
class LimitChange:
    name: str
    old: int | None
    new: int | None

    @property
    def increased(self) -> bool:
        if self.new is None:
            return False
        if self.new == UNLIMITED:
            return self.old != UNLIMITED
        if self.old is None:
            return True
        return self.old != UNLIMITED and self.new > self.old

    def describe(self) -> str:
        old = "none" if self.old is None else format_limit(self.old)
        new = "none" if self.new is None else format_limit(self.new)
        return f"{self.name}: {old} → {new}"


@dataclass(frozen=True)
class TierComparison:
    """Differences going from tier ``source`` to tier ``target``."""

    source: TierLevel
    target: TierLevel
    added_capabilities: tuple[str, ...]
    removed_capabilities: tuple[str, ...]
    limit_changes: tuple[LimitChange, ...]
    enabled_features: tuple[str, ...]

    @property
    def increased_limits(self) -> tuple[LimitChange, ...]:
        return tuple(c for c in self.limit_changes if c.increased)


@dataclass(frozen=True)
class TierRequirements:
    """Stated needs of a prospective customer.

    Attributes:
        team_members: Seats needed, checked against the ``team-members`` limit.
        features: Feature ids that must be switched on.
        capabilities: Capability names (e.g. ``"Priority support"``) that
            must be listed for the tier.
    """

    team_members: int = 1
    features: tuple[str, ...] = ()
    capabilities: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "features", tuple(self.features))
        object.__setattr__(self, "capabilities", tuple(self.capabilities))


@dataclass(frozen=True)
class TierRecommendation:
    recommended: TierLevel
    alternatives: tuple[TierLevel, ...]
    reasons: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "recommended": self.recommended.value,
            "alternatives": [t.value for t in self.alternatives],
            "reasons": list(self.reasons),
        }


class TierCatalog:
    """Immutable lookup over one ``TierDefinition`` per tier level."""

    def __init__(self, definitions: Iterable[TierDefinition]) -> None:
        tiers: dict[TierLevel, TierDefinition] = {}
        for d in definitions:
            if d.level in tiers:
                raise RegistryError(f"Duplicate tier definition: {d.level.value}")
            tiers[d.level] = d
        missing = [t.value for t in TIER_ORDER if t not in tiers]
        if missing:
            raise RegistryError(f"Tier catalog is missing levels: {missing}")
        self._tiers: Mapping[TierLevel, TierDefinition] = MappingProxyType(tiers)

    def get(self, level: TierLevel | str) -> TierDefinition:
        return self._tiers[TierLevel(level)]

    def __iter__(self) -> Iterator[TierDefinition]:
        return (self._tiers[t] for t in TIER_ORDER)

    def __len__(self) -> int:
        return len(self._tiers)

    def lowest_tier_enabling(
        self, feature_id: str, above: TierLevel | None = None
    ) -> TierLevel | None:
        """Lowest tier (strictly above *above*, if given) where the feature is not off."""
        for d in self:
            if above is not None and d.level <= above:
                continue
            if not is_disabled_value(d.feature_value(feature_id)):
                return d.level
        return None

    def lowest_tier_allowing_usage(
        self,
        feature_id: str,
        usage: int,
        above: TierLevel,
        limit_key: str | None = None,
    ) -> TierLevel | None:
        """Lowest tier above *above* whose ceiling for the feature exceeds *usage*."""
        for d in self:
            if d.level <= above:
                continue
            value = d.feature_value(feature_id)
            if is_disabled_value(value):
                continue
            ceiling = self.ceiling_for(d.level, feature_id, limit_key)
            if ceiling is None or usage < ceiling:
                return d.level
        return None

    def ceiling_for(
        self, level: TierLevel, feature_id: str, limit_key: str | None = None
    ) -> int | None:
        """Usage ceiling for a feature at a tier, or None when unlimited/uncapped.

        The per-feature value wins; a feature whose value is not numeric falls
        back to the named limit *limit_key*.
        """
        d = self.get(level)
        value = d.feature_value(feature_id)
        if isinstance(value, int | float) and not isinstance(value, bool):
            return ceiling_of(value)
        if limit_key is not None:
            return ceiling_of(d.limit(limit_key))
        return None

    def recommend_for(self, requirements: TierRequirements) -> TierRecommendation:
        """Lowest tier meeting every stated need; higher fitting tiers are alternatives.

        A need that no tier meets is reported in the reasons and left out of
        the fit check.  With no tier fitting at all, the top tier is returned.
        """
        reasons: list[str] = []
        checks: list[Callable[[TierDefinition], bool]] = []

        def need(check: Callable[[TierDefinition], bool], met: str, unmet: str) -> None:
            # met reads "<need> the <tier> tier."
            lowest = next((d for d in self if check(d)), None)
            if lowest is None:
                reasons.append(unmet)
                return
            checks.append(check)
            if lowest.level is not TIER_ORDER[0]:
                reasons.append(f"{met} the {lowest.level.value} tier.")

        seats = requirements.team_members
        need(
            lambda d: _within(d.limit(TEAM_MEMBERS_LIMIT), seats),
            f"A team of {seats} needs at least",
            f"No tier allows a team of {seats}.",
        )
        for fid in requirements.features:
            need(
                lambda d, fid=fid: fid in d.features
                and not is_disabled_value(d.feature_value(fid)),
                f"{fid} is included from",
                f"{fid} is not offered on any tier.",
            )
        for cap in requirements.capabilities:
            need(
                lambda d, cap=cap: cap in d.capabilities,
                f"{cap} is available from",
                f"{cap} is not offered on any tier.",
            )

        fits = [d.level for d in self if all(check(d) for check in checks)]
        if not fits:
            fits = [TIER_ORDER[-1]]
        return TierRecommendation(
            recommended=fits[0],
            alternatives=tuple(fits[1:]),
            reasons=tuple(reasons),
        )

    def compare(self, source: TierLevel | str, target: TierLevel | str) -> TierComparison:
        a = self.get(source)
        b = self.get(target)
        names = sorted(set(a.limits) | set(b.limits))
        return TierComparison(
            source=a.level,
            target=b.level,
            added_capabilities=tuple(c for c in b.capabilities if c not in a.capabilities),
            removed_capabilities=tuple(c for c in a.capabilities if c not in b.capabilities),
            limit_changes=tuple(
                LimitChange(n, a.limit(n), b.limit(n))
                for n in names
                if a.limit(n) != b.limit(n)
            ),
            enabled_features=tuple(
                f
                for f in sorted(set(a.features) | set(b.features))
                if is_disabled_value(a.feature_value(f))
                and f in b.features
                and not is_disabled_value(b.feature_value(f))
            ),
        )


# ---------------------------------------------------------------------------
# Default catalog
# ---------------------------------------------------------------------------

DEFAULT_TIERS: tuple[TierDefinition, ...] = (
    TierDefinition(
        level=TierLevel.STARTER,
        name="Starter",
        features={
            "basic-forms": True,
            "file-uploads": 5,
            "basic-analytics": True,
            "email-notifications": 100,
            "data-export": True,
            "legacy-export": True,
            "advanced-validation": False,
            "conditional-logic": False,
            "payments": False,
            "webhooks": False,
            "workflow-automation": False,
            "advanced-analytics": False,
            "custom-branding": False,
            "api-access": False,
            "ai-form-assistant": False,
            "sso-integration": False,
            "audit-log": False,
            "white-label": False,
        },
        limits={
            "form-count": 10,
            "monthly-submissions": 100,
            "team-members": 1,
            "storage-mb": 1_024,
            "api-calls": 1_000,
        },
        capabilities=("Dynamic forms", "Basic analytics", "Community support"),
        pricing=TierPricing(amount=0),
    ),
    TierDefinition(
        level=TierLevel.PRO,
        name="Pro",
        features={
            "basic-forms": True,
            "file-uploads": 100,
            "basic-analytics": True,
            "email-notifications": 5_000,
            "data-export": True,
            "legacy-export": True,
            "advanced-validation": True,
            "conditional-logic": True,
            "payments": True,
            "webhooks": 10,
            "workflow-automation": False,
            "advanced-analytics": True,
            "custom-branding": True,
            "api-access": False,
            "ai-form-assistant": True,
            "sso-integration": False,
            "audit-log": False,
            "white-label": False,
        },
        limits={
            "form-count": 50,
            "monthly-submissions": 5_000,
            "team-members": 5,
            "storage-mb": 10_240,
            "api-calls": 10_000,
        },
        capabilities=(
            "Dynamic forms",
            "Basic analytics",
            "Payment processing",
            "Advanced analytics",
            "Custom branding",
            "Email support",
        ),
        pricing=TierPricing(amount=49),
    ),
    TierDefinition(
        level=TierLevel.ADVANCED,
        name="Advanced",
        features={
            "basic-forms": True,
            "file-uploads": 1_000,
            "basic-analytics": True,
            "email-notifications": 50_000,
            "data-export": True,
            "legacy-export": True,
            "advanced-validation": True,
            "conditional-logic": True,
            "payments": True,
            "webhooks": 100,
            "workflow-automation": True,
            "advanced-analytics": True,
            "custom-branding": True,
            "api-access": True,
            "ai-form-assistant": True,
            "sso-integration": True,
            "audit-log": True,
            "white-label": False,
        },
        limits={
            "form-count": 250,
            "monthly-submissions": 50_000,
            "team-members": 25,
            "storage-mb": 102_400,
            "api-calls": 100_000,
        },
        capabilities=(
            "Dynamic forms",
            "Basic analytics",
            "Payment processing",
            "Advanced analytics",
            "Custom branding",
            "Email support",
            "Workflow automation",
            "API access",
            "Single sign-on",
            "Priority support",
        ),
        pricing=TierPricing(amount=199),
    ),
    TierDefinition(
        level=TierLevel.ENTERPRISE,
        name="Enterprise",
        features={
            "basic-forms": True,
            "file-uploads": UNLIMITED,
            "basic-analytics": True,
            "email-notifications": UNLIMITED,
            "data-export": True,
            "legacy-export": True,
            "advanced-validation": True,
            "conditional-logic": True,
            "payments": True,
            "webhooks": UNLIMITED,
            "workflow-automation": True,
            "advanced-analytics": True,
            "custom-branding": True,
            "api-access": True,
            "ai-form-assistant": True,
            "sso-integration": True,
            "audit-log": True,
            "white-label": True,
        },
        limits={
            "form-count": UNLIMITED,
            "monthly-submissions": UNLIMITED,
            "team-members": UNLIMITED,
            "storage-mb": UNLIMITED,
            "api-calls": UNLIMITED,
        },
        capabilities=(
            "Dynamic forms",
            "Basic analytics",
            "Payment processing",
            "Advanced analytics",
            "Custom branding",
            "Email support",
            "Workflow automation",
            "API access",
            "Single sign-on",
            "Priority support",
            "White-label delivery",
            "Dedicated account manager",
        ),
        pricing=TierPricing(custom=True),
    ),
)


def default_catalog() -> TierCatalog:
    return TierCatalog(DEFAULT_TIERS)
