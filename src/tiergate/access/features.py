"""
Feature definitions and the feature registry.

Every feature has a unique id, a minimum tier, optional dependency ids and
lifecycle flags (beta, deprecated).  ``FeatureRegistry`` is built once from
a sequence of definitions and rejects, at construction time:

  - duplicate ids
  - dependencies on ids that are not defined
  - dependency cycles (including self-dependencies)

so that recursive dependency evaluation in the access controller always
terminates.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType
from typing import Any

import structlog

from tiergate.access.tiers import TierLevel
from tiergate.core.exceptions import CyclicDependencyError, RegistryError

logger = structlog.get_logger()


class FeatureCategory(StrEnum):
    CORE = "core"
    ADVANCED = "advanced"
    PREMIUM = "premium"
    ENTERPRISE = "enterprise"


@dataclass(frozen=True)
class FeatureDefinition:
    """Static declaration of one feature.

    Attributes:
        required_tier: Minimum tier that may use the feature.
        dependencies: Feature ids that must also be accessible.
        replaced_by: Suggested replacement when ``deprecated`` is set.
        limit_key: Named tier limit used as the usage ceiling when the
            tier's per-feature value is not numeric.
    """

    id: str
    name: str
    category: FeatureCategory
    required_tier: TierLevel
    dependencies: tuple[str, ...] = ()
    beta: bool = False
    deprecated: bool = False
    replaced_by: str | None = None
    limit_key: str | None = None
    description: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "category", FeatureCategory(self.category))
        object.__setattr__(self, "required_tier", TierLevel(self.required_tier))
        object.__setattr__(self, "dependencies", tuple(self.dependencies))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category.value,
            "required_tier": self.required_tier.value,
            "dependencies": list(self.dependencies),
            "beta": self.beta,
            "deprecated": self.deprecated,
            "replaced_by": self.replaced_by,
            "limit_key": self.limit_key,
        }


class FeatureRegistry:
    """Validated, immutable lookup of feature definitions."""

    def __init__(self, definitions: Iterable[FeatureDefinition]) -> None:
        features: dict[str, FeatureDefinition] = {}
        for d in definitions:
            if d.id in features:
                raise RegistryError(f"Duplicate feature definition: {d.id!r}")
            features[d.id] = d

        for d in features.values():
            unknown = [dep for dep in d.dependencies if dep not in features]
            if unknown:
                raise RegistryError(f"Feature {d.id!r} depends on unknown features: {unknown}")

        cycle = _find_cycle(features)
        if cycle is not None:
            logger.error("feature_registry_cycle", cycle=" -> ".join(cycle))
            raise CyclicDependencyError(cycle)

        self._features: Mapping[str, FeatureDefinition] = MappingProxyType(features)

    def get(self, feature_id: str) -> FeatureDefinition | None:
        return self._features.get(feature_id)

    def ids(self) -> list[str]:
        return sorted(self._features)

    def __contains__(self, feature_id: object) -> bool:
        return feature_id in self._features

    def __iter__(self) -> Iterator[FeatureDefinition]:
        return (self._features[fid] for fid in self.ids())

    def __len__(self) -> int:
        return len(self._features)

    def by_category(self) -> dict[FeatureCategory, list[FeatureDefinition]]:
        """Features grouped by category, every category present, ids sorted."""
        grouped: dict[FeatureCategory, list[FeatureDefinition]] = {c: [] for c in FeatureCategory}
        for d in self:
            grouped[d.category].append(d)
        return grouped

    def dependents_of(self, feature_id: str) -> list[str]:
        """Ids of features that declare *feature_id* as a direct dependency."""
        return sorted(fid for fid, d in self._features.items() if feature_id in d.dependencies)


def _find_cycle(features: Mapping[str, FeatureDefinition]) -> list[str] | None:
    """Depth-first search for a dependency cycle.  Returns the cycle path or None."""
    visiting: list[str] = []
    done: set[str] = set()

    def visit(fid: str) -> list[str] | None:
        if fid in done:
            return None
        if fid in visiting:
            return visiting[visiting.index(fid) :] + [fid]
        visiting.append(fid)
        for dep in features[fid].dependencies:
            found = visit(dep)
            if found is not None:
                return found
        visiting.pop()
        done.add(fid)
        return None

    for fid in sorted(features):
        found = visit(fid)
        if found is not None:
            return found
    return None


# ---------------------------------------------------------------------------
# Default registry
# ---------------------------------------------------------------------------

_C = FeatureCategory

DEFAULT_FEATURES: tuple[FeatureDefinition, ...] = (
    # CORE
    FeatureDefinition(
        "basic-forms", "Dynamic Forms", _C.CORE, TierLevel.STARTER, limit_key="form-count"
    ),
    FeatureDefinition("file-uploads", "File Uploads", _C.CORE, TierLevel.STARTER),
    FeatureDefinition("basic-analytics", "Basic Analytics", _C.CORE, TierLevel.STARTER),
    FeatureDefinition("email-notifications", "Email Notifications", _C.CORE, TierLevel.STARTER),
    FeatureDefinition("data-export", "Data Export", _C.CORE, TierLevel.STARTER),
    FeatureDefinition(
        "legacy-export",
        "Legacy CSV Export",
        _C.CORE,
        TierLevel.STARTER,
        deprecated=True,
        replaced_by="data-export",
    ),
    # ADVANCED
    FeatureDefinition(
        "advanced-validation",
        "Advanced Validation",
        _C.ADVANCED,
        TierLevel.PRO,
        ("basic-forms",),
    ),
    FeatureDefinition(
        "conditional-logic",
        "Conditional Logic",
        _C.ADVANCED,
        TierLevel.PRO,
        ("basic-forms", "advanced-validation"),
    ),
    FeatureDefinition("advanced-analytics", "Advanced Analytics", _C.ADVANCED, TierLevel.PRO),
    FeatureDefinition(
        "ai-form-assistant",
        "AI Form Assistant",
        _C.ADVANCED,
        TierLevel.PRO,
        ("basic-forms",),
        beta=True,
    ),
    # PREMIUM
    FeatureDefinition("payments", "Payment Processing", _C.PREMIUM, TierLevel.PRO),
    FeatureDefinition("webhooks", "Webhook Integration", _C.PREMIUM, TierLevel.PRO),
    FeatureDefinition("custom-branding", "Custom Branding", _C.PREMIUM, TierLevel.PRO),
    FeatureDefinition(
        "workflow-automation",
        "Workflow Automation",
        _C.PREMIUM,
        TierLevel.PRO,
        ("webhooks",),
    ),
    FeatureDefinition(
        "api-access", "API Access", _C.PREMIUM, TierLevel.ADVANCED, limit_key="api-calls"
    ),
    # ENTERPRISE
    FeatureDefinition("sso-integration", "Single Sign-On", _C.ENTERPRISE, TierLevel.ADVANCED),
    FeatureDefinition("audit-log", "Audit Log", _C.ENTERPRISE, TierLevel.ADVANCED),
    FeatureDefinition(
        "white-label",
        "White-Label Delivery",
        _C.ENTERPRISE,
        TierLevel.ENTERPRISE,
        ("custom-branding",),
    ),
)


def default_registry() -> FeatureRegistry:
    return FeatureRegistry(DEFAULT_FEATURES)
