"""
Usage oracle — the external collaborator reporting current consumption.

The hosting application supplies the real implementation (wired to its
metering subsystem).  The contract:

  get_current_usage(feature_id, actor) -> int | None

Returning ``None`` or raising ``UsageUnavailableError`` both mean "unknown";
the access controller then fails closed for limit-bearing features.
Implementations must be side-effect free.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from tiergate.access.context import ActorContext
from tiergate.core.exceptions import UsageUnavailableError


@runtime_checkable
class UsageOracle(Protocol):
    def get_current_usage(self, feature_id: str, actor: ActorContext) -> int | None: ...


class StaticUsageOracle:
    """In-memory oracle for tests, local tooling and fixed placeholder numbers.

    Per-actor values win over per-feature defaults.  With ``strict=True`` a
    feature with no recorded value is reported as unavailable instead of 0.
    """

    def __init__(
        self,
        usage: dict[str, int] | None = None,
        *,
        strict: bool = False,
    ) -> None:
        self._by_feature: dict[str, int] = dict(usage or {})
        self._by_actor: dict[tuple[str, str], int] = {}
        self._strict = strict

    def set_usage(self, feature_id: str, value: int, actor_id: str | None = None) -> None:
        if actor_id is None:
            self._by_feature[feature_id] = value
        else:
            self._by_actor[(actor_id, feature_id)] = value

    def get_current_usage(self, feature_id: str, actor: ActorContext) -> int | None:
        key = (actor.actor_id, feature_id)
        if key in self._by_actor:
            return self._by_actor[key]
        if feature_id in self._by_feature:
            return self._by_feature[feature_id]
        if self._strict:
            raise UsageUnavailableError(f"No usage recorded for {feature_id!r}")
        return 0
