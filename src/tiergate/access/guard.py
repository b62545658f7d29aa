"""Feature enforcement guard.

``require_feature()`` is the guard helper called at feature entrypoints.
On deny it optionally emits an audit event and raises
``FeatureUnavailableError``.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from tiergate.access.context import ActorContext
from tiergate.access.controller import AccessController, AccessDecision
from tiergate.core.exceptions import FeatureUnavailableError

# Callback signature: (event_type: str, payload: dict) -> None
AuditCallback = Callable[[str, dict[str, Any]], None]


def require_feature(
    controller: AccessController,
    feature_id: str,
    ctx: ActorContext,
    *,
    audit_callback: AuditCallback | None = None,
) -> AccessDecision:
    """Guard: check access and raise ``FeatureUnavailableError`` on deny.

    On deny:
      1. Calls ``audit_callback("feature.denied", {...})`` if provided.
      2. Raises ``FeatureUnavailableError`` with the decision and feature_id.

    On allow:
      Returns the ``AccessDecision``.
    """
    decision = controller.check_access(feature_id, ctx)

    if not decision.granted:
        if audit_callback is not None:
            audit_callback(
                "feature.denied",
                {
                    "feature_id": feature_id,
                    "actor_id": ctx.actor_id,
                    "tier": ctx.tier.value,
                    "reason": decision.reason.value if decision.reason else None,
                    "upgrade_to": decision.upgrade_to.value if decision.upgrade_to else None,
                },
            )
        raise FeatureUnavailableError(decision, feature_id)

    return decision
