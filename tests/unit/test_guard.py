"""Unit tests for the require_feature enforcement guard."""

from __future__ import annotations

from typing import Any

import pytest

from tiergate.access import (
    AccessController,
    ActorContext,
    ReasonCode,
    StaticUsageOracle,
    default_catalog,
    default_registry,
    require_feature,
)
from tiergate.core.exceptions import FeatureUnavailableError


def _controller() -> AccessController:
    return AccessController(
        default_registry(), default_catalog(), usage_oracle=StaticUsageOracle()
    )


class TestRequireFeature:
    def test_granted_returns_decision(self) -> None:
        decision = require_feature(
            _controller(), "payments", ActorContext(actor_id="u-1", tier="pro")
        )
        assert decision.granted

    def test_denied_raises(self) -> None:
        with pytest.raises(FeatureUnavailableError) as exc_info:
            require_feature(_controller(), "payments", ActorContext(actor_id="u-1", tier="starter"))
        err = exc_info.value
        assert err.feature_id == "payments"
        assert err.decision.reason is ReasonCode.TIER_INSUFFICIENT
        assert "payments" in str(err)

    def test_denied_emits_audit_event(self) -> None:
        events: list[tuple[str, dict[str, Any]]] = []
        with pytest.raises(FeatureUnavailableError):
            require_feature(
                _controller(),
                "sso-integration",
                ActorContext(actor_id="u-9", tier="pro"),
                audit_callback=lambda name, payload: events.append((name, payload)),
            )
        assert events == [
            (
                "feature.denied",
                {
                    "feature_id": "sso-integration",
                    "actor_id": "u-9",
                    "tier": "pro",
                    "reason": "tier_insufficient",
                    "upgrade_to": "advanced",
                },
            )
        ]

    def test_granted_emits_nothing(self) -> None:
        events: list[str] = []
        require_feature(
            _controller(),
            "basic-forms",
            ActorContext(actor_id="u-1", tier="starter"),
            audit_callback=lambda name, payload: events.append(name),
        )
        assert events == []
