"""Unit tests for the subscription entitlement table and helpers."""

import math

import pytest

from src.domain.entitlements import (
    TIER_LIMITS,
    Feature,
    build_free_tier_update,
    can_add_attendee,
    can_create_event,
    has_feature,
    limit_message,
    limits_for,
    remaining_attendees,
    remaining_events,
    tier_for_session,
)
from src.domain.models import SessionIdentity


class TestTable:
    def test_four_tiers(self) -> None:
        assert set(TIER_LIMITS) == {"free", "basic", "pro", "enterprise"}

    def test_table_is_read_only(self) -> None:
        with pytest.raises(TypeError):
            TIER_LIMITS["free"] = TIER_LIMITS["enterprise"]

    @pytest.mark.parametrize(
        "tier, events, attendees",
        [("free", 1, 25), ("basic", 5, 200), ("pro", 25, 1000)],
    )
    def test_limits(self, tier: str, events: int, attendees: int) -> None:
        limits = limits_for(tier)

        assert limits.max_events == events
        assert limits.max_attendees_per_event == attendees

    def test_enterprise_attendees_unbounded(self) -> None:
        assert math.isinf(limits_for("enterprise").max_attendees_per_event)

    @pytest.mark.parametrize("tier", [None, "", "platinum", "team"])
    def test_unknown_tier_falls_back_to_free(self, tier: str | None) -> None:
        assert limits_for(tier) == TIER_LIMITS["free"]

    def test_tier_name_case_insensitive(self) -> None:
        assert limits_for(" PRO ") == TIER_LIMITS["pro"]


class TestChecks:
    def test_free_allows_exactly_one_event(self) -> None:
        assert can_create_event(0, "free") is True
        assert can_create_event(1, "free") is False

    def test_attendee_limit_is_strict(self) -> None:
        assert can_add_attendee(24, "free") is True
        assert can_add_attendee(25, "free") is False

    def test_enterprise_never_runs_out_of_attendees(self) -> None:
        assert can_add_attendee(10**9, "enterprise") is True
        assert math.isinf(remaining_attendees(10**9, "enterprise"))

    def test_remaining_never_negative(self) -> None:
        assert remaining_events(3, "free") == 0
        assert remaining_events(2, "basic") == 3
        assert remaining_attendees(300, "basic") == 0

    @pytest.mark.parametrize(
        "feature, tier, expected",
        [
            (Feature.MULTIPLE_EVENTS, "free", False),
            (Feature.MULTIPLE_EVENTS, "basic", True),
            (Feature.ADVANCED_ANALYTICS, "basic", False),
            (Feature.ADVANCED_ANALYTICS, "pro", True),
            ("allows_custom_branding", "enterprise", True),
            ("allows_export_to_csv", "free", True),
        ],
    )
    def test_has_feature(self, feature: Feature | str, tier: str, expected: bool) -> None:
        assert has_feature(feature, tier) is expected

    def test_unknown_feature_is_false(self) -> None:
        assert has_feature("allows_time_travel", "enterprise") is False


class TestHelpers:
    def test_tier_for_session(self) -> None:
        identity = SessionIdentity("id", "alice", "a@x.com", "pro")

        assert tier_for_session(identity) == "pro"
        assert tier_for_session(None) == "free"

    def test_limit_messages(self) -> None:
        assert limit_message("free") == "Free plan: Limited to 1 event with up to 25 attendees."
        assert limit_message("basic") == (
            "Basic plan: Up to 5 events with 200 attendees each. $0.05 per guest over limit."
        )
        assert "Unlimited" in limit_message("enterprise")

    def test_free_tier_update_on_cancellation(self) -> None:
        update = build_free_tier_update(1767225600)

        assert update == {
            "subscription_tier": "free",
            "subscription_status": "cancelled",
            "subscription_period_end": "2026-01-01T00:00:00+00:00",
            "stripe_subscription_id": None,
        }
