"""
Entitlements - Static plan table and pure lookup helpers.

Tiers are rows in an immutable mapping, not subclasses. Every lookup that
cannot find its tier falls back to the free row, never to a higher tier.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any

from .models import SessionIdentity
from .ports import SubscriptionStatus, SubscriptionTier

UNLIMITED = math.inf


class Feature(str, Enum):
    MULTIPLE_EVENTS = "allows_multiple_events"
    CUSTOM_BRANDING = "allows_custom_branding"
    ADVANCED_ANALYTICS = "allows_advanced_analytics"
    EXPORT_CSV = "allows_export_to_csv"


@dataclass(frozen=True)
class EntitlementTier:
    max_events: float
    max_attendees_per_event: float
    allows_multiple_events: bool
    allows_custom_branding: bool
    allows_advanced_analytics: bool
    allows_export_to_csv: bool
    max_total_attendees: float | None = None
    overage_fee_per_guest: float | None = None


TIER_LIMITS: "MappingProxyType[str, EntitlementTier]" = MappingProxyType(
    {
        SubscriptionTier.FREE.value: EntitlementTier(
            max_events=1,
            max_attendees_per_event=25,
            allows_multiple_events=False,
            allows_custom_branding=False,
            allows_advanced_analytics=False,
            allows_export_to_csv=True,
        ),
        SubscriptionTier.BASIC.value: EntitlementTier(
            max_events=5,
            max_attendees_per_event=200,
            allows_multiple_events=True,
            allows_custom_branding=True,
            allows_advanced_analytics=False,
            allows_export_to_csv=True,
            overage_fee_per_guest=0.05,
        ),
        SubscriptionTier.PRO.value: EntitlementTier(
            max_events=25,
            max_attendees_per_event=1000,
            allows_multiple_events=True,
            allows_custom_branding=True,
            allows_advanced_analytics=True,
            allows_export_to_csv=True,
            overage_fee_per_guest=0.05,
        ),
        SubscriptionTier.ENTERPRISE.value: EntitlementTier(
            max_events=999999,
            max_attendees_per_event=UNLIMITED,
            allows_multiple_events=True,
            allows_custom_branding=True,
            allows_advanced_analytics=True,
            allows_export_to_csv=True,
            overage_fee_per_guest=0.05,
        ),
    }
)


def _tier_name(tier: str | None) -> str:
    name = (tier or "").strip().lower()
    return name if name in TIER_LIMITS else SubscriptionTier.FREE.value


def limits_for(tier: str | None) -> EntitlementTier:
    """Entitlements for a tier name. Unknown or missing -> free."""
    return TIER_LIMITS[_tier_name(tier)]


def can_create_event(events_created: int, tier: str | None) -> bool:
    return events_created < limits_for(tier).max_events


def can_add_attendee(attendee_count: int, tier: str | None) -> bool:
    return attendee_count < limits_for(tier).max_attendees_per_event


def remaining_events(events_created: int, tier: str | None) -> float:
    return max(0, limits_for(tier).max_events - events_created)


def remaining_attendees(attendee_count: int, tier: str | None) -> float:
    return max(0, limits_for(tier).max_attendees_per_event - attendee_count)


def has_feature(feature: Feature | str, tier: str | None) -> bool:
    """Feature flag lookup. Unknown flags are False."""
    try:
        flag = Feature(feature)
    except ValueError:
        return False
    return bool(getattr(limits_for(tier), flag.value))


def tier_for_session(identity: SessionIdentity | None) -> str:
    """Tier of the caller behind a resolved session; anonymous callers are free."""
    if identity is None:
        return SubscriptionTier.FREE.value
    return _tier_name(identity.subscription_tier)


def limit_message(tier: str | None) -> str:
    name = _tier_name(tier)
    limits = TIER_LIMITS[name]
    if name == SubscriptionTier.FREE.value:
        return (
            f"Free plan: Limited to {limits.max_events} event with up to "
            f"{limits.max_attendees_per_event} attendees."
        )
    if name == SubscriptionTier.ENTERPRISE.value:
        return "Enterprise plan: Unlimited events with unlimited attendees each."
    return (
        f"{name.capitalize()} plan: Up to {limits.max_events} events with "
        f"{limits.max_attendees_per_event} attendees each. "
        f"${limits.overage_fee_per_guest:.2f} per guest over limit."
    )


def build_free_tier_update(period_end_seconds: int) -> dict[str, Any]:
    """Account fields to write when a paid subscription ends."""
    period_end = datetime.fromtimestamp(period_end_seconds, tz=timezone.utc)
    return {
        "subscription_tier": SubscriptionTier.FREE.value,
        "subscription_status": SubscriptionStatus.CANCELLED.value,
        "subscription_period_end": period_end.isoformat(),
        "stripe_subscription_id": None,
    }
