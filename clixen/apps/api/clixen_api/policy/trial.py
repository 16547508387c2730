"""Trial / quota decision functions.

Everything in this module is pure: it takes a ProfileState snapshot plus the
current time and returns a decision. Persistence lives in
clixen_api.db.repo_profiles, which applies the same quota rule atomically in
SQL.
"""

import math
from datetime import datetime, timedelta, timezone
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from clixen_api.errors import InvalidArgument, QuotaExceeded
from clixen_api.policy.plans import UNLIMITED_QUOTA, Tier, quota_limit_for

TRIAL_DURATION = timedelta(days=7)
DEFAULT_QUOTA_LIMIT = quota_limit_for(Tier.FREE)
LOW_TRIAL_DAYS_WARNING = 2

_ONE_DAY_SECONDS = timedelta(days=1).total_seconds()


class ProfileState(BaseModel):
    """Immutable snapshot of the policy-relevant profile fields."""

    model_config = ConfigDict(frozen=True)

    tier: Tier = Tier.FREE
    quota_used: int = 0
    quota_limit: int = DEFAULT_QUOTA_LIMIT
    trial_started_at: Optional[datetime] = None
    trial_expires_at: Optional[datetime] = None
    last_activity_at: Optional[datetime] = None

    @field_validator("trial_started_at", "trial_expires_at", "last_activity_at")
    @classmethod
    def _normalize_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value) if value is not None else None


class AccessStatus(BaseModel):
    """Banner shown on the dashboard and bot-access pages."""

    has_access: bool
    kind: Literal["success", "info", "warning", "error"]
    message: str
    cta_text: Optional[str] = None
    cta_action: Optional[str] = None


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; every stored value is UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def new_trial_window(now: datetime) -> tuple[datetime, datetime]:
    """Return (trial_started_at, trial_expires_at) for a profile created at ``now``."""
    start = _as_utc(now)
    return start, start + TRIAL_DURATION


def is_trial_active(profile: ProfileState, now: datetime) -> bool:
    """True iff both trial dates are set and ``now`` is before expiry."""
    if profile.trial_started_at is None or profile.trial_expires_at is None:
        return False
    return _as_utc(now) < _as_utc(profile.trial_expires_at)


def trial_days_remaining(profile: ProfileState, now: datetime) -> int:
    """Whole days left in the trial, rounded up and floored at 0."""
    if profile.trial_started_at is None or profile.trial_expires_at is None:
        return 0
    remaining = (_as_utc(profile.trial_expires_at) - _as_utc(now)).total_seconds()
    if remaining <= 0:
        return 0
    return max(0, math.ceil(remaining / _ONE_DAY_SECONDS))


def has_bot_access(profile: ProfileState, now: datetime) -> bool:
    """Paid tiers always have access; free tier only while the trial runs."""
    if profile.tier != Tier.FREE:
        return True
    return is_trial_active(profile, now)


def validate_amount(amount: object) -> int:
    """Return ``amount`` if it is a positive int.

    Raises:
        InvalidArgument: On zero, negative, bool or non-integer input
    """
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidArgument("Quota amount must be a whole number.")
    if amount <= 0:
        raise InvalidArgument("Quota amount must be greater than zero.")
    return amount


def can_consume_quota(profile: ProfileState, amount: int) -> bool:
    if profile.quota_limit == UNLIMITED_QUOTA:
        return True
    return profile.quota_used + amount <= profile.quota_limit


def consume_quota(profile: ProfileState, amount: int, now: datetime) -> ProfileState:
    """Return the state after consuming ``amount`` credits.

    The input snapshot is never modified.

    Raises:
        InvalidArgument: If ``amount`` is not a positive integer
        QuotaExceeded: If the ceiling would be crossed
    """
    validate_amount(amount)
    if not can_consume_quota(profile, amount):
        raise QuotaExceeded()
    return profile.model_copy(
        update={
            "quota_used": profile.quota_used + amount,
            "last_activity_at": _as_utc(now),
        }
    )


def credits_remaining(profile: ProfileState) -> Optional[int]:
    """Credits left before the ceiling, or None when unlimited."""
    if profile.quota_limit == UNLIMITED_QUOTA:
        return None
    return max(0, profile.quota_limit - profile.quota_used)


def access_status(profile: ProfileState, now: datetime) -> AccessStatus:
    """Plain-language access summary for the UI."""
    remaining = credits_remaining(profile)
    credits_text = "unlimited" if remaining is None else str(remaining)

    if profile.tier != Tier.FREE:
        return AccessStatus(
            has_access=True,
            kind="success",
            message=f"Premium access active - {credits_text} credits remaining",
        )

    if is_trial_active(profile, now):
        days = trial_days_remaining(profile, now)
        ending_soon = days <= LOW_TRIAL_DAYS_WARNING
        return AccessStatus(
            has_access=True,
            kind="warning" if ending_soon else "info",
            message=f"Free trial active - {days} days remaining ({credits_text} credits)",
            cta_text="Upgrade Now" if ending_soon else "View Plans",
            cta_action="upgrade",
        )

    if profile.trial_expires_at is not None:
        return AccessStatus(
            has_access=False,
            kind="error",
            message="Your free trial has expired. Upgrade to continue using the bot.",
            cta_text="Upgrade Now",
            cta_action="upgrade",
        )

    return AccessStatus(
        has_access=False,
        kind="error",
        message="Subscription required to access the bot.",
        cta_text="Choose Plan",
        cta_action="upgrade",
    )
