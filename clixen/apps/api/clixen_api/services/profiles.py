"""Profile lifecycle: lazy creation, quota consumption, plan changes."""

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from clixen_api.auth.identity import Identity
from clixen_api.db.models import Profile
from clixen_api.db.repo_profiles import ProfileRepository
from clixen_api.errors import AccessDenied, InvalidArgument, ProfileNotFound, QuotaExceeded
from clixen_api.observability.metrics import (
    log_profile_created,
    log_quota_consumed,
    log_quota_exceeded,
)
from clixen_api.policy import trial
from clixen_api.policy.plans import Tier, quota_limit_for

logger = logging.getLogger(__name__)


def ensure_profile(db: Session, identity: Identity, now: datetime) -> Profile:
    """Load the profile for ``identity``, creating it on first sight.

    Safe under concurrent first requests: creation is an upsert on the unique
    identity_id, so every caller ends up with the same row.
    """
    repo = ProfileRepository(db)
    profile = repo.get_by_identity(identity.id)
    if profile is None:
        profile, created = repo.upsert_for_identity(
            identity_id=identity.id,
            email=identity.email,
            display_name=identity.display_name,
            now=now,
        )
        if created:
            log_profile_created(profile.id, identity.id)
            return profile

    return repo.update_contact(profile, identity.email, identity.display_name)


def consume_for_profile(db: Session, profile_id: str, amount: object, now: datetime) -> Profile:
    """Consume ``amount`` credits for the profile.

    Checks run in order: amount, profile exists, bot access, quota. The write
    itself is one conditional UPDATE, so concurrent callers cannot push
    quota_used past quota_limit.

    Raises:
        InvalidArgument: amount is not a positive integer
        ProfileNotFound: unknown profile id
        AccessDenied: free tier without an active trial
        QuotaExceeded: the ceiling would be crossed (profile unchanged)
    """
    amount = trial.validate_amount(amount)

    repo = ProfileRepository(db)
    profile = repo.get_by_id(profile_id)
    if profile is None:
        raise ProfileNotFound()

    state = profile.snapshot()
    if not trial.has_bot_access(state, now):
        raise AccessDenied()
    if not trial.can_consume_quota(state, amount):
        log_quota_exceeded(profile_id, amount)
        raise QuotaExceeded()

    if not repo.consume_quota(profile_id, amount, now):
        # Lost a race against a concurrent consumer.
        log_quota_exceeded(profile_id, amount)
        raise QuotaExceeded()

    db.refresh(profile)
    log_quota_consumed(profile_id, amount, profile.quota_used, profile.quota_limit)
    return profile


def apply_plan(db: Session, profile_id: str, tier: str) -> Profile:
    """Move the profile to ``tier`` with the plan's credit ceiling.

    Raises:
        InvalidArgument: unknown tier
        ProfileNotFound: unknown profile id
    """
    try:
        resolved = Tier(tier)
    except ValueError as e:
        raise InvalidArgument(f"Unknown plan '{tier}'.") from e

    profile = ProfileRepository(db).set_plan(profile_id, resolved.value, quota_limit_for(resolved))
    if profile is None:
        raise ProfileNotFound()

    logger.info(
        "profile.plan.changed",
        extra={
            "profile_id": profile_id,
            "tier": resolved.value,
            "quota_limit": profile.quota_limit,
        },
    )
    return profile
