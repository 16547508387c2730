"""Profile repository.

Two writes here are race-sensitive and are each a single atomic statement:

  1. create-on-first-sight: INSERT ... ON CONFLICT (identity_id) DO NOTHING,
     then SELECT. The UNIQUE constraint collapses concurrent first requests for
     the same identity to one row.
  2. quota consumption: UPDATE ... SET quota_used = quota_used + :amt
     WHERE id = :id AND (quota_limit = -1 OR quota_used + :amt <= quota_limit).
     Affected-row count 0 means the ceiling would be crossed; nothing is written.
"""

import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from clixen_api.db.models import Profile
from clixen_api.policy.plans import UNLIMITED_QUOTA
from clixen_api.policy.trial import DEFAULT_QUOTA_LIMIT, new_trial_window

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class ProfileRepository:
    """Repository for Profile operations."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, profile_id: str) -> Optional[Profile]:
        return self.db.get(Profile, profile_id)

    def get_by_identity(self, identity_id: str) -> Optional[Profile]:
        stmt = select(Profile).where(Profile.identity_id == identity_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_by_telegram_chat(self, chat_id: int) -> Optional[Profile]:
        stmt = select(Profile).where(Profile.telegram_chat_id == chat_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def upsert_for_identity(
        self,
        identity_id: str,
        email: Optional[str],
        display_name: Optional[str],
        now: datetime,
    ) -> tuple[Profile, bool]:
        """Create the profile for ``identity_id`` unless one exists.

        Returns:
            (profile, created) where ``created`` is True only for the request
            whose INSERT won.
        """
        dialect = self.db.get_bind().dialect.name
        insert_fn = _UPSERT_DIALECTS.get(dialect)
        if insert_fn is None:
            raise RuntimeError(f"Unsupported database dialect for profile upsert: {dialect}")

        trial_started_at, trial_expires_at = new_trial_window(now)
        stmt = (
            insert_fn(Profile.__table__)
            .values(
                id=str(uuid.uuid4()),
                identity_id=identity_id,
                email=email,
                display_name=display_name,
                tier="free",
                quota_used=0,
                quota_limit=DEFAULT_QUOTA_LIMIT,
                trial_started_at=trial_started_at,
                trial_expires_at=trial_expires_at,
                created_at=now,
                last_activity_at=now,
            )
            .on_conflict_do_nothing(index_elements=["identity_id"])
        )
        result = self.db.execute(stmt)
        created = result.rowcount == 1
        self.db.commit()

        profile = self.get_by_identity(identity_id)
        if profile is None:
            # Only reachable if the row vanished between INSERT and SELECT.
            raise RuntimeError(f"Profile for identity {identity_id} missing after upsert")
        return profile, created

    def update_contact(
        self, profile: Profile, email: Optional[str], display_name: Optional[str]
    ) -> Profile:
        """Refresh informational fields. No-op when unchanged."""
        changed = False
        if email is not None and profile.email != email:
            profile.email = email
            changed = True
        if display_name is not None and profile.display_name != display_name:
            profile.display_name = display_name
            changed = True
        if changed:
            self.db.commit()
            self.db.refresh(profile)
        return profile

    def consume_quota(self, profile_id: str, amount: int, now: datetime) -> bool:
        """Atomically add ``amount`` to quota_used if the ceiling allows it.

        Returns:
            True if the row was updated, False if the ceiling would be crossed
            (or the profile does not exist).
        """
        stmt = (
            update(Profile)
            .where(Profile.id == profile_id)
            .where(
                or_(
                    Profile.quota_limit == UNLIMITED_QUOTA,
                    Profile.quota_used + amount <= Profile.quota_limit,
                )
            )
            .values(
                quota_used=Profile.quota_used + amount,
                last_activity_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        if result.rowcount != 1:
            self.db.rollback()
            return False
        self.db.commit()
        return True

    def set_plan(self, profile_id: str, tier: str, quota_limit: int) -> Optional[Profile]:
        """Set tier and credit ceiling.

        quota_used is never cleared. A ceiling below current usage is clamped
        to quota_used so the stored row stays valid and further consumption
        is refused.
        """
        profile = self.get_by_id(profile_id)
        if profile is None:
            return None

        if quota_limit != UNLIMITED_QUOTA and quota_limit < profile.quota_used:
            logger.info(
                "profile.plan.limit_clamped",
                extra={
                    "profile_id": profile_id,
                    "requested_limit": quota_limit,
                    "quota_used": profile.quota_used,
                },
            )
            quota_limit = profile.quota_used

        profile.tier = tier
        profile.quota_limit = quota_limit
        self.db.commit()
        self.db.refresh(profile)
        return profile

    def set_telegram_link(
        self,
        profile_id: str,
        chat_id: int,
        username: Optional[str],
        now: datetime,
    ) -> bool:
        """Bind a chat to an unlinked profile. Caller owns the commit.

        Returns:
            False if the profile is missing or already linked.
        """
        stmt = (
            update(Profile)
            .where(Profile.id == profile_id)
            .where(Profile.telegram_chat_id.is_(None))
            .values(
                telegram_chat_id=chat_id,
                telegram_username=username,
                telegram_linked_at=now,
                last_activity_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount == 1

    def clear_telegram_link(self, profile_id: str) -> bool:
        """Clear the Telegram fields.

        Returns:
            True if a link was removed, False if there was nothing to clear.
        """
        stmt = (
            update(Profile)
            .where(Profile.id == profile_id)
            .where(Profile.telegram_chat_id.is_not(None))
            .values(
                telegram_chat_id=None,
                telegram_username=None,
                telegram_linked_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        removed = self.db.execute(stmt).rowcount == 1
        self.db.commit()
        return removed
