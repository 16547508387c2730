"""SQLAlchemy ORM Models for Clixen."""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    BIGINT,
    INTEGER,
    TEXT,
    TIMESTAMP,
    CheckConstraint,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from clixen_api.policy.plans import Tier
from clixen_api.policy.trial import DEFAULT_QUOTA_LIMIT, ProfileState


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class Profile(Base):
    """One row per end user, keyed 1:1 on the auth provider's user id."""

    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(TEXT, primary_key=True, default=lambda: str(uuid.uuid4()))
    identity_id: Mapped[str] = mapped_column(TEXT, nullable=False)
    email: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    display_name: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)

    tier: Mapped[str] = mapped_column(TEXT, nullable=False, default=Tier.FREE.value)
    quota_used: Mapped[int] = mapped_column(INTEGER, nullable=False, default=0)
    # -1 = unlimited
    quota_limit: Mapped[int] = mapped_column(INTEGER, nullable=False, default=DEFAULT_QUOTA_LIMIT)

    trial_started_at: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    trial_expires_at: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )

    telegram_chat_id: Mapped[Optional[int]] = mapped_column(BIGINT, nullable=True)
    telegram_username: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    telegram_linked_at: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow
    )
    last_activity_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        UniqueConstraint("identity_id", name="uq_profiles_identity_id"),
        UniqueConstraint("telegram_chat_id", name="uq_profiles_telegram_chat_id"),
        CheckConstraint("quota_used >= 0", name="ck_profiles_quota_used_nonneg"),
        CheckConstraint("quota_limit >= -1", name="ck_profiles_quota_limit_range"),
        CheckConstraint(
            "quota_limit = -1 OR quota_used <= quota_limit",
            name="ck_profiles_quota_within_limit",
        ),
        CheckConstraint(
            "tier IN ('free', 'starter', 'pro', 'enterprise')",
            name="ck_profiles_tier",
        ),
    )

    @property
    def is_telegram_linked(self) -> bool:
        return self.telegram_chat_id is not None

    def snapshot(self) -> ProfileState:
        """Policy view of this row."""
        return ProfileState(
            tier=Tier(self.tier),
            quota_used=self.quota_used,
            quota_limit=self.quota_limit,
            trial_started_at=self.trial_started_at,
            trial_expires_at=self.trial_expires_at,
            last_activity_at=self.last_activity_at,
        )


class TelegramLinkToken(Base):
    """Single-use Telegram linking token.

    Only the keyed hash of the token is stored; the raw value is shown to the
    user once and never persisted.
    """

    __tablename__ = "telegram_link_tokens"

    token_hash: Mapped[str] = mapped_column(TEXT, primary_key=True)
    profile_id: Mapped[str] = mapped_column(TEXT, nullable=False)  # FK to profiles
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow
    )
    expires_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    consumed_at: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )

    __table_args__ = (
        Index("idx_telegram_link_tokens_profile", "profile_id"),
    )
