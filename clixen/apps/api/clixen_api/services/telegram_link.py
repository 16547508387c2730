"""Telegram link flow.

The web dashboard issues a short-lived, single-use linking token; the bot
process hands it back together with the chat id once the user sends
``/start <token>``. Consuming the token and writing the Telegram fields on the
profile happen in one transaction.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clixen_api.auth.link_tokens import generate_link_token, hash_link_token
from clixen_api.db.models import Profile
from clixen_api.db.repo_link_tokens import LinkTokenRepository
from clixen_api.db.repo_profiles import ProfileRepository
from clixen_api.errors import AlreadyLinked, ProfileNotFound, TokenExpired, TokenNotFound
from clixen_api.observability.metrics import (
    log_link_token_issued,
    log_telegram_linked,
    log_telegram_unlinked,
)
from clixen_api.policy import trial

logger = logging.getLogger(__name__)

LINK_TOKEN_TTL = timedelta(minutes=10)


class IssuedLinkToken(BaseModel):
    token: str
    expires_at: datetime
    expires_in_seconds: int


class LinkStatus(BaseModel):
    linked: bool
    telegram_chat_id: Optional[int] = None
    telegram_username: Optional[str] = None
    telegram_linked_at: Optional[datetime] = None


class ChatAccess(BaseModel):
    """Bot-side view of a chat: is it linked, and may it use the bot now."""

    linked: bool
    has_access: bool
    profile_id: Optional[str] = None
    tier: Optional[str] = None
    message: str


def generate_linking_token(db: Session, profile_id: str, now: datetime) -> IssuedLinkToken:
    """Issue a linking token valid for 10 minutes.

    Raises:
        ProfileNotFound: unknown profile id
        AlreadyLinked: the profile already has a chat; no token is created
    """
    profile = ProfileRepository(db).get_by_id(profile_id)
    if profile is None:
        raise ProfileNotFound()
    if profile.is_telegram_linked:
        raise AlreadyLinked()

    raw_token = generate_link_token()
    expires_at = now + LINK_TOKEN_TTL
    LinkTokenRepository(db).create(
        token_hash=hash_link_token(raw_token),
        profile_id=profile_id,
        now=now,
        expires_at=expires_at,
    )
    log_link_token_issued(profile_id, expires_at.isoformat())

    return IssuedLinkToken(
        token=raw_token,
        expires_at=expires_at,
        expires_in_seconds=int(LINK_TOKEN_TTL.total_seconds()),
    )


def consume_linking_token(
    db: Session,
    token: str,
    chat_id: int,
    username: Optional[str],
    now: datetime,
) -> Profile:
    """Bind ``chat_id`` to the profile that issued ``token``.

    Raises:
        TokenNotFound: unknown or already consumed token
        TokenExpired: token past its expiry (profile untouched)
        AlreadyLinked: the chat or the profile is already linked
    """
    token_hash = hash_link_token(token)
    tokens = LinkTokenRepository(db)
    profiles = ProfileRepository(db)

    if not tokens.claim(token_hash, now):
        db.rollback()
        existing = tokens.get(token_hash)
        if existing is None or existing.consumed_at is not None:
            raise TokenNotFound()
        raise TokenExpired()

    record = tokens.get(token_hash)
    profile_id = record.profile_id

    other = profiles.get_by_telegram_chat(chat_id)
    if other is not None and other.id != profile_id:
        db.rollback()
        raise AlreadyLinked("This Telegram chat is already linked to another account.")

    try:
        linked = profiles.set_telegram_link(profile_id, chat_id, username, now)
        if not linked:
            db.rollback()
            if profiles.get_by_id(profile_id) is None:
                raise ProfileNotFound()
            raise AlreadyLinked()
        db.commit()
    except IntegrityError as e:
        # Unique telegram_chat_id lost to a concurrent link of the same chat.
        db.rollback()
        raise AlreadyLinked("This Telegram chat is already linked to another account.") from e

    profile = profiles.get_by_id(profile_id)
    db.refresh(profile)
    log_telegram_linked(profile_id, chat_id)
    return profile


def unlink_telegram_account(db: Session, profile_id: str) -> bool:
    """Clear the Telegram fields. Idempotent.

    Returns:
        True if a link was removed.

    Raises:
        ProfileNotFound: unknown profile id
    """
    repo = ProfileRepository(db)
    if repo.get_by_id(profile_id) is None:
        raise ProfileNotFound()
    removed = repo.clear_telegram_link(profile_id)
    log_telegram_unlinked(profile_id, removed)
    return removed


def get_link_status(profile: Profile) -> LinkStatus:
    return LinkStatus(
        linked=profile.is_telegram_linked,
        telegram_chat_id=profile.telegram_chat_id,
        telegram_username=profile.telegram_username,
        telegram_linked_at=profile.telegram_linked_at,
    )


def validate_telegram_chat(db: Session, chat_id: int, now: datetime) -> ChatAccess:
    """Tell the bot whether ``chat_id`` belongs to a profile with bot access."""
    profile = ProfileRepository(db).get_by_telegram_chat(chat_id)
    if profile is None:
        return ChatAccess(
            linked=False,
            has_access=False,
            message="This chat is not linked yet. Open your Clixen dashboard to link Telegram.",
        )

    status = trial.access_status(profile.snapshot(), now)
    return ChatAccess(
        linked=True,
        has_access=status.has_access,
        profile_id=profile.id,
        tier=profile.tier,
        message=status.message,
    )
