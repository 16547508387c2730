"""Telegram linking token repository.

Single use is enforced by a claim-by-conditional-update:

  UPDATE telegram_link_tokens SET consumed_at = :now
  WHERE token_hash = :h AND consumed_at IS NULL AND expires_at > :now

Exactly one concurrent caller sees rowcount == 1. Callers that lose, or hit an
expired / unknown token, get rowcount == 0 and look the row up to find out why.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from clixen_api.db.models import TelegramLinkToken


class LinkTokenRepository:
    """Repository for TelegramLinkToken operations."""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        token_hash: str,
        profile_id: str,
        now: datetime,
        expires_at: datetime,
    ) -> TelegramLinkToken:
        """Store a new token, dropping the profile's earlier unconsumed tokens.

        Only one outstanding token per profile exists after this call.
        """
        self.db.execute(
            delete(TelegramLinkToken)
            .where(TelegramLinkToken.profile_id == profile_id)
            .where(TelegramLinkToken.consumed_at.is_(None))
            .execution_options(synchronize_session=False)
        )
        token = TelegramLinkToken(
            token_hash=token_hash,
            profile_id=profile_id,
            created_at=now,
            expires_at=expires_at,
        )
        self.db.add(token)
        self.db.commit()
        self.db.refresh(token)
        return token

    def get(self, token_hash: str) -> Optional[TelegramLinkToken]:
        stmt = select(TelegramLinkToken).where(TelegramLinkToken.token_hash == token_hash)
        return self.db.execute(stmt).scalar_one_or_none()

    def count_for_profile(self, profile_id: str) -> int:
        stmt = select(TelegramLinkToken).where(TelegramLinkToken.profile_id == profile_id)
        return len(self.db.execute(stmt).scalars().all())

    def claim(self, token_hash: str, now: datetime) -> bool:
        """Mark the token consumed if it is live. Caller owns the commit."""
        stmt = (
            update(TelegramLinkToken)
            .where(TelegramLinkToken.token_hash == token_hash)
            .where(TelegramLinkToken.consumed_at.is_(None))
            .where(TelegramLinkToken.expires_at > now)
            .values(consumed_at=now)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount == 1
