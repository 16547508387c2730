"""Telegram link endpoints.

Web (session auth):
- POST   /api/telegram/link   issue a linking token (409 when already linked)
- GET    /api/telegram/link   link status
- DELETE /api/telegram/link   unlink (idempotent)

Bot (X-Bot-Secret header, TELEGRAM_BOT_API_SECRET):
- POST /api/telegram/link/consume      bind chat to account with a token
- GET  /api/telegram/access/{chat_id}  may this chat use the bot right now
- POST /api/telegram/usage             consume credits for a linked chat
"""

import logging
import secrets
from datetime import datetime

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from clixen_api.auth.session_auth import get_current_profile, get_now
from clixen_api.config.env import get_bot_api_secret
from clixen_api.context import profile_id_var
from clixen_api.db.models import Profile
from clixen_api.db.session import get_db
from clixen_api.errors import AccessDenied
from clixen_api.routers.pages import quota_info
from clixen_api.schemas import (
    BotUsageRequest,
    ChatAccessResponse,
    ConsumeResponse,
    LinkConsumeRequest,
    LinkConsumeResponse,
    LinkStatusResponse,
    LinkTokenResponse,
    UnlinkResponse,
)
from clixen_api.services import telegram_link
from clixen_api.services.profiles import consume_for_profile

router = APIRouter(prefix="/api/telegram", tags=["telegram"])
logger = logging.getLogger(__name__)


def verify_bot_secret(x_bot_secret: str = Header(default="", alias="X-Bot-Secret")) -> None:
    """Require the bot's shared secret (constant-time comparison).

    Raises:
        HTTPException 503: If TELEGRAM_BOT_API_SECRET is not configured
        HTTPException 401: If the header does not match
    """
    expected = get_bot_api_secret()
    if expected is None:
        logger.error("Bot API secret not configured", extra={"event": "telegram.bot_auth.unconfigured"})
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Bot API is not configured on this server",
        )

    if not secrets.compare_digest(x_bot_secret.encode("utf-8"), expected.encode("utf-8")):
        logger.warning("Invalid bot secret attempt", extra={"event": "telegram.bot_auth.failed"})
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid X-Bot-Secret",
        )


# ============================================================================
# Web endpoints
# ============================================================================


@router.post("/link", response_model=LinkTokenResponse, status_code=status.HTTP_201_CREATED)
def create_link_token(
    profile: Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
) -> LinkTokenResponse:
    """Issue a 10-minute linking token. The raw token is shown only here."""
    issued = telegram_link.generate_linking_token(db, profile.id, now)
    return LinkTokenResponse(
        token=issued.token,
        expires_at=issued.expires_at,
        expires_in_seconds=issued.expires_in_seconds,
        instructions="Open the Clixen bot in Telegram and send: /start <token>",
    )


@router.get("/link", response_model=LinkStatusResponse)
def link_status(profile: Profile = Depends(get_current_profile)) -> LinkStatusResponse:
    return LinkStatusResponse(**telegram_link.get_link_status(profile).model_dump())


@router.delete("/link", response_model=UnlinkResponse)
def unlink(
    profile: Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
) -> UnlinkResponse:
    removed = telegram_link.unlink_telegram_account(db, profile.id)
    return UnlinkResponse(
        unlinked=True,
        message="Telegram account unlinked." if removed else "No Telegram account was linked.",
    )


# ============================================================================
# Bot endpoints
# ============================================================================


@router.post(
    "/link/consume",
    response_model=LinkConsumeResponse,
    dependencies=[Depends(verify_bot_secret)],
)
def consume_link_token(
    body: LinkConsumeRequest,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
) -> LinkConsumeResponse:
    profile = telegram_link.consume_linking_token(
        db, body.token, body.chat_id, body.username, now
    )
    return LinkConsumeResponse(
        linked=True,
        profile_id=profile.id,
        telegram_chat_id=profile.telegram_chat_id,
        telegram_username=profile.telegram_username,
    )


@router.get(
    "/access/{chat_id}",
    response_model=ChatAccessResponse,
    dependencies=[Depends(verify_bot_secret)],
)
def chat_access(
    chat_id: int,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
) -> ChatAccessResponse:
    result = telegram_link.validate_telegram_chat(db, chat_id, now)
    return ChatAccessResponse(**result.model_dump())


@router.post(
    "/usage",
    response_model=ConsumeResponse,
    dependencies=[Depends(verify_bot_secret)],
)
def bot_usage(
    body: BotUsageRequest,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
) -> ConsumeResponse:
    """Consume credits on behalf of a linked chat."""
    access = telegram_link.validate_telegram_chat(db, body.chat_id, now)
    if not access.linked:
        raise AccessDenied(access.message)

    profile_id_var.set(access.profile_id)
    profile = consume_for_profile(db, access.profile_id, body.amount, now)
    return ConsumeResponse(
        profile_id=profile.id,
        consumed=body.amount,
        quota=quota_info(profile),
    )
