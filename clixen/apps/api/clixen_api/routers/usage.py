"""Quota consumption for signed-in users."""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from clixen_api.auth.session_auth import get_current_profile, get_now
from clixen_api.db.models import Profile
from clixen_api.db.session import get_db
from clixen_api.routers.pages import quota_info
from clixen_api.schemas import ConsumeRequest, ConsumeResponse
from clixen_api.services.profiles import consume_for_profile

router = APIRouter(prefix="/api/usage", tags=["usage"])
logger = logging.getLogger(__name__)


@router.post("/consume", response_model=ConsumeResponse)
def consume(
    body: ConsumeRequest,
    profile: Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
) -> ConsumeResponse:
    """Consume credits for the caller.

    400 for a non-positive amount, 403 without bot access, 429 when the
    credit ceiling would be crossed. Nothing is written on failure.
    """
    updated = consume_for_profile(db, profile.id, body.amount, now)
    return ConsumeResponse(
        profile_id=updated.id,
        consumed=body.amount,
        quota=quota_info(updated),
    )
