"""Internal endpoints for operators and the billing integration.

WARNING: These endpoints are for authorized operators only.
- Protected by X-Admin-Token header (ADMIN_TOKEN)
- Plan changes are logged with the caller's request id
"""

import logging
import secrets

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from clixen_api.config.env import get_admin_token
from clixen_api.context import request_id_var
from clixen_api.db.session import get_db
from clixen_api.observability.metrics import STATS_WINDOW_SECONDS, get_metrics_sink
from clixen_api.routers.pages import quota_info
from clixen_api.schemas import PerfResponse, PlanChangeRequest, QuotaInfo
from clixen_api.services.profiles import apply_plan

router = APIRouter(prefix="/internal", tags=["internal"])
logger = logging.getLogger(__name__)


def verify_admin_token(x_admin_token: str = Header(default="", alias="X-Admin-Token")) -> None:
    """Verify admin token using constant-time comparison.

    Raises:
        HTTPException 401: If token is invalid
        HTTPException 500: If ADMIN_TOKEN not configured
    """
    try:
        expected_token = get_admin_token()
    except RuntimeError as e:
        logger.error(f"Admin token not configured: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Admin token not configured on server",
        )

    if not secrets.compare_digest(x_admin_token.encode("utf-8"), expected_token.encode("utf-8")):
        logger.warning(
            "Invalid admin token attempt",
            extra={
                "event": "admin.auth_failed",
                "request_id": request_id_var.get(),
            },
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid X-Admin-Token",
            headers={"WWW-Authenticate": "Header"},
        )


@router.post(
    "/profiles/{profile_id}/plan",
    response_model=QuotaInfo,
    dependencies=[Depends(verify_admin_token)],
)
def change_plan(
    profile_id: str,
    body: PlanChangeRequest,
    db: Session = Depends(get_db),
) -> QuotaInfo:
    """Set tier and credit ceiling. quota_used is left as is."""
    profile = apply_plan(db, profile_id, body.tier)
    logger.info(
        "admin.plan_changed",
        extra={"event": "admin.plan_changed", "profile_id": profile_id, "tier": profile.tier},
    )
    return quota_info(profile)


@router.get("/perf", response_model=PerfResponse, dependencies=[Depends(verify_admin_token)])
def perf() -> PerfResponse:
    """Request timing stats for the last hour."""
    sink = get_metrics_sink()
    return PerfResponse(
        window_seconds=STATS_WINDOW_SECONDS,
        sample_count=len(sink),
        stats=sink.stats(),
    )
