"""Health check endpoints."""

import logging

from fastapi import APIRouter, Response, status
from pydantic import BaseModel
from sqlalchemy import text

from clixen_api import __version__
from clixen_api.db.session import engine

router = APIRouter(tags=["health"])
logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    services: dict[str, str]


def check_database() -> str:
    """Check database connectivity.

    Returns:
        str: "up" if healthy, error message otherwise
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return "up"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return f"down: {str(e)[:50]}"


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Liveness check.

    Always returns 200 OK (use /readyz for dependency checks).
    """
    return HealthResponse(
        status="healthy",
        version=__version__,
        services={"api": "up"},
    )


@router.get("/readyz", response_model=HealthResponse)
async def readiness_check(response: Response) -> HealthResponse:
    """
    Readiness check.

    Returns 503 if the database is unreachable.
    """
    services = {
        "api": "up",
        "database": check_database(),
    }

    if any("down" in svc_status for svc_status in services.values()):
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(status="not_ready", version=__version__, services=services)

    return HealthResponse(status="ready", version=__version__, services=services)
