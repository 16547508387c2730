"""Session authentication dependencies for user-facing endpoints.

FLOW:
1. Browser (cookie) or dashboard fetch (Authorization: Bearer <jwt>) hits an
   endpoint
2. Identity is resolved through the configured IdentityProvider (Supabase),
   reusing the route guard's result when it already ran for this request
3. The profile is loaded, or created on first sight
4. request_id / identity_id / profile_id context vars are set for logging

Failures are raised as ClixenError subclasses and rendered by the global
problem+json handler: 401 for a missing/invalid session, 503 (Retry-After)
when the auth provider times out.
"""

import logging
from datetime import datetime, timezone

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from clixen_api.auth.identity import (
    Identity,
    IdentityResolution,
    get_identity_provider,
    resolve_identity,
)
from clixen_api.config.env import get_auth_timeout_seconds
from clixen_api.context import identity_id_var, profile_id_var
from clixen_api.db.models import Profile
from clixen_api.db.session import get_db
from clixen_api.services.profiles import ensure_profile

logger = logging.getLogger(__name__)


def get_now() -> datetime:
    """Request clock. Overridden in tests to move time forward."""
    return datetime.now(timezone.utc)


async def get_identity_resolution(request: Request) -> IdentityResolution:
    cached = getattr(request.state, "identity_resolution", None)
    if cached is not None:
        return cached

    resolution = await resolve_identity(
        request,
        get_identity_provider(request.app),
        get_auth_timeout_seconds(),
    )
    request.state.identity_resolution = resolution
    return resolution


async def get_identity(
    resolution: IdentityResolution = Depends(get_identity_resolution),
) -> Identity:
    """Require an authenticated caller.

    Raises:
        Unauthenticated: 401
        TransientDependencyFailure: 503 with Retry-After
    """
    if resolution.failure is not None:
        raise resolution.failure

    identity_id_var.set(resolution.identity.id)
    return resolution.identity


def get_current_profile(
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
) -> Profile:
    """Profile of the authenticated caller, created on first sight."""
    profile = ensure_profile(db, identity, now)
    profile_id_var.set(profile.id)

    logger.debug(
        "Session authentication successful",
        extra={
            "event": "session.auth.success",
            "profile_id": profile.id,
            "tier": profile.tier,
        },
    )
    return profile
