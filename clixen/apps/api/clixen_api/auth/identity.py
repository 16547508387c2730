"""Identity resolution.

The rest of the service only sees ``Identity`` (id, email, display_name).
Provider SDK objects never leave the provider class, so the auth backend can
be swapped by supplying another ``IdentityProvider``.

resolve_identity() never raises: a missing or rejected session is reported as
``Unauthenticated``, a slow or unreachable provider as
``TransientDependencyFailure``. The caller (route guard or endpoint
dependency) decides what to do with the outcome.
"""

import asyncio
import logging
from typing import Any, Optional, Protocol

import httpx
from fastapi import FastAPI, Request
from pydantic import BaseModel, ConfigDict
from starlette.concurrency import run_in_threadpool

from clixen_api.config.env import get_session_cookie_name
from clixen_api.errors import ClixenError, TransientDependencyFailure, Unauthenticated

logger = logging.getLogger(__name__)


class Identity(BaseModel):
    """Minimal caller identity."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: Optional[str] = None
    display_name: Optional[str] = None


class IdentityResolution(BaseModel):
    """Outcome of resolve_identity(): exactly one of identity / failure is set."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    identity: Optional[Identity] = None
    failure: Optional[ClixenError] = None

    @property
    def authenticated(self) -> bool:
        return self.identity is not None


class IdentityProvider(Protocol):
    def get_current_user(self, session_token: str) -> Optional[Identity]:
        """Return the identity behind ``session_token`` or None if it is not valid.

        Raises:
            TransientDependencyFailure: If the provider could not be reached
        """
        ...


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, (httpx.TimeoutException, httpx.TransportError)):
        return True
    # The auth SDK wraps network failures (status 0) and gateway errors (5xx)
    # into its own error types; both carry the HTTP status.
    status = getattr(exc, "status", None)
    return isinstance(status, int) and (status == 0 or status >= 500)


class SupabaseIdentityProvider:
    """Validates Supabase access tokens with ``auth.get_user``."""

    def __init__(self, client: Any):
        self.client = client

    def get_current_user(self, session_token: str) -> Optional[Identity]:
        try:
            response = self.client.auth.get_user(session_token)
        except Exception as e:
            if _is_transient(e):
                raise TransientDependencyFailure(
                    "Sign-in service is temporarily unavailable. Please try again shortly."
                ) from e
            logger.info(
                "auth.session.rejected",
                extra={"error_type": type(e).__name__},
            )
            return None

        if not response or not response.user:
            return None

        user = response.user
        metadata = getattr(user, "user_metadata", None) or {}
        display_name = metadata.get("full_name") or metadata.get("name")
        return Identity(id=str(user.id), email=user.email, display_name=display_name)


def extract_session_token(request: Request) -> Optional[str]:
    """Bearer token from the Authorization header, else the session cookie."""
    auth_header = request.headers.get("authorization", "")
    scheme, _, credentials = auth_header.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()

    cookie = request.cookies.get(get_session_cookie_name())
    if cookie:
        return cookie
    return None


async def resolve_identity(
    request: Request,
    provider: IdentityProvider,
    timeout_seconds: float,
) -> IdentityResolution:
    """Resolve the caller's identity within ``timeout_seconds``."""
    token = extract_session_token(request)
    if not token:
        return IdentityResolution(failure=Unauthenticated())

    try:
        identity = await asyncio.wait_for(
            run_in_threadpool(provider.get_current_user, token),
            timeout=timeout_seconds,
        )
    except asyncio.TimeoutError:
        logger.warning(
            "auth.identity.timeout",
            extra={"timeout_seconds": timeout_seconds},
        )
        return IdentityResolution(
            failure=TransientDependencyFailure(
                "Sign-in service did not respond in time. Please try again shortly."
            )
        )
    except TransientDependencyFailure as e:
        logger.warning("auth.identity.unavailable", extra={"detail": e.detail})
        return IdentityResolution(failure=e)
    except Exception:
        logger.error("auth.identity.provider_error", exc_info=True)
        return IdentityResolution(
            failure=Unauthenticated("Session validation failed. Please sign in again.")
        )

    if identity is None:
        return IdentityResolution(
            failure=Unauthenticated("Invalid or expired session. Please sign in again.")
        )
    return IdentityResolution(identity=identity)


def get_identity_provider(app: FastAPI) -> IdentityProvider:
    """Provider stored on app.state, built from the Supabase client on first use."""
    provider = getattr(app.state, "identity_provider", None)
    if provider is None:
        from clixen_api.supabase_client import get_supabase_client

        provider = SupabaseIdentityProvider(get_supabase_client())
        app.state.identity_provider = provider
    return provider
