"""Route Guard Middleware.

Decides, per page request, whether to redirect:

- Protected page (/dashboard, /profile, /bot-access, /subscription) and no
  identity -> 307 to /?auth=true&redirect=<path>
- Landing page (/) with an identity and none of auth/redirect/error/code in
  the query -> 307 to /dashboard
- Anything else passes through unmodified

decide_route() is a pure function of (path, authenticated, query params). The
middleware only resolves identity for paths where the answer depends on it,
so API, internal and health routes never call the auth provider here.

Failure policy: an exception while resolving identity never aborts the
request. The caller is treated as anonymous and the failure is logged.
"""

import logging
from typing import Literal, Mapping, Optional
from urllib.parse import urlencode

from fastapi import Request, Response
from fastapi.responses import RedirectResponse
from pydantic import BaseModel
from starlette.middleware.base import BaseHTTPMiddleware

from clixen_api.auth.identity import IdentityResolution, get_identity_provider, resolve_identity
from clixen_api.config.env import get_auth_timeout_seconds
from clixen_api.errors import Unauthenticated
from clixen_api.observability.metrics import log_route_redirect

logger = logging.getLogger(__name__)

PROTECTED_PREFIXES = ("/dashboard", "/profile", "/bot-access", "/subscription")
LANDING_PATH = "/"
DASHBOARD_PATH = "/dashboard"
AUTH_FLOW_PREFIX = "/auth/"
LANDING_OVERRIDE_PARAMS = frozenset({"auth", "redirect", "error", "code"})


class RouteDecision(BaseModel):
    action: Literal["allow", "redirect"]
    location: Optional[str] = None
    reason: Optional[str] = None


ALLOW = RouteDecision(action="allow")


def is_protected_path(path: str) -> bool:
    return any(path == prefix or path.startswith(prefix + "/") for prefix in PROTECTED_PREFIXES)


def needs_identity(path: str) -> bool:
    """True when decide_route() can return different answers for this path."""
    if path.startswith(AUTH_FLOW_PREFIX):
        return False
    return path == LANDING_PATH or is_protected_path(path)


def decide_route(path: str, authenticated: bool, query_params: Mapping[str, str]) -> RouteDecision:
    """Redirect decision for one request."""
    if path.startswith(AUTH_FLOW_PREFIX):
        return ALLOW

    if is_protected_path(path) and not authenticated:
        location = LANDING_PATH + "?" + urlencode({"auth": "true", "redirect": path})
        return RouteDecision(action="redirect", location=location, reason="anonymous_on_protected")

    if path == LANDING_PATH and authenticated:
        if not any(param in query_params for param in LANDING_OVERRIDE_PARAMS):
            return RouteDecision(
                action="redirect", location=DASHBOARD_PATH, reason="authenticated_on_landing"
            )

    return ALLOW


class RouteGuardMiddleware(BaseHTTPMiddleware):
    """Applies decide_route() to every inbound request."""

    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path

        if not needs_identity(path):
            return await call_next(request)

        resolution = await self._resolve(request)
        request.state.identity_resolution = resolution

        decision = decide_route(path, resolution.authenticated, request.query_params)
        if decision.action == "redirect":
            log_route_redirect(path, decision.location, decision.reason)
            return RedirectResponse(url=decision.location, status_code=307)

        return await call_next(request)

    async def _resolve(self, request: Request) -> IdentityResolution:
        try:
            return await resolve_identity(
                request,
                get_identity_provider(request.app),
                get_auth_timeout_seconds(),
            )
        except Exception:
            logger.error(
                "route_guard.identity_error",
                exc_info=True,
                extra={"event": "route_guard.identity_error", "path": request.url.path},
            )
            return IdentityResolution(failure=Unauthenticated())
