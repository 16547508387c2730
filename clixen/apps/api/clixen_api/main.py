"""Clixen API - FastAPI Application Entry Point."""

import logging
import time
import uuid

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError
from sqlalchemy.exc import TimeoutError as SQLAlchemyTimeoutError
from starlette.exceptions import HTTPException as StarletteHTTPException

from clixen_api import __version__
from clixen_api.config.env import (
    get_cors_allowed_origins,
    get_log_level,
    is_json_logging_enabled,
)
from clixen_api.context import identity_id_var, profile_id_var, request_id_var
from clixen_api.errors import PROBLEM_TYPE_BASE, ClixenError, TransientDependencyFailure
from clixen_api.middleware import RouteGuardMiddleware
from clixen_api.observability.metrics import get_metrics_sink
from clixen_api.routers import admin, health, pages, telegram, usage
from clixen_api.schemas import ProblemDetail
from clixen_api.utils import configure_json_logging

app = FastAPI(
    title="Clixen API",
    description="Trial, quota and Telegram-link gating for the Clixen AI dashboard and bot.",
    version=__version__,
    docs_url="/api-docs",
    redoc_url="/redoc",
)

# Set CLIXEN_JSON_LOGS=false to disable (defaults to true)
if is_json_logging_enabled():
    configure_json_logging(log_level=get_log_level())
    logger = logging.getLogger(__name__)
    logger.info("Structured JSON logging enabled")

# Innermost: route guard runs after request_id / logging are in place.
app.add_middleware(RouteGuardMiddleware)

# MDN: credentials mode CANNOT use wildcard origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_allowed_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    expose_headers=["X-Request-ID", "Retry-After"],
)


# ============================================================================
# HTTP Request Completion Logging Middleware
# ============================================================================


@app.middleware("http")
async def http_completion_logging_middleware(request: Request, call_next):
    """Log every HTTP request completion and record its timing.

    - Every HTTP request emits "http.request.completed"
    - Fields: method, path, status_code, duration_ms (+ context vars)
    - Logs even on exceptions (status_code=500)
    - Clears per-request identity context vars before and after
    """
    identity_id_var.set("")
    profile_id_var.set("")

    start_time = time.perf_counter()
    status_code = 500

    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        duration_ms = (time.perf_counter() - start_time) * 1000

        route = request.scope.get("route")
        metric_name = f"{request.method} {getattr(route, 'path', request.url.path)}"
        get_metrics_sink().record(metric_name, duration_ms)

        logging.getLogger(__name__).info(
            "http.request.completed",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": status_code,
                "duration_ms": round(duration_ms, 2),
            },
        )

        identity_id_var.set("")
        profile_id_var.set("")


# ============================================================================
# Request ID Middleware (MUST BE OUTERMOST)
# ============================================================================


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Generate and propagate request_id for observability.

    - Accepts X-Request-ID header from client (optional)
    - Generates new UUID if not provided
    - Returns X-Request-ID in response headers

    Registered last so it is the outermost middleware and request_id is set
    before any inner middleware logs.
    """
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request_id_var.set(request_id)

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# ============================================================================
# RFC 9457 Global Exception Handlers
# ============================================================================


def _instance() -> str:
    """Opaque instance identifier built from the request id."""
    request_id = request_id_var.get()
    return f"urn:clixen:trace:{request_id}" if request_id else f"urn:clixen:trace:{uuid.uuid4()}"


def _problem_response(
    problem: ProblemDetail, headers: dict[str, str] | None = None
) -> JSONResponse:
    return JSONResponse(
        status_code=problem.status,
        content=problem.model_dump(exclude_none=True),
        media_type="application/problem+json",
        headers=headers or {},
    )


@app.exception_handler(ClixenError)
async def clixen_error_handler(request: Request, exc: ClixenError) -> JSONResponse:
    """Render access-control errors (401/403/404/409/410/429/503) as problem+json."""
    log = logging.getLogger(__name__)
    level = logging.WARNING if exc.status_code >= 500 else logging.INFO
    log.log(
        level,
        "request.rejected",
        extra={
            "event": "request.rejected",
            "error": type(exc).__name__,
            "status_code": exc.status_code,
            "path": request.url.path,
        },
    )

    problem = ProblemDetail(
        type=exc.error_type,
        title=exc.title,
        status=exc.status_code,
        detail=exc.detail,
        instance=_instance(),
    )
    headers = exc.headers()
    if exc.status_code == 401:
        headers["WWW-Authenticate"] = "Bearer"
    return _problem_response(problem, headers)


@app.exception_handler(OperationalError)
@app.exception_handler(SQLAlchemyTimeoutError)
async def database_unavailable_handler(request: Request, exc: Exception) -> JSONResponse:
    """Database timeouts and connection failures are retryable (503)."""
    logging.getLogger(__name__).error(
        "database.unavailable",
        exc_info=True,
        extra={"event": "database.unavailable", "path": request.url.path},
    )
    return await clixen_error_handler(request, TransientDependencyFailure())


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle HTTP exceptions with RFC 9457 Problem Details format.

    Preserves dict detail fields for structured error responses.
    """
    detail_value = exc.detail if exc.detail is not None else _get_title_for_status(exc.status_code)

    problem = ProblemDetail(
        type=f"{PROBLEM_TYPE_BASE}/http-{exc.status_code}",
        title=_get_title_for_status(exc.status_code),
        status=exc.status_code,
        detail=detail_value,
        instance=_instance(),
    )
    return _problem_response(problem, dict(exc.headers or {}))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request validation errors (422) with RFC 9457 Problem Details format."""
    first_error = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(loc) for loc in first_error.get("loc", []))
    msg = first_error.get("msg", "Validation error")

    problem = ProblemDetail(
        type=f"{PROBLEM_TYPE_BASE}/validation-error",
        title="Request Validation Failed",
        status=422,
        detail=f"Invalid field '{field}': {msg}",
        instance=_instance(),
    )
    return _problem_response(problem)


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle uncaught exceptions (500). Detail is logged, not returned."""
    logging.getLogger(__name__).error(f"Unhandled exception: {exc}", exc_info=True)

    problem = ProblemDetail(
        type=f"{PROBLEM_TYPE_BASE}/internal-error",
        title="Internal Server Error",
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="An unexpected error occurred. Please try again later.",
        instance=_instance(),
    )
    return _problem_response(problem)


def _get_title_for_status(status_code: int) -> str:
    """Get human-readable title for HTTP status code."""
    titles = {
        400: "Bad Request",
        401: "Unauthorized",
        403: "Forbidden",
        404: "Not Found",
        405: "Method Not Allowed",
        409: "Conflict",
        410: "Gone",
        429: "Too Many Requests",
        500: "Internal Server Error",
        502: "Bad Gateway",
        503: "Service Unavailable",
    }
    return titles.get(status_code, f"HTTP {status_code}")


app.include_router(health.router)
app.include_router(pages.router)
app.include_router(usage.router)
app.include_router(telegram.router)
app.include_router(admin.router)
