"""Middleware modules."""

from .route_guard import RouteGuardMiddleware

__all__ = [
    "RouteGuardMiddleware",
]
