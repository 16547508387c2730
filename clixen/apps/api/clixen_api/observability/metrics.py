"""Observability helpers: event log helpers + bounded request timing sink.

Usage:
    from clixen_api.observability.metrics import get_metrics_sink, log_quota_consumed

    with get_metrics_sink().measure("GET /dashboard"):
        ...

    log_quota_consumed(profile_id="p_123", amount=1, quota_used=11, quota_limit=50)

Security:
- Linking tokens and session tokens are NEVER logged
- Telegram chat ids are logged (needed to trace bot support requests)
"""

import logging
import math
import threading
import time
from collections import deque
from contextlib import contextmanager
from typing import Iterator, NamedTuple, Optional

logger = logging.getLogger(__name__)

MAX_METRICS = 1000
STATS_WINDOW_SECONDS = 3600


class TimingSample(NamedTuple):
    name: str
    duration_ms: float
    recorded_at: float


class MetricsSink:
    """Process-wide ring buffer of timing samples.

    Holds at most ``max_samples`` entries; the oldest are dropped first.
    """

    def __init__(self, max_samples: int = MAX_METRICS):
        self._samples: deque[TimingSample] = deque(maxlen=max_samples)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._samples)

    def record(self, name: str, duration_ms: float, recorded_at: Optional[float] = None) -> None:
        sample = TimingSample(name, float(duration_ms), recorded_at if recorded_at is not None else time.time())
        with self._lock:
            self._samples.append(sample)

    @contextmanager
    def measure(self, name: str) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            self.record(name, (time.perf_counter() - start) * 1000)

    def stats(self, now: Optional[float] = None) -> dict[str, dict[str, float]]:
        """Per-name count / avg / p95 / max over the last hour."""
        cutoff = (now if now is not None else time.time()) - STATS_WINDOW_SECONDS
        with self._lock:
            recent = [s for s in self._samples if s.recorded_at >= cutoff]

        grouped: dict[str, list[float]] = {}
        for sample in recent:
            grouped.setdefault(sample.name, []).append(sample.duration_ms)

        result: dict[str, dict[str, float]] = {}
        for name, durations in grouped.items():
            durations.sort()
            p95_index = max(0, math.ceil(len(durations) * 0.95) - 1)
            result[name] = {
                "count": len(durations),
                "avg_ms": round(sum(durations) / len(durations), 2),
                "p95_ms": round(durations[p95_index], 2),
                "max_ms": round(durations[-1], 2),
            }
        return result

    def clear(self) -> None:
        with self._lock:
            self._samples.clear()


_sink = MetricsSink()


def get_metrics_sink() -> MetricsSink:
    return _sink


# ============================================================================
# Profile / Quota events
# ============================================================================


def log_profile_created(profile_id: str, identity_id: str) -> None:
    logger.info(
        "profile.created",
        extra={
            "event": "profile.created",
            "profile_id": profile_id,
            "identity_id": identity_id,
        },
    )


def log_quota_consumed(profile_id: str, amount: int, quota_used: int, quota_limit: int) -> None:
    """Log a successful quota consumption (post-commit values)."""
    logger.info(
        "quota.consumed",
        extra={
            "event": "quota.consumed",
            "profile_id": profile_id,
            "amount": amount,
            "quota_used": quota_used,
            "quota_limit": quota_limit,
        },
    )


def log_quota_exceeded(profile_id: str, amount: int) -> None:
    logger.warning(
        "quota.exceeded",
        extra={"event": "quota.exceeded", "profile_id": profile_id, "amount": amount},
    )


# ============================================================================
# Telegram link events
# ============================================================================


def log_link_token_issued(profile_id: str, expires_at: str) -> None:
    logger.info(
        "telegram.link.token_issued",
        extra={
            "event": "telegram.link.token_issued",
            "profile_id": profile_id,
            "expires_at": expires_at,
        },
    )


def log_telegram_linked(profile_id: str, chat_id: int) -> None:
    logger.info(
        "telegram.link.completed",
        extra={"event": "telegram.link.completed", "profile_id": profile_id, "chat_id": chat_id},
    )


def log_telegram_unlinked(profile_id: str, removed: bool) -> None:
    logger.info(
        "telegram.link.removed",
        extra={"event": "telegram.link.removed", "profile_id": profile_id, "removed": removed},
    )


# ============================================================================
# Route guard events
# ============================================================================


def log_route_redirect(path: str, location: str, reason: str) -> None:
    logger.info(
        "route_guard.redirect",
        extra={
            "event": "route_guard.redirect",
            "path": path,
            "location": location,
            "reason": reason,
        },
    )
