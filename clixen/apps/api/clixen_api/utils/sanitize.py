"""Secret / PII sanitizer for log output.

Session tokens reach this service in three shapes: an Authorization header,
the Supabase session cookie, and Telegram linking tokens. None of them may be
written to logs verbatim.

Size gate:
 1. > MAX_STR_LOG       -> truncate + sha256, never run regex
 2. > MAX_STR_FOR_REGEX -> prefix check only
 3. otherwise           -> full regex replacement
"""

import hashlib
import re
import traceback
from typing import Any

MAX_STR_LOG: int = 2048
MAX_STR_FOR_REGEX: int = 512
MAX_DEPTH: int = 6

# Lower-cased for comparison
_SENSITIVE_KEYS: frozenset[str] = frozenset({
    "authorization", "cookie", "token", "access_token", "refresh_token",
    "link_token", "session_token", "api_key", "secret", "x-bot-secret",
    "x-admin-token", "email", "password",
})

_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"Bearer \S+"),
    re.compile(r"clx_link_[A-Za-z0-9_\-]+"),
    re.compile(r"sb-access-token=[^;\s]+"),
    re.compile(r"access_token=\S+"),
]

_BEARER_PREFIX = "Bearer "
_LINK_PREFIX = "clx_link_"


def sanitize_str(s: str) -> str:
    """Return a redacted / truncated copy of ``s``."""
    if not isinstance(s, str):
        return s  # type: ignore[return-value]

    n = len(s)

    if n > MAX_STR_LOG:
        digest = hashlib.sha256(s.encode("utf-8", errors="replace")).hexdigest()[:16]
        return f"[TRUNCATED len={n} sha256={digest}]"

    if n > MAX_STR_FOR_REGEX:
        if s.startswith(_BEARER_PREFIX) or s.startswith(_LINK_PREFIX):
            return "[REDACTED]"
        return s

    result = s
    for pattern in _PATTERNS:
        result = pattern.sub("[REDACTED]", result)
    return result


def sanitize_obj(obj: Any, depth: int = 0) -> Any:
    """Recursively sanitize a log extra value.

    Dict values under sensitive keys are replaced wholesale; strings go
    through sanitize_str(). Depth is capped at MAX_DEPTH.
    """
    if depth >= MAX_DEPTH:
        return "[DEPTH_LIMIT]"

    if isinstance(obj, dict):
        result: dict[str, Any] = {}
        for key, value in obj.items():
            if isinstance(key, str) and key.lower() in _SENSITIVE_KEYS:
                result[key] = "[REDACTED]"
            else:
                result[key] = sanitize_obj(value, depth + 1)
        return result

    if isinstance(obj, (list, tuple)):
        return [sanitize_obj(item, depth + 1) for item in obj]

    if isinstance(obj, str):
        return sanitize_str(obj)

    return obj


def sanitize_exc(exc_info: tuple) -> str:
    """Format an exc_info tuple into a sanitized traceback string."""
    _type, value, _tb = exc_info
    if value is None:
        return ""
    try:
        te = traceback.TracebackException.from_exception(value, capture_locals=False)
        return sanitize_str("".join(te.format()))
    except Exception:
        return "[TRACEBACK_FORMAT_ERROR]"
