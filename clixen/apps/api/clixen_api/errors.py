"""Access-control error taxonomy.

Every error carries the HTTP status it maps to and a plain-language message
safe to show end users. main.py renders them as RFC 9457 problem documents.
"""

from typing import Optional

PROBLEM_TYPE_BASE = "https://api.clixen.app/problems"


class ClixenError(Exception):
    """Base exception for access-control failures."""

    status_code: int = 500
    title: str = "Internal Server Error"
    slug: str = "internal-error"
    default_detail: str = "An unexpected error occurred. Please try again later."

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)

    @property
    def error_type(self) -> str:
        return f"{PROBLEM_TYPE_BASE}/{self.slug}"

    def headers(self) -> dict[str, str]:
        return {}


class Unauthenticated(ClixenError):
    status_code = 401
    title = "Unauthorized"
    slug = "unauthenticated"
    default_detail = "Please sign in to continue."


class InvalidArgument(ClixenError):
    status_code = 400
    title = "Bad Request"
    slug = "invalid-argument"
    default_detail = "The request contained an invalid value."


class AccessDenied(ClixenError):
    """Profile exists but currently has no bot access (free tier, trial over)."""

    status_code = 403
    title = "Forbidden"
    slug = "access-denied"
    default_detail = "Your free trial has expired. Upgrade to continue using the bot."


class ProfileNotFound(ClixenError):
    status_code = 404
    title = "Not Found"
    slug = "profile-not-found"
    default_detail = "No account was found for this request."


class TokenNotFound(ClixenError):
    status_code = 404
    title = "Not Found"
    slug = "link-token-not-found"
    default_detail = "This linking code is not valid. Generate a new one from your dashboard."


class AlreadyLinked(ClixenError):
    status_code = 409
    title = "Conflict"
    slug = "telegram-already-linked"
    default_detail = "This account is already linked to a Telegram chat."


class TokenExpired(ClixenError):
    status_code = 410
    title = "Gone"
    slug = "link-token-expired"
    default_detail = "This linking code has expired. Generate a new one from your dashboard."


class QuotaExceeded(ClixenError):
    """Consuming action refused; the profile was left unchanged."""

    status_code = 429
    title = "Quota Exceeded"
    slug = "quota-exceeded"
    default_detail = "You have used all of your credits. Upgrade your plan to continue."


class TransientDependencyFailure(ClixenError):
    """Auth provider or database timed out or was unreachable. Safe to retry."""

    status_code = 503
    title = "Service Unavailable"
    slug = "dependency-unavailable"
    default_detail = "A required service is temporarily unavailable. Please try again shortly."

    def __init__(self, detail: Optional[str] = None, retry_after: int = 5):
        super().__init__(detail)
        self.retry_after = retry_after

    def headers(self) -> dict[str, str]:
        return {"Retry-After": str(self.retry_after)}
