"""Request context management for observability.

Context variables for request tracking across async boundaries.
"""

from contextvars import ContextVar

# Request ID - unique per HTTP request
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

# Identity ID - auth provider user id of the caller
identity_id_var: ContextVar[str] = ContextVar("identity_id", default="")

# Profile ID - profile row the request is acting on
profile_id_var: ContextVar[str] = ContextVar("profile_id", default="")
