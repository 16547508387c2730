"""Telegram linking token generation and hashing.

SECURITY:
- Tokens are HMAC-SHA256 hashed with LINK_TOKEN_PEPPER
- Raw tokens are NEVER stored in database
- Display-once: the raw token is returned only when issued
"""

import base64
import hashlib
import hmac
import logging
import secrets

from clixen_api.config.env import get_link_token_pepper

logger = logging.getLogger(__name__)

LINK_TOKEN_PREFIX = "clx_link"
_TOKEN_BYTES = 32


def generate_link_token() -> str:
    """Generate a new opaque linking token.

    Token format: clx_link_{base64url(32_random_bytes)}

    Security:
    - secrets.token_bytes() for CSPRNG
    - 32 bytes = 256 bits of entropy
    - base64url encoding (no padding) so the token survives a Telegram
      ``/start`` deep-link parameter
    """
    random_part = base64.urlsafe_b64encode(secrets.token_bytes(_TOKEN_BYTES)).decode("ascii").rstrip("=")
    return f"{LINK_TOKEN_PREFIX}_{random_part}"


def hash_link_token(raw_token: str) -> str:
    """Hash a linking token using HMAC-SHA256 with the pepper.

    Returns:
        Base64url-encoded HMAC-SHA256 hash (no padding)
    """
    digest = hmac.new(
        key=get_link_token_pepper().encode("utf-8"),
        msg=raw_token.encode("utf-8"),
        digestmod=hashlib.sha256,
    ).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def verify_link_token_hash(raw_token: str, expected_hash: str) -> bool:
    """Constant-time comparison of ``raw_token``'s hash against ``expected_hash``."""
    return hmac.compare_digest(hash_link_token(raw_token), expected_hash)


def looks_like_link_token(value: str) -> bool:
    return value.startswith(f"{LINK_TOKEN_PREFIX}_") and len(value) > len(LINK_TOKEN_PREFIX) + 1
