"""Tests for identity resolution and the Supabase adapter."""

import time
from types import SimpleNamespace

import httpx
import pytest
from starlette.requests import Request

from clixen_api.auth.identity import (
    Identity,
    SupabaseIdentityProvider,
    extract_session_token,
    resolve_identity,
)
from clixen_api.errors import TransientDependencyFailure, Unauthenticated


def _request(headers: dict[str, str] | None = None) -> Request:
    raw = [(k.lower().encode("latin-1"), v.encode("latin-1")) for k, v in (headers or {}).items()]
    return Request({"type": "http", "method": "GET", "path": "/", "headers": raw, "query_string": b""})


class _Auth:
    def __init__(self, result=None, error: BaseException | None = None):
        self.result = result
        self.error = error

    def get_user(self, jwt):
        if self.error is not None:
            raise self.error
        return self.result


def _client(result=None, error=None):
    return SimpleNamespace(auth=_Auth(result=result, error=error))


class _AuthApiError(Exception):
    def __init__(self, message: str, status: int):
        super().__init__(message)
        self.status = status


# ============================================================================
# Supabase adapter
# ============================================================================


def test_supabase_user_mapped_to_identity():
    user = SimpleNamespace(id="uuid-1", email="a@example.com", user_metadata={"full_name": "Ada"})
    provider = SupabaseIdentityProvider(_client(result=SimpleNamespace(user=user)))

    identity = provider.get_current_user("jwt")

    assert identity == Identity(id="uuid-1", email="a@example.com", display_name="Ada")


def test_supabase_display_name_falls_back_to_name():
    user = SimpleNamespace(id="uuid-1", email=None, user_metadata={"name": "ada_l"})
    provider = SupabaseIdentityProvider(_client(result=SimpleNamespace(user=user)))
    assert provider.get_current_user("jwt").display_name == "ada_l"


def test_supabase_rejected_token_returns_none():
    provider = SupabaseIdentityProvider(_client(error=_AuthApiError("invalid JWT", 401)))
    assert provider.get_current_user("jwt") is None


def test_supabase_empty_response_returns_none():
    provider = SupabaseIdentityProvider(_client(result=SimpleNamespace(user=None)))
    assert provider.get_current_user("jwt") is None


@pytest.mark.parametrize(
    "error",
    [
        httpx.ConnectError("connection refused"),
        httpx.ReadTimeout("timed out"),
        _AuthApiError("bad gateway", 502),
        _AuthApiError("network", 0),
    ],
)
def test_supabase_outage_is_transient(error):
    provider = SupabaseIdentityProvider(_client(error=error))
    with pytest.raises(TransientDependencyFailure):
        provider.get_current_user("jwt")


# ============================================================================
# Token extraction
# ============================================================================


def test_extract_bearer_token():
    assert extract_session_token(_request({"Authorization": "Bearer abc.def"})) == "abc.def"


def test_extract_cookie_token():
    request = _request({"Cookie": "theme=dark; sb-access-token=cookie-jwt"})
    assert extract_session_token(request) == "cookie-jwt"


def test_bearer_wins_over_cookie():
    request = _request({"Authorization": "Bearer header-jwt", "Cookie": "sb-access-token=cookie-jwt"})
    assert extract_session_token(request) == "header-jwt"


def test_no_token():
    assert extract_session_token(_request()) is None
    assert extract_session_token(_request({"Authorization": "Basic dXNlcjpwdw=="})) is None


# ============================================================================
# resolve_identity
# ============================================================================


class _StaticProvider:
    def __init__(self, identity=None, error=None, delay=0.0):
        self.identity = identity
        self.error = error
        self.delay = delay

    def get_current_user(self, session_token):
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.identity


@pytest.mark.asyncio
async def test_resolve_identity_success():
    identity = Identity(id="user-1")
    resolution = await resolve_identity(
        _request({"Authorization": "Bearer t"}), _StaticProvider(identity=identity), 1.0
    )
    assert resolution.authenticated
    assert resolution.identity == identity
    assert resolution.failure is None


@pytest.mark.asyncio
async def test_resolve_identity_without_token():
    resolution = await resolve_identity(_request(), _StaticProvider(), 1.0)
    assert not resolution.authenticated
    assert isinstance(resolution.failure, Unauthenticated)


@pytest.mark.asyncio
async def test_resolve_identity_invalid_session():
    resolution = await resolve_identity(_request({"Authorization": "Bearer t"}), _StaticProvider(), 1.0)
    assert isinstance(resolution.failure, Unauthenticated)


@pytest.mark.asyncio
async def test_resolve_identity_timeout_is_transient():
    provider = _StaticProvider(identity=Identity(id="slow"), delay=0.5)
    resolution = await resolve_identity(_request({"Authorization": "Bearer t"}), provider, 0.05)
    assert not resolution.authenticated
    assert isinstance(resolution.failure, TransientDependencyFailure)
    assert resolution.failure.headers()["Retry-After"] == "5"


@pytest.mark.asyncio
async def test_resolve_identity_unexpected_error_is_unauthenticated():
    provider = _StaticProvider(error=KeyError("boom"))
    resolution = await resolve_identity(_request({"Authorization": "Bearer t"}), provider, 1.0)
    assert isinstance(resolution.failure, Unauthenticated)
