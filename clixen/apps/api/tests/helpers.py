"""Shared test doubles for identity, time and auth headers."""

from datetime import datetime, timedelta, timezone
from typing import Optional

from clixen_api.auth.identity import Identity

ADMIN_HEADERS = {"X-Admin-Token": "test-admin-token"}
BOT_HEADERS = {"X-Bot-Secret": "test-bot-secret"}

T0 = datetime(2026, 10, 18, 9, 0, tzinfo=timezone.utc)


class FakeIdentityProvider:
    """In-memory IdentityProvider: token -> Identity."""

    def __init__(self):
        self.users: dict[str, Identity] = {}
        self.error: Optional[BaseException] = None
        self.calls = 0

    def add(
        self,
        token: str,
        identity_id: str,
        email: Optional[str] = None,
        display_name: Optional[str] = None,
    ) -> Identity:
        identity = Identity(id=identity_id, email=email, display_name=display_name)
        self.users[token] = identity
        return identity

    def get_current_user(self, session_token: str) -> Optional[Identity]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.users.get(session_token)


class FakeClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
