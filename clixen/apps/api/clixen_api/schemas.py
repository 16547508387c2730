"""Pydantic schemas for API requests/responses."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, StrictInt

from clixen_api.policy.trial import AccessStatus


class ProblemDetail(BaseModel):
    """RFC 9457 Problem Details for HTTP API errors.

    RFC 9457: detail can be either a string or a structured object (dict).
    """

    type: str = Field(..., description="URI reference identifying the problem type")
    title: str = Field(..., description="Short, human-readable summary")
    status: int = Field(..., description="HTTP status code")
    detail: str | dict[str, Any] = Field(..., description="Human-readable explanation or structured error details")
    instance: Optional[str] = Field(None, description="URI reference identifying the specific occurrence")


# ============================================================================
# Profile
# ============================================================================


class QuotaInfo(BaseModel):
    used: int
    limit: int = Field(..., description="-1 means unlimited")
    remaining: Optional[int] = Field(None, description="None when unlimited")


class TrialInfo(BaseModel):
    active: bool
    started_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    days_remaining: int


class TelegramInfo(BaseModel):
    linked: bool
    username: Optional[str] = None
    linked_at: Optional[datetime] = None


class ProfileResponse(BaseModel):
    """Response for GET /api/me and the page documents."""

    id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    tier: str
    quota: QuotaInfo
    trial: TrialInfo
    telegram: TelegramInfo
    has_bot_access: bool
    access: AccessStatus
    created_at: datetime
    last_activity_at: datetime


# ============================================================================
# POST /api/usage/consume
# ============================================================================


class ConsumeRequest(BaseModel):
    amount: StrictInt = Field(default=1, description="Credits to consume (positive integer)")


class ConsumeResponse(BaseModel):
    profile_id: str
    consumed: int
    quota: QuotaInfo


# ============================================================================
# Telegram link
# ============================================================================


class LinkTokenResponse(BaseModel):
    """Response for POST /api/telegram/link (display once)."""

    token: str
    expires_at: datetime
    expires_in_seconds: int
    instructions: str


class LinkStatusResponse(BaseModel):
    linked: bool
    telegram_chat_id: Optional[int] = None
    telegram_username: Optional[str] = None
    telegram_linked_at: Optional[datetime] = None


class UnlinkResponse(BaseModel):
    unlinked: bool
    message: str


class LinkConsumeRequest(BaseModel):
    """Sent by the bot when a user runs /start <token>."""

    token: str = Field(..., min_length=1, max_length=256)
    chat_id: StrictInt
    username: Optional[str] = Field(None, max_length=64)


class LinkConsumeResponse(BaseModel):
    linked: bool
    profile_id: str
    telegram_chat_id: int
    telegram_username: Optional[str] = None


class ChatAccessResponse(BaseModel):
    linked: bool
    has_access: bool
    profile_id: Optional[str] = None
    tier: Optional[str] = None
    message: str


class BotUsageRequest(BaseModel):
    chat_id: StrictInt
    amount: StrictInt = 1


# ============================================================================
# Internal
# ============================================================================


class PlanChangeRequest(BaseModel):
    tier: str = Field(..., description="free | starter | pro | enterprise")


class PerfResponse(BaseModel):
    window_seconds: int
    sample_count: int
    stats: dict[str, dict[str, float]]
