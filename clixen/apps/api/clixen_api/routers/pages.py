"""Page documents for the web dashboard.

Each protected page returns the JSON model the UI renders. Redirects for
anonymous callers are handled by RouteGuardMiddleware before these handlers
run; the session dependency still enforces authentication for direct calls.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from clixen_api.auth.session_auth import get_current_profile, get_now
from clixen_api.db.models import Profile
from clixen_api.policy import trial
from clixen_api.policy.plans import PLANS, PlanModel
from clixen_api.schemas import (
    LinkStatusResponse,
    ProfileResponse,
    QuotaInfo,
    TelegramInfo,
    TrialInfo,
)
from clixen_api.services.telegram_link import get_link_status

router = APIRouter(tags=["pages"])
logger = logging.getLogger(__name__)


class LandingPage(BaseModel):
    page: str = "landing"
    authenticated: bool
    show_auth_modal: bool
    redirect: Optional[str] = None
    plans: list[PlanModel]


class DashboardPage(BaseModel):
    page: str = "dashboard"
    profile: ProfileResponse


class ProfilePage(BaseModel):
    page: str = "profile"
    profile: ProfileResponse
    telegram: LinkStatusResponse


class BotAccessPage(BaseModel):
    page: str = "bot-access"
    has_bot_access: bool
    access: trial.AccessStatus
    telegram: LinkStatusResponse


class SubscriptionPage(BaseModel):
    page: str = "subscription"
    current_tier: str
    quota: QuotaInfo
    plans: list[PlanModel]


def quota_info(profile: Profile) -> QuotaInfo:
    return QuotaInfo(
        used=profile.quota_used,
        limit=profile.quota_limit,
        remaining=trial.credits_remaining(profile.snapshot()),
    )


def build_profile_response(profile: Profile, now: datetime) -> ProfileResponse:
    state = profile.snapshot()
    return ProfileResponse(
        id=profile.id,
        email=profile.email,
        display_name=profile.display_name,
        tier=profile.tier,
        quota=quota_info(profile),
        trial=TrialInfo(
            active=trial.is_trial_active(state, now),
            started_at=profile.trial_started_at,
            expires_at=profile.trial_expires_at,
            days_remaining=trial.trial_days_remaining(state, now),
        ),
        telegram=TelegramInfo(
            linked=profile.is_telegram_linked,
            username=profile.telegram_username,
            linked_at=profile.telegram_linked_at,
        ),
        has_bot_access=trial.has_bot_access(state, now),
        access=trial.access_status(state, now),
        created_at=profile.created_at,
        last_activity_at=profile.last_activity_at,
    )


def _link_status(profile: Profile) -> LinkStatusResponse:
    return LinkStatusResponse(**get_link_status(profile).model_dump())


@router.get("/", response_model=LandingPage)
async def landing(request: Request) -> LandingPage:
    """Public landing page. Authenticated callers are redirected by the route guard."""
    resolution = getattr(request.state, "identity_resolution", None)
    return LandingPage(
        authenticated=bool(resolution and resolution.authenticated),
        show_auth_modal=request.query_params.get("auth") == "true",
        redirect=request.query_params.get("redirect"),
        plans=list(PLANS.values()),
    )


@router.get("/dashboard", response_model=DashboardPage)
def dashboard(
    profile: Profile = Depends(get_current_profile),
    now: datetime = Depends(get_now),
) -> DashboardPage:
    return DashboardPage(profile=build_profile_response(profile, now))


@router.get("/profile", response_model=ProfilePage)
def profile_page(
    profile: Profile = Depends(get_current_profile),
    now: datetime = Depends(get_now),
) -> ProfilePage:
    return ProfilePage(
        profile=build_profile_response(profile, now),
        telegram=_link_status(profile),
    )


@router.get("/bot-access", response_model=BotAccessPage)
def bot_access_page(
    profile: Profile = Depends(get_current_profile),
    now: datetime = Depends(get_now),
) -> BotAccessPage:
    state = profile.snapshot()
    return BotAccessPage(
        has_bot_access=trial.has_bot_access(state, now),
        access=trial.access_status(state, now),
        telegram=_link_status(profile),
    )


@router.get("/subscription", response_model=SubscriptionPage)
def subscription_page(profile: Profile = Depends(get_current_profile)) -> SubscriptionPage:
    return SubscriptionPage(
        current_tier=profile.tier,
        quota=quota_info(profile),
        plans=list(PLANS.values()),
    )


@router.get("/api/me", response_model=ProfileResponse)
def me(
    profile: Profile = Depends(get_current_profile),
    now: datetime = Depends(get_now),
) -> ProfileResponse:
    return build_profile_response(profile, now)
