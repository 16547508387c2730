"""Plan catalog: tier -> monthly credit ceiling."""

from enum import Enum

from pydantic import BaseModel

UNLIMITED_QUOTA = -1


class Tier(str, Enum):
    """Subscription tiers. Anything other than FREE grants bot access."""

    FREE = "free"
    STARTER = "starter"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class PlanModel(BaseModel):
    tier: Tier
    name: str
    monthly_credits: int
    price_usd: int


PLANS: dict[Tier, PlanModel] = {
    Tier.FREE: PlanModel(tier=Tier.FREE, name="Free Trial", monthly_credits=50, price_usd=0),
    Tier.STARTER: PlanModel(tier=Tier.STARTER, name="Starter", monthly_credits=100, price_usd=9),
    Tier.PRO: PlanModel(tier=Tier.PRO, name="Professional", monthly_credits=500, price_usd=29),
    Tier.ENTERPRISE: PlanModel(
        tier=Tier.ENTERPRISE, name="Enterprise", monthly_credits=2000, price_usd=99
    ),
}


def quota_limit_for(tier: Tier | str) -> int:
    """Return the credit ceiling for ``tier``.

    Raises:
        ValueError: If ``tier`` is not a known tier
    """
    return PLANS[Tier(tier)].monthly_credits
