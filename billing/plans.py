"""Subscription plans and their limits."""

from dataclasses import dataclass
from typing import Dict, Optional

from core.config import Config, get_config

PLAN_IDS = ("starter", "team", "professional")


@dataclass(frozen=True)
class Plan:
    id: str
    stripe_price_id: str
    price_monthly: int  # EUR
    prompts_per_month: int
    max_team_members: Optional[int]  # None = unlimited

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "priceMonthly": self.price_monthly,
            "promptsPerMonth": self.prompts_per_month,
            "maxTeamMembers": self.max_team_members,
        }


def get_plans(config: Optional[Config] = None) -> Dict[str, Plan]:
    """All plans keyed by id, with Stripe price ids from configuration."""
    config = config or get_config()
    return {
        "starter": Plan(
            id="starter",
            stripe_price_id=config.stripe_price_starter,
            price_monthly=69,
            prompts_per_month=50,
            max_team_members=3,
        ),
        "team": Plan(
            id="team",
            stripe_price_id=config.stripe_price_team,
            price_monthly=99,
            prompts_per_month=100,
            max_team_members=None,
        ),
        "professional": Plan(
            id="professional",
            stripe_price_id=config.stripe_price_professional,
            price_monthly=249,
            prompts_per_month=300,
            max_team_members=None,
        ),
    }


def get_plan(plan_id: Optional[str], config: Optional[Config] = None) -> Optional[Plan]:
    if not plan_id:
        return None
    return get_plans(config).get(plan_id)


def get_plan_by_price_id(price_id: str, config: Optional[Config] = None) -> Optional[Plan]:
    for plan in get_plans(config).values():
        if plan.stripe_price_id == price_id:
            return plan
    return None
