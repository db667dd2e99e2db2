"""Plans and Stripe billing."""

from billing.plans import PLAN_IDS, Plan, get_plan, get_plan_by_price_id, get_plans

__all__ = ["PLAN_IDS", "Plan", "get_plan", "get_plan_by_price_id", "get_plans"]
