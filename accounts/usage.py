"""Per-period prompt metering against plan and trial limits."""

import calendar
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

import structlog
from sqlalchemy.orm import Session

from accounts.access import get_latest_subscription
from billing.plans import get_plan
from core.config import Config, get_config
from database.models import PromptSet, TrackingConfig, TrackingResult, TrackingRun

logger = structlog.get_logger(__name__)


@dataclass
class PromptUsage:
    used: int
    limit: int
    remaining: int
    period_start: datetime
    period_end: datetime
    configured: int = 0

    def to_dict(self) -> dict:
        return {
            "used": self.used,
            "limit": self.limit,
            "remaining": self.remaining,
            "periodStart": self.period_start.isoformat(),
            "periodEnd": self.period_end.isoformat(),
            "configured": self.configured,
        }


@dataclass
class QuotaCheck:
    allowed: bool
    usage: PromptUsage
    reason: Optional[str] = None


def _owner_clause(model, user_id: str, team_id: Optional[str]):
    return model.team_id == team_id if team_id else model.user_id == user_id


def calendar_month(now: datetime) -> Tuple[datetime, datetime]:
    """First and last instant of the month containing ``now``."""
    last_day = calendar.monthrange(now.year, now.month)[1]
    start = datetime(now.year, now.month, 1)
    end = datetime(now.year, now.month, last_day, 23, 59, 59, 999999)
    return start, end


def count_configured_prompts(session: Session, user_id: str, team_id: Optional[str]) -> int:
    """Sum of prompt-set sizes over all tracking configs of the owner."""
    rows = (
        session.query(PromptSet.prompts)
        .join(TrackingConfig, TrackingConfig.prompt_set_id == PromptSet.id)
        .filter(_owner_clause(TrackingConfig, user_id, team_id))
        .all()
    )
    return sum(len(row.prompts or []) for row in rows)


def count_executed_prompts(
    session: Session,
    user_id: str,
    team_id: Optional[str],
    period_start: datetime,
    period_end: datetime,
) -> int:
    """Prompts executed in a period.

    Each prompt counts once per run, regardless of how many providers
    answered it.
    """
    query = (
        session.query(TrackingResult.run_id, TrackingResult.prompt)
        .join(TrackingRun, TrackingRun.id == TrackingResult.run_id)
        .join(TrackingConfig, TrackingConfig.id == TrackingRun.config_id)
        .filter(
            _owner_clause(TrackingConfig, user_id, team_id),
            TrackingResult.created_at >= period_start,
            TrackingResult.created_at <= period_end,
        )
    )
    return query.distinct().count()


def get_prompt_usage(
    session: Session,
    user_id: str,
    team_id: Optional[str],
    is_trial: bool,
    now: Optional[datetime] = None,
    config: Optional[Config] = None,
) -> PromptUsage:
    """Current prompt usage of a team (or user).

    Paid teams are metered over the subscription's current period against
    the plan limit. Trials use the calendar month and the trial limit.
    Teams without a paid period get a limit of zero.

    Args:
        session: Database session
        user_id: User ID
        team_id: Team ID
        is_trial: Whether access comes from the trial window
        now: Current time override
        config: Configuration (defaults to the global one)

    Returns:
        PromptUsage
    """
    config = config or get_config()
    now = now or datetime.utcnow()

    if not is_trial and team_id:
        subscription = get_latest_subscription(session, team_id)
        if (
            subscription is not None
            and subscription.current_period_start
            and subscription.current_period_end
        ):
            plan = get_plan(subscription.plan, config)
            limit = plan.prompts_per_month if plan else 0
            period_start = subscription.current_period_start
            period_end = subscription.current_period_end
        else:
            limit = 0
            period_start, period_end = calendar_month(now)
    else:
        limit = config.trial_prompts_per_month
        period_start, period_end = calendar_month(now)

    used = count_executed_prompts(session, user_id, team_id, period_start, period_end)

    return PromptUsage(
        used=used,
        limit=limit,
        remaining=max(0, limit - used),
        period_start=period_start,
        period_end=period_end,
        configured=count_configured_prompts(session, user_id, team_id),
    )


def check_prompt_quota(
    session: Session,
    user_id: str,
    team_id: Optional[str],
    is_trial: bool,
    prompt_count: int,
    now: Optional[datetime] = None,
    config: Optional[Config] = None,
) -> QuotaCheck:
    """Check whether ``prompt_count`` more prompts fit into the current period."""
    usage = get_prompt_usage(session, user_id, team_id, is_trial, now=now, config=config)

    if usage.remaining < prompt_count:
        reason = (
            f"Prompt limit reached: {usage.used}/{usage.limit} used. "
            f"This run needs {prompt_count} prompts but only {usage.remaining} remain."
        )
        logger.info(
            "prompt_quota_exceeded",
            user_id=user_id,
            team_id=team_id,
            used=usage.used,
            limit=usage.limit,
            needed=prompt_count,
        )
        return QuotaCheck(allowed=False, usage=usage, reason=reason)

    return QuotaCheck(allowed=True, usage=usage)
