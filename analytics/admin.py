"""Platform-wide statistics and team overview for super admins."""

from collections import OrderedDict, defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from accounts.access import get_latest_subscription
from analytics.common import day, iso, round_half_up
from database.models import Domain, PromptSet, Team, TeamMember, TrackingResult, User
from providers.registry import PROVIDERS

# USD per 1M tokens
MODEL_PRICING = {
    "chatgpt": {"input": 0.15, "output": 0.60},
    "claude": {"input": 0.80, "output": 4.00},
    "gemini": {"input": 0.075, "output": 0.30},
    "perplexity": {"input": 1.00, "output": 1.00},
}

CHARS_PER_TOKEN = 4
HISTORY_DAYS = 90


def estimate_cost(provider: str, input_tokens: int, output_tokens: int) -> float:
    pricing = MODEL_PRICING.get(provider)
    if pricing is None:
        return 0.0
    return (input_tokens / 1_000_000) * pricing["input"] + (
        output_tokens / 1_000_000
    ) * pricing["output"]


def _cumulative(dates: Iterable[Optional[datetime]]) -> List[Dict[str, Any]]:
    per_day = defaultdict(int)
    for value in dates:
        if value is not None:
            per_day[day(value)] += 1

    series = []
    total = 0
    for date in sorted(per_day):
        total += per_day[date]
        series.append({"date": date, "count": total})
    return series


def _empty_day(date: str) -> Dict[str, Any]:
    entry: Dict[str, Any] = {"date": date}
    entry.update({provider: 0 for provider in PROVIDERS})
    entry["total"] = 0
    return entry


def _token_columns():
    """Actual token sums plus a character-based estimate for rows without usage."""
    return (
        func.coalesce(func.sum(TrackingResult.input_tokens), 0),
        func.coalesce(func.sum(TrackingResult.output_tokens), 0),
        func.coalesce(
            func.sum(
                case(
                    (TrackingResult.input_tokens.is_(None), func.length(TrackingResult.prompt) / CHARS_PER_TOKEN),
                    else_=0,
                )
            ),
            0,
        ),
        func.coalesce(
            func.sum(
                case(
                    (TrackingResult.output_tokens.is_(None), func.length(TrackingResult.response) / CHARS_PER_TOKEN),
                    else_=0,
                )
            ),
            0,
        ),
    )


def get_admin_stats(session: Session, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Totals, growth series, API call volume and estimated provider cost.

    Costs use recorded token counts where available and estimate
    ``len(text) / 4`` tokens for rows without usage data.

    Args:
        session: Database session
        now: Current time override

    Returns:
        Statistics dict for the admin dashboard
    """
    now = now or datetime.utcnow()
    since = now - timedelta(days=HISTORY_DAYS)

    # API calls per day and provider
    calls = OrderedDict()
    recent = (
        session.query(TrackingResult.created_at, TrackingResult.provider)
        .filter(TrackingResult.created_at >= since)
        .order_by(TrackingResult.created_at.asc())
        .all()
    )
    for row in recent:
        date = day(row.created_at)
        entry = calls.setdefault(date, _empty_day(date))
        if row.provider in MODEL_PRICING:
            entry[row.provider] += 1
            entry["total"] += 1

    # Cost per provider over all time
    cost_rows = (
        session.query(
            TrackingResult.provider,
            *_token_columns(),
            func.count(TrackingResult.input_tokens),
            func.count(TrackingResult.id),
        )
        .group_by(TrackingResult.provider)
        .all()
    )
    costs = []
    total_cost = 0.0
    rows_with_usage = 0
    rows_total = 0
    for provider, actual_in, actual_out, est_in, est_out, with_usage, count in cost_rows:
        if provider not in MODEL_PRICING:
            continue
        input_tokens = int(actual_in) + int(est_in)
        output_tokens = int(actual_out) + int(est_out)
        cost = estimate_cost(provider, input_tokens, output_tokens)
        costs.append(
            {
                "provider": provider,
                "inputTokens": input_tokens,
                "outputTokens": output_tokens,
                "cost": round_half_up(cost, 4),
                "calls": count,
                "hasActualUsage": with_usage > 0,
            }
        )
        total_cost += cost
        rows_with_usage += with_usage
        rows_total += count

    # Daily cost per provider
    daily_costs = OrderedDict()
    daily_rows = (
        session.query(
            TrackingResult.created_at,
            TrackingResult.provider,
            TrackingResult.input_tokens,
            TrackingResult.output_tokens,
            func.length(TrackingResult.prompt),
            func.length(TrackingResult.response),
        )
        .filter(TrackingResult.created_at >= since)
        .order_by(TrackingResult.created_at.asc())
        .all()
    )
    daily_tokens = defaultdict(lambda: [0, 0])
    for created_at, provider, input_tokens, output_tokens, prompt_len, response_len in daily_rows:
        date = day(created_at)
        daily_costs.setdefault(date, _empty_day(date))
        tokens = daily_tokens[(date, provider)]
        tokens[0] += input_tokens if input_tokens is not None else prompt_len // CHARS_PER_TOKEN
        tokens[1] += output_tokens if output_tokens is not None else response_len // CHARS_PER_TOKEN
    for (date, provider), (input_tokens, output_tokens) in daily_tokens.items():
        if provider not in MODEL_PRICING:
            continue
        cost = round_half_up(estimate_cost(provider, input_tokens, output_tokens), 4)
        daily_costs[date][provider] = cost
        daily_costs[date]["total"] += cost

    return {
        "totals": {
            "users": session.query(func.count(User.id)).scalar(),
            "domains": session.query(func.count(Domain.id)).scalar(),
            "promptSets": session.query(func.count(PromptSet.id)).scalar(),
            "apiCalls": session.query(func.count(TrackingResult.id)).scalar(),
            "estimatedCost": round_half_up(total_cost, 2),
        },
        "usageCoverage": round_half_up(rows_with_usage / rows_total * 100) if rows_total else 0,
        "usersOverTime": _cumulative(r[0] for r in session.query(User.registered_at).all()),
        "domainsOverTime": _cumulative(r[0] for r in session.query(Domain.created_at).all()),
        "promptSetsOverTime": _cumulative(r[0] for r in session.query(PromptSet.created_at).all()),
        "apiCallsPerDay": list(calls.values()),
        "costByProvider": costs,
        "dailyCosts": list(daily_costs.values()),
    }


def list_teams(session: Session) -> List[Dict[str, Any]]:
    """Every team with members, domains, prompt sets and latest subscription."""
    teams = session.query(Team).order_by(Team.created_at.desc()).all()

    members = defaultdict(list)
    for member, user in session.query(TeamMember, User).join(User, User.id == TeamMember.user_id).all():
        members[member.team_id].append(
            {
                "userId": user.id,
                "name": user.name,
                "email": user.email,
                "image": user.image,
                "role": member.role,
                "joinedAt": iso(member.joined_at),
            }
        )

    domains = defaultdict(list)
    for domain in session.query(Domain).filter(Domain.team_id.isnot(None)).all():
        domains[domain.team_id].append(
            {"id": domain.id, "name": domain.name, "domainUrl": domain.domain_url}
        )

    prompt_sets = defaultdict(list)
    for prompt_set in session.query(PromptSet).filter(PromptSet.team_id.isnot(None)).all():
        prompt_sets[prompt_set.team_id].append(
            {
                "id": prompt_set.id,
                "name": prompt_set.name,
                "promptCount": len(prompt_set.prompts or []),
            }
        )

    result = []
    for team in teams:
        subscription = get_latest_subscription(session, team.id)
        result.append(
            {
                "id": team.id,
                "name": team.name,
                "createdAt": iso(team.created_at),
                "domainCount": len(domains[team.id]),
                "subscription": (
                    {"plan": subscription.plan, "status": subscription.status}
                    if subscription
                    else None
                ),
                "members": members[team.id],
                "domains": domains[team.id],
                "promptSets": prompt_sets[team.id],
            }
        )
    return result
