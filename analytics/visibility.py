"""Daily visibility timeline per provider."""

from collections import defaultdict
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from accounts.rbac import SessionUser
from analytics.common import day, round_half_up, scoped_results
from core.errors import ValidationError
from database.models import TrackingResult
from providers.registry import PROVIDERS


def get_visibility_timeline(
    session: Session,
    user: SessionUser,
    domain_id: str,
    prompt_set_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Average visibility score per day and provider for one domain.

    Each day also carries ``avg``, the mean of that day's provider averages.
    The summary compares the last two days.

    Args:
        session: Database session
        user: Authenticated user
        domain_id: Domain ID
        prompt_set_id: Optional prompt set filter

    Returns:
        Dict with ``timeline`` and ``summary``

    Raises:
        ValidationError: If no domain is given
    """
    if not domain_id:
        raise ValidationError("domain is required")

    rows = (
        scoped_results(
            session,
            user,
            TrackingResult.created_at,
            TrackingResult.provider,
            TrackingResult.visibility_score,
            domain_id=domain_id,
            prompt_set_id=prompt_set_id,
        )
        .order_by(TrackingResult.created_at.asc())
        .all()
    )

    scores = defaultdict(list)  # (day, provider) -> scores
    days = []
    for row in rows:
        date = day(row.created_at)
        if date not in days:
            days.append(date)
        if row.visibility_score is not None:
            scores[(date, row.provider)].append(row.visibility_score)

    entries = []
    for date in days:
        entry: Dict[str, Any] = {"date": date}
        provider_avgs = []
        for provider in PROVIDERS:
            values = scores.get((date, provider))
            avg = round_half_up(sum(values) / len(values), 1) if values else None
            entry[provider] = avg
            if avg is not None:
                provider_avgs.append(avg)
        entry["avg"] = (
            round_half_up(sum(provider_avgs) / len(provider_avgs), 1) if provider_avgs else None
        )
        entries.append(entry)

    latest = entries[-1]["avg"] if entries else None
    previous = entries[-2]["avg"] if len(entries) >= 2 else None
    trend = (
        round_half_up(latest - previous, 1)
        if latest is not None and previous is not None
        else None
    )

    return {
        "timeline": entries,
        "summary": {
            "latestAvg": latest,
            "previousAvg": previous,
            "trend": trend,
            "totalDataPoints": len(rows),
            "timelineDays": len(entries),
        },
    }
