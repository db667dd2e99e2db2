"""Sentiment overview across providers, days and prompts."""

from collections import defaultdict
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from accounts.rbac import SessionUser
from analytics.common import day, iso, round_half_up, scoped_results
from database.models import Domain, PromptSet, TrackingResult
from tracking.categories import matches_category

PROMPT_KEY_CHARS = 200
NEGATIVE_EXCERPT_CHARS = 300
RECENT_NEGATIVE_LIMIT = 10


def _bucket() -> Dict[str, int]:
    return {"positive": 0, "neutral": 0, "negative": 0, "score": 0, "count": 0}


def _add(bucket: Dict[str, int], sentiment: str, score: Optional[int]):
    key = sentiment if sentiment in ("positive", "negative") else "neutral"
    bucket[key] += 1
    bucket["score"] += score or 0
    bucket["count"] += 1


def _avg(bucket: Dict[str, int]) -> int:
    return round_half_up(bucket["score"] / bucket["count"]) if bucket["count"] else 0


def get_sentiment_overview(
    session: Session,
    user: SessionUser,
    domain_id: Optional[str] = None,
    run_id: Optional[str] = None,
    category: Optional[str] = None,
) -> Dict[str, Any]:
    """Aggregate classified results into totals, per-provider, daily and per-prompt views.

    Args:
        session: Database session
        user: Authenticated user
        domain_id: Optional domain filter
        run_id: Optional run filter
        category: Optional funnel phase or subcategory filter

    Returns:
        Dict with ``totals``, ``byProvider``, ``overTime``, ``promptRanking``
        and ``recentNegative``
    """
    rows = (
        scoped_results(
            session,
            user,
            TrackingResult.sentiment,
            TrackingResult.sentiment_score,
            TrackingResult.provider,
            TrackingResult.prompt,
            TrackingResult.response,
            TrackingResult.created_at,
            Domain.name.label("domain_name"),
            PromptSet.intent_categories,
            domain_id=domain_id,
            run_id=run_id,
        )
        .filter(TrackingResult.sentiment.isnot(None))
        .all()
    )
    rows = [r for r in rows if matches_category(r.intent_categories, category)]

    totals = _bucket()
    by_provider = defaultdict(_bucket)
    by_date = defaultdict(_bucket)
    by_prompt = defaultdict(_bucket)

    for r in rows:
        _add(totals, r.sentiment, r.sentiment_score)
        _add(by_provider[r.provider], r.sentiment, r.sentiment_score)
        _add(by_date[day(r.created_at)], r.sentiment, r.sentiment_score)
        _add(by_prompt[r.prompt[:PROMPT_KEY_CHARS]], r.sentiment, r.sentiment_score)

    prompt_ranking = sorted(
        (
            {
                "prompt": prompt,
                "avgScore": _avg(b),
                "positive": b["positive"],
                "neutral": b["neutral"],
                "negative": b["negative"],
                "total": b["count"],
            }
            for prompt, b in by_prompt.items()
        ),
        key=lambda item: item["avgScore"],
    )

    negatives = sorted(
        (r for r in rows if r.sentiment == "negative"),
        key=lambda r: r.created_at,
        reverse=True,
    )[:RECENT_NEGATIVE_LIMIT]
    recent_negative: List[Dict[str, Any]] = [
        {
            "prompt": r.prompt,
            "provider": r.provider,
            "response": r.response[:NEGATIVE_EXCERPT_CHARS],
            "score": r.sentiment_score,
            "date": iso(r.created_at),
            "domain": r.domain_name,
        }
        for r in negatives
    ]

    return {
        "totals": {
            "positive": totals["positive"],
            "neutral": totals["neutral"],
            "negative": totals["negative"],
            "total": totals["count"],
            "avgScore": _avg(totals),
        },
        "byProvider": {
            provider: {
                "positive": b["positive"],
                "neutral": b["neutral"],
                "negative": b["negative"],
                "avgScore": _avg(b),
                "total": b["count"],
            }
            for provider, b in by_provider.items()
        },
        "overTime": [
            {
                "date": date,
                "positive": b["positive"],
                "neutral": b["neutral"],
                "negative": b["negative"],
                "avgScore": _avg(b),
            }
            for date, b in sorted(by_date.items())
        ],
        "promptRanking": prompt_ranking,
        "recentNegative": recent_negative,
    }
