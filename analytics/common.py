"""Shared helpers for owner-scoped result queries."""

import math
from typing import Optional

from sqlalchemy.orm import Query, Session

from accounts.rbac import SessionUser, owner_filter
from database.models import Domain, PromptSet, TrackingConfig, TrackingResult, TrackingRun


def round_half_up(value: float, digits: int = 0) -> float:
    """Round halves away from zero for positives and toward +inf for negatives.

    >>> round_half_up(2.5), round_half_up(-2.5), round_half_up(1.25, 1)
    (3, -2, 1.3)
    """
    factor = 10 ** digits
    rounded = math.floor(value * factor + 0.5) / factor
    return int(rounded) if digits == 0 else rounded


def scoped_results(
    session: Session,
    user: SessionUser,
    *columns,
    domain_id: Optional[str] = None,
    prompt_set_id: Optional[str] = None,
    run_id: Optional[str] = None,
) -> Query:
    """Query over the owner's results joined with run, config, domain and prompt set."""
    query = (
        session.query(*columns)
        .select_from(TrackingResult)
        .join(TrackingRun, TrackingRun.id == TrackingResult.run_id)
        .join(TrackingConfig, TrackingConfig.id == TrackingRun.config_id)
        .join(Domain, Domain.id == TrackingConfig.domain_id)
        .join(PromptSet, PromptSet.id == TrackingConfig.prompt_set_id)
        .filter(owner_filter(TrackingConfig, user))
    )
    if domain_id:
        query = query.filter(Domain.id == domain_id)
    if prompt_set_id:
        query = query.filter(PromptSet.id == prompt_set_id)
    if run_id:
        query = query.filter(TrackingRun.id == run_id)
    return query


def day(value) -> str:
    return value.strftime("%Y-%m-%d") if value else "unknown"


def iso(value) -> Optional[str]:
    return value.isoformat() if value else None
