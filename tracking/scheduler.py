"""Starting tracking runs on demand and on their interval."""

import calendar
from datetime import datetime, timedelta
from typing import Dict, Optional

import structlog
from sqlalchemy.orm import Session

from accounts.access import get_access_status, require_access
from accounts.rbac import SessionUser, get_team_for_user, is_super_admin, owner_filter
from accounts.usage import check_prompt_quota
from core.errors import QuotaExceededError, ValidationError
from database.models import Domain, PromptSet, TrackingConfig, TrackingRun, User
from worker.job_queue import TRACKING_RUN_JOB, JobQueue

logger = structlog.get_logger(__name__)


def add_months(value: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the end of the target month."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def compute_next_run(interval: Optional[str], from_dt: datetime) -> Optional[datetime]:
    """Next scheduled run after ``from_dt``; None for on-demand configs.

    >>> compute_next_run("monthly", datetime(2025, 1, 31))
    datetime.datetime(2025, 2, 28, 0, 0)
    """
    if interval == "daily":
        return from_dt + timedelta(days=1)
    if interval == "weekly":
        return from_dt + timedelta(days=7)
    if interval == "monthly":
        return add_months(from_dt, 1)
    return None


def _create_run(session: Session, config: TrackingConfig, notify_email: Optional[str]) -> TrackingRun:
    run = TrackingRun(config_id=config.id, status="pending")
    session.add(run)
    session.flush()

    JobQueue(session).enqueue(
        TRACKING_RUN_JOB, {"run_id": run.id, "notify_email": notify_email}
    )
    return run


def start_run(session: Session, user: SessionUser, config_id: Optional[str] = None) -> Dict:
    """Create a pending run for a config and queue it for the worker pool.

    Without ``config_id`` the owner's first config is used.

    Args:
        session: Database session
        user: Authenticated user
        config_id: Tracking config ID

    Returns:
        Dict with ``runId`` and ``status``

    Raises:
        AccessDeniedError: Trial expired and no subscription
        ValidationError: No usable config
        QuotaExceededError: Not enough prompts left in the period
    """
    access = require_access(session, user)

    query = session.query(TrackingConfig).filter(owner_filter(TrackingConfig, user))
    if config_id:
        query = query.filter(TrackingConfig.id == config_id)
    config = query.order_by(TrackingConfig.created_at.asc()).first()
    if config is None:
        raise ValidationError("No tracking config found")

    domain = session.query(Domain).filter(Domain.id == config.domain_id).first()
    prompt_set = session.query(PromptSet).filter(PromptSet.id == config.prompt_set_id).first()
    if domain is None or prompt_set is None:
        raise ValidationError("Domain or prompt set not found")

    prompts = prompt_set.prompts or []
    if not is_super_admin(user.role):
        quota = check_prompt_quota(session, user.id, user.team_id, access.is_trial, len(prompts))
        if not quota.allowed:
            raise QuotaExceededError(quota.reason, payload={"usage": quota.usage.to_dict()})

    run = _create_run(session, config, user.email)
    logger.info(
        "tracking_run_started",
        run_id=run.id,
        config_id=config.id,
        user_id=user.id,
        prompts=len(prompts),
    )
    return {"runId": run.id, "status": run.status}


def run_scheduled(session: Session, now: Optional[datetime] = None) -> Dict[str, int]:
    """Queue runs for every config whose ``next_run_at`` has passed.

    ``next_run_at`` is advanced as soon as a run is queued so the next cron
    tick does not queue it again. Configs whose owner has no access or not
    enough quota are skipped and retried on the next tick.

    Returns:
        Counts of ``processed``, ``enqueued`` and ``skipped`` configs
    """
    now = now or datetime.utcnow()
    due = (
        session.query(TrackingConfig)
        .filter(TrackingConfig.next_run_at.isnot(None), TrackingConfig.next_run_at <= now)
        .order_by(TrackingConfig.next_run_at.asc())
        .all()
    )

    enqueued = 0
    skipped = 0
    for config in due:
        if config.domain is None or config.prompt_set is None:
            skipped += 1
            continue

        team = get_team_for_user(session, config.user_id)
        team_id = config.team_id or (team.team_id if team else None)
        role = team.role if team else None
        access = get_access_status(session, config.user_id, team_id, role, now=now)
        if not access.has_access:
            logger.info("scheduled_run_skipped", config_id=config.id, reason="no_access")
            skipped += 1
            continue

        quota_ok = is_super_admin(role) or check_prompt_quota(
            session,
            config.user_id,
            team_id,
            access.is_trial,
            len(config.prompt_set.prompts or []),
            now=now,
        ).allowed
        if not quota_ok:
            logger.info("scheduled_run_skipped", config_id=config.id, reason="quota_exceeded")
            skipped += 1
            continue

        owner_email = session.query(User.email).filter(User.id == config.user_id).scalar()
        run = _create_run(session, config, owner_email)
        config.next_run_at = compute_next_run(config.interval, now)
        enqueued += 1

        logger.info(
            "scheduled_run_enqueued",
            run_id=run.id,
            config_id=config.id,
            next_run_at=config.next_run_at.isoformat() if config.next_run_at else None,
        )

    logger.info("scheduled_runs_processed", processed=len(due), enqueued=enqueued, skipped=skipped)
    return {"processed": len(due), "enqueued": enqueued, "skipped": skipped}
