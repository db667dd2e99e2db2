"""Starting runs, run history and the scheduler's cron hook."""

import secrets
from typing import Optional

import structlog
from fastapi import APIRouter, Body, Depends, Query, Request
from sqlalchemy.orm import Session

from accounts.rbac import SessionUser
from analytics.runs import get_run_detail, list_runs
from api.deps import get_active_user, get_current_user, get_db_session, get_settings
from api.schemas import StartRunRequest
from core.config import Config
from core.errors import AuthenticationError
from tracking.scheduler import run_scheduled, start_run

router = APIRouter(prefix="/api", tags=["tracking"])
logger = structlog.get_logger(__name__)


@router.post("/tracking/run")
def start_tracking_run(
    body: Optional[StartRunRequest] = Body(None),
    user: SessionUser = Depends(get_current_user),
    session: Session = Depends(get_db_session),
):
    return start_run(session, user, body.configId if body else None)


@router.get("/tracking/runs")
def tracking_runs(
    domain: Optional[str] = Query(None),
    promptSet: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    user: SessionUser = Depends(get_active_user),
    session: Session = Depends(get_db_session),
):
    return list_runs(session, user, domain_id=domain, prompt_set_id=promptSet, status=status)


@router.get("/tracking/runs/{run_id}")
def tracking_run_detail(
    run_id: str,
    user: SessionUser = Depends(get_active_user),
    session: Session = Depends(get_db_session),
):
    return get_run_detail(session, user, run_id)


@router.get("/cron/run-scheduled")
def cron_run_scheduled(
    request: Request,
    session: Session = Depends(get_db_session),
    config: Config = Depends(get_settings),
):
    expected = f"Bearer {config.cron_secret}"
    provided = request.headers.get("authorization", "")
    if not config.cron_secret or not secrets.compare_digest(provided, expected):
        logger.warning("cron_unauthorized")
        raise AuthenticationError("Unauthorized")
    return run_scheduled(session)
