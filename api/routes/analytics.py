"""Dashboard read models: visibility, sentiment, sources, usage and access."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from accounts.access import get_access_status
from accounts.rbac import SessionUser
from accounts.usage import get_prompt_usage
from analytics.sentiment import get_sentiment_overview
from analytics.sources import get_source_analytics
from analytics.visibility import get_visibility_timeline
from api.deps import get_active_user, get_current_user, get_db_session

router = APIRouter(prefix="/api", tags=["analytics"])


@router.get("/visibility")
def visibility(
    domain: Optional[str] = Query(None),
    promptSet: Optional[str] = Query(None),
    user: SessionUser = Depends(get_active_user),
    session: Session = Depends(get_db_session),
):
    return get_visibility_timeline(session, user, domain, promptSet)


@router.get("/sentiment")
def sentiment(
    domain: Optional[str] = Query(None),
    run: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    user: SessionUser = Depends(get_active_user),
    session: Session = Depends(get_db_session),
):
    return get_sentiment_overview(session, user, domain_id=domain, run_id=run, category=category)


@router.get("/analytics")
def sources(
    domain: Optional[str] = Query(None),
    promptSet: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    user: SessionUser = Depends(get_active_user),
    session: Session = Depends(get_db_session),
):
    return get_source_analytics(session, user, domain, prompt_set_id=promptSet, category=category)


@router.get("/access")
def access(user: SessionUser = Depends(get_current_user), session: Session = Depends(get_db_session)):
    return get_access_status(session, user.id, user.team_id, user.role).to_dict()


@router.get("/usage")
def usage(user: SessionUser = Depends(get_current_user), session: Session = Depends(get_db_session)):
    status = get_access_status(session, user.id, user.team_id, user.role)
    prompt_usage = get_prompt_usage(session, user.id, user.team_id, status.is_trial)
    return {**prompt_usage.to_dict(), "isTrial": status.is_trial, "hasAccess": status.has_access}
