"""Run history and run detail views."""

from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from accounts.rbac import SessionUser, owner_filter
from analytics.common import iso
from core.errors import NotFoundError
from database.models import Domain, PromptSet, TrackingConfig, TrackingResult, TrackingRun
from providers.registry import PROVIDERS
from tracking.favicons import get_favicon_map
from tracking.scoring import extract_citation_domains

RUN_LIST_LIMIT = 50


def _runs_query(session: Session, user: SessionUser):
    return (
        session.query(TrackingRun, TrackingConfig, Domain, PromptSet)
        .join(TrackingConfig, TrackingConfig.id == TrackingRun.config_id)
        .join(Domain, Domain.id == TrackingConfig.domain_id)
        .join(PromptSet, PromptSet.id == TrackingConfig.prompt_set_id)
        .filter(owner_filter(TrackingConfig, user))
    )


def _run_summary(run: TrackingRun, config: TrackingConfig, domain: Domain, prompt_set: PromptSet) -> Dict[str, Any]:
    return {
        "id": run.id,
        "status": run.status,
        "startedAt": iso(run.started_at),
        "completedAt": iso(run.completed_at),
        "errorMessage": run.error_message,
        "configId": config.id,
        "interval": config.interval,
        "domain": {"id": domain.id, "name": domain.name, "domainUrl": domain.domain_url},
        "promptSet": {
            "id": prompt_set.id,
            "name": prompt_set.name,
            "promptCount": len(prompt_set.prompts or []),
        },
    }


def list_runs(
    session: Session,
    user: SessionUser,
    domain_id: Optional[str] = None,
    prompt_set_id: Optional[str] = None,
    status: Optional[str] = None,
    limit: int = RUN_LIST_LIMIT,
) -> Dict[str, Any]:
    """Most recent runs of the owner plus the filter options that have runs."""
    query = _runs_query(session, user)
    if domain_id:
        query = query.filter(Domain.id == domain_id)
    if prompt_set_id:
        query = query.filter(PromptSet.id == prompt_set_id)
    if status:
        query = query.filter(TrackingRun.status == status)

    rows = query.order_by(TrackingRun.started_at.desc()).limit(limit).all()

    domains = (
        session.query(Domain.id, Domain.name)
        .filter(owner_filter(Domain, user))
        .distinct()
        .order_by(Domain.name)
        .all()
    )
    prompt_sets = (
        session.query(PromptSet.id, PromptSet.name)
        .filter(owner_filter(PromptSet, user))
        .distinct()
        .order_by(PromptSet.name)
        .all()
    )

    return {
        "runs": [_run_summary(*row) for row in rows],
        "domains": [{"id": d.id, "name": d.name} for d in domains],
        "promptSets": [{"id": p.id, "name": p.name} for p in prompt_sets],
    }


def get_run_detail(session: Session, user: SessionUser, run_id: str) -> Dict[str, Any]:
    """A run with its results grouped by provider.

    Raises:
        NotFoundError: If the run does not exist or belongs to another owner
    """
    row = _runs_query(session, user).filter(TrackingRun.id == run_id).first()
    if row is None:
        raise NotFoundError("Run not found")

    results: List[TrackingResult] = (
        session.query(TrackingResult)
        .filter(TrackingResult.run_id == run_id)
        .order_by(TrackingResult.created_at.asc())
        .all()
    )

    by_provider: Dict[str, List[Dict[str, Any]]] = {p: [] for p in PROVIDERS}
    cited: List[str] = []
    for result in results:
        cited.extend(result.citations or [])
        by_provider.setdefault(result.provider, []).append(
            {
                "id": result.id,
                "prompt": result.prompt,
                "response": result.response,
                "visibilityScore": result.visibility_score,
                "mentionCount": result.mention_count,
                "citations": result.citations or [],
                "sentiment": result.sentiment,
                "sentimentScore": result.sentiment_score,
                "inputTokens": result.input_tokens,
                "outputTokens": result.output_tokens,
                "createdAt": iso(result.created_at),
            }
        )

    detail = _run_summary(*row)
    detail["resultsByProvider"] = {p: items for p, items in by_provider.items() if items}
    detail["resultCount"] = len(results)
    detail["favicons"] = get_favicon_map(session, extract_citation_domains(cited))
    return detail
