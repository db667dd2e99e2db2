"""Owner-scoped CRUD for domains, prompt sets and tracking configs."""

from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy.orm import Session

from accounts.access import require_access
from accounts.rbac import SessionUser, owner_filter
from analytics.common import iso
from core.errors import NotFoundError, ValidationError
from database.models import INTERVALS, Domain, PromptSet, TrackingConfig
from tracking.categories import ALL_SUBCATEGORY_IDS, FUNNEL_PHASES
from tracking.scheduler import compute_next_run

logger = structlog.get_logger(__name__)


def serialize_domain(domain: Domain) -> Dict[str, Any]:
    return {
        "id": domain.id,
        "userId": domain.user_id,
        "teamId": domain.team_id,
        "name": domain.name,
        "domainUrl": domain.domain_url,
        "createdAt": iso(domain.created_at),
    }


def serialize_prompt_set(prompt_set: PromptSet) -> Dict[str, Any]:
    return {
        "id": prompt_set.id,
        "userId": prompt_set.user_id,
        "teamId": prompt_set.team_id,
        "name": prompt_set.name,
        "prompts": list(prompt_set.prompts or []),
        "intentCategories": prompt_set.intent_categories,
        "createdAt": iso(prompt_set.created_at),
    }


def serialize_config(config: TrackingConfig) -> Dict[str, Any]:
    return {
        "id": config.id,
        "userId": config.user_id,
        "teamId": config.team_id,
        "domainId": config.domain_id,
        "promptSetId": config.prompt_set_id,
        "interval": config.interval,
        "nextRunAt": iso(config.next_run_at),
        "createdAt": iso(config.created_at),
    }


def _get_owned(session: Session, user: SessionUser, model, item_id: str):
    item = (
        session.query(model)
        .filter(model.id == item_id, owner_filter(model, user))
        .first()
    )
    if item is None:
        raise NotFoundError("Not found")
    return item


def _clean_prompts(prompts: Any) -> List[str]:
    if not isinstance(prompts, list):
        raise ValidationError("prompts must be a list")
    cleaned = [p.strip() for p in prompts if isinstance(p, str) and p.strip()]
    if not cleaned:
        raise ValidationError("At least one prompt is required")
    return cleaned


def _clean_categories(categories: Any) -> Optional[List[str]]:
    if not categories:
        return None
    if not isinstance(categories, list):
        raise ValidationError("intentCategories must be a list")
    unknown = [c for c in categories if c not in ALL_SUBCATEGORY_IDS and c not in FUNNEL_PHASES]
    if unknown:
        raise ValidationError(f"Unknown intent categories: {', '.join(map(str, unknown))}")
    return list(categories)


# --- Domains ------------------------------------------------------------------


def list_domains(session: Session, user: SessionUser) -> List[Domain]:
    return (
        session.query(Domain)
        .filter(owner_filter(Domain, user))
        .order_by(Domain.created_at.asc())
        .all()
    )


def get_domain(session: Session, user: SessionUser, domain_id: str) -> Domain:
    return _get_owned(session, user, Domain, domain_id)


def create_domain(session: Session, user: SessionUser, name: str, domain_url: str) -> Domain:
    name = (name or "").strip()
    domain_url = (domain_url or "").strip()
    if not name or not domain_url:
        raise ValidationError("name and domainUrl are required")

    domain = Domain(user_id=user.id, team_id=user.team_id, name=name, domain_url=domain_url)
    session.add(domain)
    session.flush()

    logger.info("domain_created", domain_id=domain.id, team_id=user.team_id)
    return domain


def update_domain(session: Session, user: SessionUser, domain_id: str, data: Dict[str, Any]) -> Domain:
    domain = get_domain(session, user, domain_id)
    if data.get("name") is not None:
        domain.name = str(data["name"]).strip() or domain.name
    if data.get("domainUrl") is not None:
        domain.domain_url = str(data["domainUrl"]).strip() or domain.domain_url
    return domain


def delete_domain(session: Session, user: SessionUser, domain_id: str):
    """Delete a domain together with its configs, runs and results."""
    domain = get_domain(session, user, domain_id)
    session.delete(domain)
    logger.info("domain_deleted", domain_id=domain_id, team_id=user.team_id)


# --- Prompt sets --------------------------------------------------------------


def list_prompt_sets(session: Session, user: SessionUser) -> List[PromptSet]:
    return (
        session.query(PromptSet)
        .filter(owner_filter(PromptSet, user))
        .order_by(PromptSet.created_at.asc())
        .all()
    )


def get_prompt_set(session: Session, user: SessionUser, prompt_set_id: str) -> PromptSet:
    return _get_owned(session, user, PromptSet, prompt_set_id)


def create_prompt_set(
    session: Session,
    user: SessionUser,
    name: str,
    prompts: Any,
    intent_categories: Any = None,
) -> PromptSet:
    """Create a prompt set.

    Non-string and blank prompts are dropped; at least one must remain.

    Raises:
        ValidationError: Missing name, no usable prompts or unknown categories
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("name and prompts are required")

    prompt_set = PromptSet(
        user_id=user.id,
        team_id=user.team_id,
        name=name,
        prompts=_clean_prompts(prompts),
        intent_categories=_clean_categories(intent_categories),
    )
    session.add(prompt_set)
    session.flush()

    logger.info(
        "prompt_set_created",
        prompt_set_id=prompt_set.id,
        team_id=user.team_id,
        prompts=len(prompt_set.prompts),
    )
    return prompt_set


def update_prompt_set(
    session: Session, user: SessionUser, prompt_set_id: str, data: Dict[str, Any]
) -> PromptSet:
    prompt_set = get_prompt_set(session, user, prompt_set_id)
    if data.get("name") is not None:
        prompt_set.name = str(data["name"]).strip() or prompt_set.name
    if data.get("prompts") is not None:
        prompt_set.prompts = _clean_prompts(data["prompts"])
    if "intentCategories" in data:
        prompt_set.intent_categories = _clean_categories(data["intentCategories"])
    return prompt_set


def delete_prompt_set(session: Session, user: SessionUser, prompt_set_id: str):
    prompt_set = get_prompt_set(session, user, prompt_set_id)
    session.delete(prompt_set)
    logger.info("prompt_set_deleted", prompt_set_id=prompt_set_id, team_id=user.team_id)


# --- Tracking configs ---------------------------------------------------------


def list_configs(session: Session, user: SessionUser) -> List[TrackingConfig]:
    return (
        session.query(TrackingConfig)
        .filter(owner_filter(TrackingConfig, user))
        .order_by(TrackingConfig.created_at.asc())
        .all()
    )


def get_config_for_user(session: Session, user: SessionUser, config_id: str) -> TrackingConfig:
    return _get_owned(session, user, TrackingConfig, config_id)


def _interval(value: Optional[str]) -> str:
    return value if value in INTERVALS else "on_demand"


def create_config(
    session: Session,
    user: SessionUser,
    domain_id: str,
    prompt_set_id: str,
    interval: Optional[str] = None,
    now: Optional[datetime] = None,
) -> TrackingConfig:
    """Bind a domain and a prompt set of the same owner to an interval.

    Unknown intervals fall back to ``on_demand``. Scheduled configs get
    their first ``next_run_at`` one interval from now.

    Raises:
        AccessDeniedError: Trial expired and no subscription
        ValidationError: Missing ids
        NotFoundError: Domain or prompt set not owned by the caller
    """
    require_access(session, user)
    if not domain_id or not prompt_set_id:
        raise ValidationError("domainId and promptSetId are required")

    get_domain(session, user, domain_id)
    get_prompt_set(session, user, prompt_set_id)

    interval = _interval(interval)
    config = TrackingConfig(
        user_id=user.id,
        team_id=user.team_id,
        domain_id=domain_id,
        prompt_set_id=prompt_set_id,
        interval=interval,
        next_run_at=compute_next_run(interval, now or datetime.utcnow()),
    )
    session.add(config)
    session.flush()

    logger.info("tracking_config_created", config_id=config.id, interval=interval)
    return config


def update_config(
    session: Session,
    user: SessionUser,
    config_id: str,
    data: Dict[str, Any],
    now: Optional[datetime] = None,
) -> TrackingConfig:
    """Change the interval of a config; invalid intervals are ignored."""
    config = get_config_for_user(session, user, config_id)
    interval = data.get("interval")
    if interval in INTERVALS and interval != config.interval:
        config.interval = interval
        config.next_run_at = compute_next_run(interval, now or datetime.utcnow())
        logger.info("tracking_config_interval_changed", config_id=config.id, interval=interval)
    return config


def delete_config(session: Session, user: SessionUser, config_id: str):
    config = get_config_for_user(session, user, config_id)
    session.delete(config)
    logger.info("tracking_config_deleted", config_id=config_id, team_id=user.team_id)
