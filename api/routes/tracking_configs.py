from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from accounts.rbac import SessionUser
from api.deps import get_current_user, get_db_session
from api.schemas import TrackingConfigCreate, TrackingConfigUpdate, changes
from tracking import resources

router = APIRouter(prefix="/api/tracking-configs", tags=["tracking-configs"])


@router.get("")
def list_configs(user: SessionUser = Depends(get_current_user), session: Session = Depends(get_db_session)):
    return [resources.serialize_config(c) for c in resources.list_configs(session, user)]


@router.post("")
def create_config(
    body: TrackingConfigCreate,
    user: SessionUser = Depends(get_current_user),
    session: Session = Depends(get_db_session),
):
    config = resources.create_config(session, user, body.domainId, body.promptSetId, body.interval)
    return resources.serialize_config(config)


@router.get("/{config_id}")
def get_config(
    config_id: str,
    user: SessionUser = Depends(get_current_user),
    session: Session = Depends(get_db_session),
):
    return resources.serialize_config(resources.get_config_for_user(session, user, config_id))


@router.patch("/{config_id}")
def update_config(
    config_id: str,
    body: TrackingConfigUpdate,
    user: SessionUser = Depends(get_current_user),
    session: Session = Depends(get_db_session),
):
    config = resources.update_config(session, user, config_id, changes(body))
    return resources.serialize_config(config)


@router.delete("/{config_id}")
def delete_config(
    config_id: str,
    user: SessionUser = Depends(get_current_user),
    session: Session = Depends(get_db_session),
):
    resources.delete_config(session, user, config_id)
    return {"success": True}
