from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from accounts.rbac import SessionUser
from api.deps import get_current_user, get_db_session
from api.schemas import DomainCreate, DomainUpdate, changes
from tracking import resources

router = APIRouter(prefix="/api/domains", tags=["domains"])


@router.get("")
def list_domains(user: SessionUser = Depends(get_current_user), session: Session = Depends(get_db_session)):
    return [resources.serialize_domain(d) for d in resources.list_domains(session, user)]


@router.post("")
def create_domain(
    body: DomainCreate,
    user: SessionUser = Depends(get_current_user),
    session: Session = Depends(get_db_session),
):
    domain = resources.create_domain(session, user, body.name, body.domainUrl)
    return resources.serialize_domain(domain)


@router.get("/{domain_id}")
def get_domain(
    domain_id: str,
    user: SessionUser = Depends(get_current_user),
    session: Session = Depends(get_db_session),
):
    return resources.serialize_domain(resources.get_domain(session, user, domain_id))


@router.patch("/{domain_id}")
def update_domain(
    domain_id: str,
    body: DomainUpdate,
    user: SessionUser = Depends(get_current_user),
    session: Session = Depends(get_db_session),
):
    domain = resources.update_domain(session, user, domain_id, changes(body))
    return resources.serialize_domain(domain)


@router.delete("/{domain_id}")
def delete_domain(
    domain_id: str,
    user: SessionUser = Depends(get_current_user),
    session: Session = Depends(get_db_session),
):
    resources.delete_domain(session, user, domain_id)
    return {"success": True}
