from typing import Any, Dict

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from accounts.profile import get_profile, update_profile
from accounts.rbac import SessionUser
from api.deps import get_current_user, get_db_session

router = APIRouter(prefix="/api/profile", tags=["profile"])


@router.get("")
def read_profile(user: SessionUser = Depends(get_current_user), session: Session = Depends(get_db_session)):
    return get_profile(session, user.id)


@router.put("")
def write_profile(
    data: Dict[str, Any] = Body(...),
    user: SessionUser = Depends(get_current_user),
    session: Session = Depends(get_db_session),
):
    update_profile(session, user.id, data)
    return {"success": True}
