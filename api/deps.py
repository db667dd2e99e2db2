"""Request dependencies: database session and the authenticated user."""

from typing import Generator, Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from accounts.access import require_access
from accounts.auth import resolve_session
from accounts.rbac import SessionUser, require_super_admin
from core.config import Config, get_config
from database.connection import DatabaseConnection, get_db

SESSION_COOKIE = "session_token"


def get_database() -> DatabaseConnection:
    return get_db()


def get_settings() -> Config:
    return get_config()


def get_db_session(db: DatabaseConnection = Depends(get_database)) -> Generator[Session, None, None]:
    """One transactional session per request, committed when the handler returns."""
    with db.session() as session:
        yield session


def session_token_from(request: Request) -> Optional[str]:
    """Session token from the cookie, or from an ``Authorization: Bearer`` header."""
    token = request.cookies.get(SESSION_COOKIE)
    if token:
        return token
    header = request.headers.get("authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return None


def get_current_user(request: Request, session: Session = Depends(get_db_session)) -> SessionUser:
    return resolve_session(session, session_token_from(request))


def get_active_user(
    user: SessionUser = Depends(get_current_user), session: Session = Depends(get_db_session)
) -> SessionUser:
    """The current user, provided they have a trial or a subscription."""
    require_access(session, user)
    return user


def get_admin_user(user: SessionUser = Depends(get_current_user)) -> SessionUser:
    require_super_admin(user)
    return user
