"""Registration, magic-link login, Google sign-in and sessions."""

import asyncio
import secrets

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.orm import Session

from accounts.auth import (
    create_magic_link,
    delete_session,
    is_registered,
    normalize_email,
    register_user,
    verify_magic_link,
)
from accounts.oauth import build_authorization_url, exchange_code, sign_in_with_google
from accounts.rbac import SessionUser
from api.deps import SESSION_COOKIE, get_current_user, get_db_session, get_settings, session_token_from
from api.schemas import EmailRequest, RegisterRequest
from core.config import Config
from core.errors import AuthenticationError
from notifications.email import get_email_sender

router = APIRouter(prefix="/api", tags=["auth"])
logger = structlog.get_logger(__name__)

OAUTH_STATE_COOKIE = "oauth_state"


def _with_session_cookie(response, token: str, config: Config):
    response.set_cookie(
        SESSION_COOKIE,
        token,
        max_age=config.session_max_age_days * 86400,
        httponly=True,
        secure=config.is_production,
        samesite="lax",
    )
    return response


@router.post("/register")
def register(body: RegisterRequest, session: Session = Depends(get_db_session)):
    user = register_user(session, body.name, body.email)
    return {"success": True, "userId": user.id}


@router.post("/auth/check")
def check_registration(body: EmailRequest, session: Session = Depends(get_db_session)):
    return {"registered": is_registered(session, normalize_email(body.email))}


@router.post("/auth/login")
def request_login_link(
    body: EmailRequest,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_db_session),
    config: Config = Depends(get_settings),
):
    url = create_magic_link(session, body.email, config)
    # The link must be stored before it is mailed
    session.commit()
    background_tasks.add_task(get_email_sender().send_magic_link, normalize_email(body.email), url)
    return {"success": True}


@router.get("/auth/verify")
def verify_login_link(
    token: str = Query(""),
    email: str = Query(""),
    session: Session = Depends(get_db_session),
    config: Config = Depends(get_settings),
):
    user_session = verify_magic_link(session, email, token)
    response = RedirectResponse(f"{config.base_url}/dashboard", status_code=302)
    return _with_session_cookie(response, user_session.session_token, config)


@router.get("/auth/google")
def google_login(config: Config = Depends(get_settings)):
    state = secrets.token_urlsafe(24)
    response = RedirectResponse(build_authorization_url(state, config), status_code=302)
    response.set_cookie(OAUTH_STATE_COOKIE, state, max_age=600, httponly=True, samesite="lax")
    return response


@router.get("/auth/google/callback")
def google_callback(
    request: Request,
    code: str = Query(""),
    state: str = Query(""),
    session: Session = Depends(get_db_session),
    config: Config = Depends(get_settings),
):
    expected = request.cookies.get(OAUTH_STATE_COOKIE)
    if not code or not state or not expected or not secrets.compare_digest(state, expected):
        raise AuthenticationError("Invalid OAuth state", code="OAUTH_FAILED")

    google = asyncio.run(exchange_code(code, config))
    user_session = sign_in_with_google(session, google["userinfo"], google["tokens"])

    response = RedirectResponse(f"{config.base_url}/dashboard", status_code=302)
    response.delete_cookie(OAUTH_STATE_COOKIE)
    return _with_session_cookie(response, user_session.session_token, config)


@router.post("/auth/logout")
def logout(request: Request, session: Session = Depends(get_db_session)):
    token = session_token_from(request)
    if token:
        delete_session(session, token)
    response = JSONResponse({"success": True})
    response.delete_cookie(SESSION_COOKIE)
    return response


@router.get("/auth/session")
def current_session(user: SessionUser = Depends(get_current_user)):
    return {
        "user": {
            "id": user.id,
            "email": user.email,
            "name": user.name,
            "teamId": user.team_id,
            "teamName": user.team_name,
            "role": user.role,
            "impersonating": user.impersonating,
        }
    }
