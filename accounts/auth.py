"""Registration, passwordless login and database-backed sessions."""

import hashlib
import secrets
from datetime import datetime, timedelta
from typing import Optional
from urllib.parse import urlencode

import structlog
from sqlalchemy.orm import Session

from accounts.rbac import SessionUser, create_team_for_user, get_team_for_user, is_super_admin
from core.config import Config, get_config
from core.errors import AuthenticationError, ConflictError, NotFoundError, ValidationError
from database.models import Team, User, UserSession, VerificationToken

logger = structlog.get_logger(__name__)

IMPERSONATION_HOURS = 4


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def get_user_by_email(session: Session, email: str) -> Optional[User]:
    return session.query(User).filter(User.email == normalize_email(email)).first()


def is_registered(session: Session, email: str) -> bool:
    user = get_user_by_email(session, email)
    return bool(user and user.registered_at)


def register_user(session: Session, name: str, email: str) -> User:
    """Register a new user and give them a personal team.

    Users that exist without ``registered_at`` (an aborted OAuth attempt)
    are completed instead of duplicated.

    Args:
        session: Database session
        name: Display name
        email: Email address (normalized here)

    Returns:
        The registered user

    Raises:
        ValidationError: If name or email is missing
        ConflictError: If the email is already registered
    """
    name = (name or "").strip()
    email = normalize_email(email)
    if not name or not email or "@" not in email:
        raise ValidationError("Name and email are required")

    user = get_user_by_email(session, email)
    if user and user.registered_at:
        raise ConflictError("AlreadyRegistered")

    now = datetime.utcnow()
    if user:
        user.name = name
        user.registered_at = now
    else:
        user = User(name=name, email=email, registered_at=now)
        session.add(user)
    session.flush()

    if get_team_for_user(session, user.id) is None:
        create_team_for_user(session, user.id, name)

    logger.info("user_registered", user_id=user.id)
    return user


def create_magic_link(session: Session, email: str, config: Optional[Config] = None) -> str:
    """Create a single-use login link for a registered user.

    Args:
        session: Database session
        email: Email address
        config: Configuration (defaults to the global one)

    Returns:
        Absolute verification URL to email to the user

    Raises:
        AuthenticationError: If the email is not registered
    """
    config = config or get_config()
    email = normalize_email(email)
    if not is_registered(session, email):
        raise AuthenticationError("NotRegistered", code="NOT_REGISTERED")

    token = secrets.token_urlsafe(32)
    session.add(
        VerificationToken(
            identifier=email,
            token_hash=_hash_token(token),
            expires=datetime.utcnow() + timedelta(minutes=config.magic_link_ttl_minutes),
        )
    )
    session.flush()

    logger.info("magic_link_created", email=email)
    query = urlencode({"token": token, "email": email})
    return f"{config.base_url}/api/auth/verify?{query}"


def verify_magic_link(session: Session, email: str, token: str) -> UserSession:
    """Consume a magic-link token and open a session.

    Raises:
        AuthenticationError: If the token is unknown, used or expired
    """
    email = normalize_email(email)
    record = (
        session.query(VerificationToken)
        .filter(
            VerificationToken.identifier == email,
            VerificationToken.token_hash == _hash_token(token or ""),
        )
        .first()
    )
    if record is None:
        raise AuthenticationError("Invalid or already used login link", code="INVALID_TOKEN")

    if record.expires < datetime.utcnow():
        raise AuthenticationError("Login link expired", code="TOKEN_EXPIRED")

    user = get_user_by_email(session, email)
    if user is None:
        raise AuthenticationError("NotRegistered", code="NOT_REGISTERED")

    session.delete(record)
    if user.email_verified is None:
        user.email_verified = datetime.utcnow()

    return create_session(session, user)


def create_session(session: Session, user: User, config: Optional[Config] = None) -> UserSession:
    config = config or get_config()
    user_session = UserSession(
        session_token=secrets.token_urlsafe(32),
        user_id=user.id,
        expires=datetime.utcnow() + timedelta(days=config.session_max_age_days),
    )
    session.add(user_session)
    session.flush()

    logger.info("session_created", user_id=user.id)
    return user_session


def delete_session(session: Session, session_token: str) -> bool:
    deleted = (
        session.query(UserSession).filter(UserSession.session_token == session_token).delete()
    )
    return bool(deleted)


def resolve_session(session: Session, session_token: Optional[str]) -> SessionUser:
    """Turn a session token into the authenticated user.

    Users without a team (invitees who log in before accepting) get a
    personal team here.

    Raises:
        AuthenticationError: If the token is missing, unknown or expired
    """
    if not session_token:
        raise AuthenticationError("Unauthorized")

    user_session = (
        session.query(UserSession).filter(UserSession.session_token == session_token).first()
    )
    now = datetime.utcnow()
    if user_session is None or user_session.expires < now:
        raise AuthenticationError("Unauthorized")

    user = user_session.user
    team_ctx = get_team_for_user(session, user.id)
    if team_ctx is None:
        create_team_for_user(session, user.id, user.name or user.email)
        team_ctx = get_team_for_user(session, user.id)

    session_user = SessionUser(
        id=user.id,
        email=user.email,
        name=user.name,
        team_id=team_ctx.team_id,
        team_name=team_ctx.team_name,
        role=team_ctx.role,
        session_token=session_token,
    )

    if (
        is_super_admin(team_ctx.role)
        and user_session.impersonate_team_id
        and user_session.impersonate_expires
        and user_session.impersonate_expires > now
    ):
        team = session.query(Team).filter(Team.id == user_session.impersonate_team_id).first()
        if team is not None:
            session_user.team_id = team.id
            session_user.team_name = team.name
            session_user.impersonating = True

    return session_user


def start_impersonation(session: Session, user: SessionUser, team_id: str) -> datetime:
    """Scope a super admin's session to another team for four hours."""
    if not team_id:
        raise ValidationError("teamId required")
    if session.query(Team).filter(Team.id == team_id).first() is None:
        raise NotFoundError("Team not found")

    user_session = (
        session.query(UserSession).filter(UserSession.session_token == user.session_token).first()
    )
    if user_session is None:
        raise AuthenticationError("Unauthorized")

    user_session.impersonate_team_id = team_id
    user_session.impersonate_expires = datetime.utcnow() + timedelta(hours=IMPERSONATION_HOURS)

    logger.info("impersonation_started", admin_id=user.id, team_id=team_id)
    return user_session.impersonate_expires


def stop_impersonation(session: Session, user: SessionUser):
    user_session = (
        session.query(UserSession).filter(UserSession.session_token == user.session_token).first()
    )
    if user_session is not None:
        user_session.impersonate_team_id = None
        user_session.impersonate_expires = None
        logger.info("impersonation_stopped", admin_id=user.id)
