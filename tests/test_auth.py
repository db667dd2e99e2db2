"""Tests for registration, magic links, sessions and impersonation."""

from datetime import datetime, timedelta
from urllib.parse import parse_qs, urlparse

import pytest

from accounts.auth import (
    create_magic_link,
    create_session,
    register_user,
    resolve_session,
    start_impersonation,
    stop_impersonation,
    verify_magic_link,
)
from accounts.oauth import sign_in_with_google
from accounts.rbac import get_team_for_user
from core.errors import AuthenticationError, ConflictError
from database.models import Account, User, UserSession, VerificationToken
from tests.conftest import make_user


def _token_from(url: str) -> str:
    return parse_qs(urlparse(url).query)["token"][0]


def test_register_creates_user_and_owned_team(db):
    with db.session() as session:
        user = register_user(session, "Ada", "  Ada@Example.COM ")
        team = get_team_for_user(session, user.id)

    assert user.email == "ada@example.com"
    assert user.registered_at is not None
    assert team.role == "owner"
    assert team.team_name == "Ada"


def test_register_twice_conflicts(db):
    with db.session() as session:
        register_user(session, "Ada", "ada@example.com")
    with db.session() as session:
        with pytest.raises(ConflictError, match="AlreadyRegistered"):
            register_user(session, "Ada", "ada@example.com")


def test_register_completes_unregistered_user(db):
    with db.session() as session:
        session.add(User(email="half@example.com"))
    with db.session() as session:
        user = register_user(session, "Half", "half@example.com")
        count = session.query(User).filter(User.email == "half@example.com").count()

    assert count == 1
    assert user.name == "Half"


def test_magic_link_requires_registration(db):
    with db.session() as session:
        with pytest.raises(AuthenticationError, match="NotRegistered"):
            create_magic_link(session, "nobody@example.com")


def test_magic_link_is_single_use(db, owner):
    with db.session() as session:
        url = create_magic_link(session, owner.email)
    assert url.startswith("http://testserver/api/auth/verify?")

    token = _token_from(url)
    with db.session() as session:
        user_session = verify_magic_link(session, owner.email, token)
        assert user_session.user_id == owner.id
        stored = session.query(VerificationToken).count()

    assert stored == 0
    with db.session() as session:
        with pytest.raises(AuthenticationError):
            verify_magic_link(session, owner.email, token)


def test_expired_magic_link_is_rejected(db, owner):
    with db.session() as session:
        token = _token_from(create_magic_link(session, owner.email))
        record = session.query(VerificationToken).one()
        record.expires = datetime.utcnow() - timedelta(seconds=1)

    with db.session() as session:
        with pytest.raises(AuthenticationError, match="expired"):
            verify_magic_link(session, owner.email, token)


def test_resolve_session_rejects_missing_and_expired(db, owner):
    with db.session() as session:
        with pytest.raises(AuthenticationError):
            resolve_session(session, None)

        user = session.get(User, owner.id)
        user_session = create_session(session, user)
        user_session.expires = datetime.utcnow() - timedelta(days=1)
        session.flush()

        with pytest.raises(AuthenticationError):
            resolve_session(session, user_session.session_token)


def test_resolve_session_creates_team_for_teamless_user(db):
    with db.session() as session:
        user = User(email="loner@example.com", name="Loner", registered_at=datetime.utcnow())
        session.add(user)
        session.flush()
        token = create_session(session, user).session_token

    with db.session() as session:
        resolved = resolve_session(session, token)

    assert resolved.team_id is not None
    assert resolved.role == "owner"


def test_super_admin_impersonation(db, owner):
    with db.session() as session:
        admin = make_user(session, "root@visicheck.ai", role="super_admin")
        admin_user = session.get(User, admin.id)
        token = create_session(session, admin_user).session_token

    with db.session() as session:
        current = resolve_session(session, token)
        start_impersonation(session, current, owner.team_id)

    with db.session() as session:
        impersonating = resolve_session(session, token)
        assert impersonating.team_id == owner.team_id
        assert impersonating.impersonating
        stop_impersonation(session, impersonating)

    with db.session() as session:
        restored = resolve_session(session, token)
        stored = session.query(UserSession).filter(UserSession.session_token == token).one()

    assert restored.team_id == admin.team_id
    assert stored.impersonate_team_id is None


def test_google_sign_in_links_existing_user(db, owner):
    with db.session() as session:
        user_session = sign_in_with_google(
            session,
            {"sub": "google-123", "email": owner.email.upper(), "email_verified": True},
            {"access_token": "at", "expires_in": 3600},
        )
        account = session.query(Account).one()

    assert user_session.user_id == owner.id
    assert account.provider_account_id == "google-123"
    assert account.access_token == "at"


def test_google_sign_in_registers_new_user_with_team(db):
    with db.session() as session:
        user_session = sign_in_with_google(
            session,
            {"sub": "google-456", "email": "fresh@example.com", "name": "Fresh"},
            {"access_token": "at"},
        )
        user = session.query(User).filter(User.id == user_session.user_id).one()
        team = get_team_for_user(session, user.id)

    assert user.registered_at is not None
    assert team.role == "owner"
