"""Google OAuth sign-in."""

from datetime import datetime
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import aiohttp
import structlog
from sqlalchemy.orm import Session

from accounts.auth import create_session, get_user_by_email, normalize_email
from accounts.rbac import create_team_for_user, get_team_for_user
from core.config import Config, get_config
from core.errors import AuthenticationError
from database.models import Account, User, UserSession

logger = structlog.get_logger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"


def redirect_uri(config: Config) -> str:
    return f"{config.base_url}/api/auth/google/callback"


def build_authorization_url(state: str, config: Optional[Config] = None) -> str:
    config = config or get_config()
    params = {
        "client_id": config.google_client_id,
        "redirect_uri": redirect_uri(config),
        "response_type": "code",
        "scope": "openid email profile",
        "state": state,
        "prompt": "select_account",
    }
    return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"


async def exchange_code(code: str, config: Optional[Config] = None) -> Dict[str, Any]:
    """Exchange an authorization code for tokens and the user's profile.

    Returns:
        Dict with ``tokens`` and ``userinfo``

    Raises:
        AuthenticationError: If Google rejects the code
    """
    config = config or get_config()
    async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=15)) as http:
        async with http.post(
            GOOGLE_TOKEN_URL,
            data={
                "code": code,
                "client_id": config.google_client_id,
                "client_secret": config.google_client_secret,
                "redirect_uri": redirect_uri(config),
                "grant_type": "authorization_code",
            },
        ) as response:
            if response.status != 200:
                body = await response.text()
                logger.error("google_token_exchange_failed", status=response.status, error=body[:500])
                raise AuthenticationError("Google sign-in failed", code="OAUTH_FAILED")
            tokens = await response.json()

        async with http.get(
            GOOGLE_USERINFO_URL,
            headers={"Authorization": f"Bearer {tokens['access_token']}"},
        ) as response:
            if response.status != 200:
                logger.error("google_userinfo_failed", status=response.status)
                raise AuthenticationError("Google sign-in failed", code="OAUTH_FAILED")
            userinfo = await response.json()

    return {"tokens": tokens, "userinfo": userinfo}


def sign_in_with_google(
    session: Session, userinfo: Dict[str, Any], tokens: Dict[str, Any]
) -> UserSession:
    """Link or create the user for a Google profile and open a session.

    Google accounts are linked to existing users by email. Signing in with
    Google counts as registration.
    """
    email = normalize_email(userinfo.get("email"))
    subject = userinfo.get("sub")
    if not email or not subject:
        raise AuthenticationError("Google profile has no email", code="OAUTH_FAILED")

    now = datetime.utcnow()
    account = (
        session.query(Account)
        .filter(Account.provider == "google", Account.provider_account_id == subject)
        .first()
    )

    if account is not None:
        user = account.user
    else:
        user = get_user_by_email(session, email)
        if user is None:
            user = User(
                email=email,
                name=userinfo.get("name"),
                image=userinfo.get("picture"),
                registered_at=now,
            )
            session.add(user)
            session.flush()
            logger.info("user_created_via_google", user_id=user.id)

        account = Account(user_id=user.id, provider="google", provider_account_id=subject)
        session.add(account)

    account.access_token = tokens.get("access_token")
    account.refresh_token = tokens.get("refresh_token") or account.refresh_token
    account.id_token = tokens.get("id_token")
    account.scope = tokens.get("scope")
    account.token_type = tokens.get("token_type")
    if tokens.get("expires_in"):
        account.expires_at = int(now.timestamp()) + int(tokens["expires_in"])

    if user.registered_at is None:
        user.registered_at = now
    if user.email_verified is None and userinfo.get("email_verified"):
        user.email_verified = now
    if not user.name and userinfo.get("name"):
        user.name = userinfo["name"]
    session.flush()

    if get_team_for_user(session, user.id) is None:
        create_team_for_user(session, user.id, user.name or email)

    return create_session(session, user)
