"""User accounts: authentication, teams, access and usage."""

from accounts.access import AccessStatus, get_access_status, require_access
from accounts.auth import (
    create_magic_link,
    create_session,
    register_user,
    resolve_session,
    verify_magic_link,
)
from accounts.rbac import SessionUser, TeamContext, get_team_for_user
from accounts.usage import PromptUsage, check_prompt_quota, get_prompt_usage

__all__ = [
    "AccessStatus",
    "PromptUsage",
    "SessionUser",
    "TeamContext",
    "check_prompt_quota",
    "create_magic_link",
    "create_session",
    "get_access_status",
    "get_prompt_usage",
    "get_team_for_user",
    "register_user",
    "require_access",
    "resolve_session",
    "verify_magic_link",
]
