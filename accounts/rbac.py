"""Team membership lookups and role checks."""

from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy.orm import Session

from core.errors import PermissionDeniedError
from database.models import Team, TeamMember

logger = structlog.get_logger(__name__)


@dataclass
class TeamContext:
    team_id: str
    team_name: str
    role: str  # super_admin, owner, member


@dataclass
class SessionUser:
    """The authenticated user as seen by request handlers.

    ``team_id`` is the effective team: while a super admin impersonates,
    it is the impersonated team and ``impersonating`` is set.
    """

    id: str
    email: str
    name: Optional[str]
    team_id: Optional[str]
    team_name: Optional[str]
    role: Optional[str]
    impersonating: bool = False
    session_token: Optional[str] = None


def get_team_for_user(session: Session, user_id: str) -> Optional[TeamContext]:
    """Return the team and role of a user (a user belongs to exactly one team).

    Args:
        session: Database session
        user_id: User ID

    Returns:
        TeamContext, or None when the user has no team yet
    """
    row = (
        session.query(TeamMember.team_id, Team.name, TeamMember.role)
        .join(Team, Team.id == TeamMember.team_id)
        .filter(TeamMember.user_id == user_id)
        .order_by(TeamMember.joined_at.asc())
        .first()
    )
    if row is None:
        return None
    return TeamContext(team_id=row.team_id, team_name=row.name, role=row.role)


def create_team_for_user(session: Session, user_id: str, team_name: str) -> Team:
    """Create a team with the user as its owner."""
    team = Team(name=team_name)
    session.add(team)
    session.flush()

    session.add(TeamMember(team_id=team.id, user_id=user_id, role="owner"))
    session.flush()

    logger.info("team_created", team_id=team.id, owner_id=user_id)
    return team


def has_role(role: Optional[str], allowed_roles) -> bool:
    return role in allowed_roles


def is_owner_or_above(role: Optional[str]) -> bool:
    return role in ("owner", "super_admin")


def is_super_admin(role: Optional[str]) -> bool:
    return role == "super_admin"


def require_owner(user: SessionUser, message: str = "Only team owners can do this"):
    if not is_owner_or_above(user.role):
        raise PermissionDeniedError(message)


def require_super_admin(user: SessionUser):
    if not is_super_admin(user.role):
        raise PermissionDeniedError("Forbidden")


def owner_filter(model, user: SessionUser):
    """Filter clause scoping a team-owned model to the user's team (or the user)."""
    if user.team_id:
        return model.team_id == user.team_id
    return model.user_id == user.id
