"""Team management: settings, members and invitations."""

import secrets
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import structlog
from sqlalchemy.orm import Session

from accounts.access import ACTIVE_SUBSCRIPTION_STATUSES, get_latest_subscription
from accounts.auth import get_user_by_email, normalize_email
from accounts.rbac import SessionUser, is_super_admin, require_owner
from billing.plans import get_plan
from core.errors import ConflictError, GoneError, NotFoundError, PermissionDeniedError, ValidationError
from database.models import INVITABLE_ROLES, Team, TeamInvitation, TeamMember, User

logger = structlog.get_logger(__name__)

INVITATION_VALID_DAYS = 7


def _require_team(session: Session, user: SessionUser) -> Team:
    team = session.query(Team).filter(Team.id == user.team_id).first() if user.team_id else None
    if team is None:
        raise NotFoundError("No team found")
    return team


def get_team(session: Session, user: SessionUser) -> Dict:
    team = _require_team(session, user)
    return {"teamId": team.id, "teamName": team.name, "role": user.role}


def rename_team(session: Session, user: SessionUser, name: str) -> Team:
    require_owner(user, "Only owners can edit the team")
    name = (name or "").strip()
    if not name:
        raise ValidationError("Name is required")

    team = _require_team(session, user)
    team.name = name
    logger.info("team_renamed", team_id=team.id)
    return team


# --- Members ------------------------------------------------------------------


def list_members(session: Session, user: SessionUser) -> List[Dict]:
    _require_team(session, user)
    rows = (
        session.query(TeamMember, User)
        .join(User, User.id == TeamMember.user_id)
        .filter(TeamMember.team_id == user.team_id)
        .order_by(TeamMember.joined_at.asc())
        .all()
    )
    return [
        {
            "id": member.id,
            "userId": member.user_id,
            "role": member.role,
            "joinedAt": member.joined_at.isoformat() if member.joined_at else None,
            "userName": member_user.name,
            "userEmail": member_user.email,
            "userImage": member_user.image,
        }
        for member, member_user in rows
    ]


def _get_member(session: Session, user: SessionUser, member_id: str) -> TeamMember:
    if not member_id:
        raise ValidationError("memberId is required")
    member = (
        session.query(TeamMember)
        .filter(TeamMember.id == member_id, TeamMember.team_id == user.team_id)
        .first()
    )
    if member is None:
        raise NotFoundError("Member not found")
    return member


def remove_member(session: Session, user: SessionUser, member_id: str):
    """Remove a member from the caller's team.

    Owners cannot remove themselves, and other owners can only be removed
    by a super admin.
    """
    require_owner(user, "Only owners can remove members")
    member = _get_member(session, user, member_id)

    if member.user_id == user.id:
        raise ValidationError("You cannot remove yourself")
    if member.role == "owner" and not is_super_admin(user.role):
        raise PermissionDeniedError("Owners can only be removed by a super admin")

    session.delete(member)
    logger.info("team_member_removed", team_id=user.team_id, member_user_id=member.user_id)


def change_member_role(session: Session, user: SessionUser, member_id: str, role: str) -> TeamMember:
    require_owner(user, "Only owners can change roles")
    if not member_id or not role:
        raise ValidationError("memberId and role are required")
    if role not in INVITABLE_ROLES:
        raise ValidationError("Invalid role. Allowed: owner, member")

    member = _get_member(session, user, member_id)
    if member.user_id == user.id:
        raise ValidationError("You cannot change your own role")

    member.role = role
    logger.info("team_member_role_changed", team_id=user.team_id, member_user_id=member.user_id, role=role)
    return member


# --- Invitations --------------------------------------------------------------


def list_pending_invitations(session: Session, user: SessionUser) -> List[TeamInvitation]:
    _require_team(session, user)
    return (
        session.query(TeamInvitation)
        .filter(TeamInvitation.team_id == user.team_id, TeamInvitation.accepted_at.is_(None))
        .order_by(TeamInvitation.created_at.desc())
        .all()
    )


def _seat_limit(session: Session, team_id: str) -> Optional[int]:
    subscription = get_latest_subscription(session, team_id)
    if subscription is None or subscription.status not in ACTIVE_SUBSCRIPTION_STATUSES:
        return None
    plan = get_plan(subscription.plan)
    return plan.max_team_members if plan else None


def create_invitation(session: Session, user: SessionUser, email: str, role: str = "member") -> TeamInvitation:
    """Invite someone to the caller's team.

    The invitee is pre-registered so they can log in by magic link right away.

    Raises:
        PermissionDeniedError: Caller is not an owner
        ValidationError: Missing email or invalid role, or seat limit reached
        ConflictError: Already a member, or an invitation is pending
    """
    require_owner(user, "Only owners can invite members")
    team = _require_team(session, user)

    email = normalize_email(email)
    if not email or "@" not in email:
        raise ValidationError("Email address is required")
    if role not in INVITABLE_ROLES:
        raise ValidationError("Invalid role. Allowed: owner, member")

    existing_user = get_user_by_email(session, email)
    if existing_user is not None:
        is_member = (
            session.query(TeamMember)
            .filter(TeamMember.team_id == team.id, TeamMember.user_id == existing_user.id)
            .first()
        )
        if is_member:
            raise ConflictError("This user is already a member of the team")

    pending = (
        session.query(TeamInvitation)
        .filter(
            TeamInvitation.team_id == team.id,
            TeamInvitation.email == email,
            TeamInvitation.accepted_at.is_(None),
        )
        .first()
    )
    if pending:
        raise ConflictError("An invitation for this email address is already pending")

    limit = _seat_limit(session, team.id)
    if limit is not None:
        now = datetime.utcnow()
        seats = session.query(TeamMember).filter(TeamMember.team_id == team.id).count()
        seats += (
            session.query(TeamInvitation)
            .filter(
                TeamInvitation.team_id == team.id,
                TeamInvitation.accepted_at.is_(None),
                TeamInvitation.expires_at > now,
            )
            .count()
        )
        if seats >= limit:
            raise ValidationError(
                f"Your plan allows {limit} team members", code="TEAM_MEMBER_LIMIT"
            )

    if existing_user is None:
        session.add(User(email=email, registered_at=datetime.utcnow()))

    invitation = TeamInvitation(
        team_id=team.id,
        email=email,
        role=role,
        invited_by=user.id,
        token=secrets.token_urlsafe(32),
        expires_at=datetime.utcnow() + timedelta(days=INVITATION_VALID_DAYS),
    )
    session.add(invitation)
    session.flush()

    logger.info("team_invitation_created", team_id=team.id, invitation_id=invitation.id, role=role)
    return invitation


def revoke_invitation(session: Session, user: SessionUser, invitation_id: str):
    require_owner(user, "Only owners can revoke invitations")
    if not invitation_id:
        raise ValidationError("Invitation id is required")

    deleted = (
        session.query(TeamInvitation)
        .filter(TeamInvitation.id == invitation_id, TeamInvitation.team_id == user.team_id)
        .delete()
    )
    if not deleted:
        raise NotFoundError("Invitation not found")
    logger.info("team_invitation_revoked", team_id=user.team_id, invitation_id=invitation_id)


def describe_invitation(session: Session, token: str) -> Dict:
    """Public details of an invitation, shown before login.

    Raises:
        NotFoundError: Unknown token
        GoneError: Already accepted or expired
    """
    if not token:
        raise ValidationError("Token is required")

    invitation = session.query(TeamInvitation).filter(TeamInvitation.token == token).first()
    if invitation is None:
        raise NotFoundError("Invitation not found")
    if invitation.accepted_at is not None:
        raise GoneError("AlreadyAccepted")
    if invitation.expires_at < datetime.utcnow():
        raise GoneError("Expired")

    return {
        "email": invitation.email,
        "role": invitation.role,
        "teamName": invitation.team.name if invitation.team else "Team",
    }


def accept_invitation(session: Session, user: SessionUser, token: str) -> Dict:
    """Join the inviting team, leaving the current one.

    The invitation is token based: the logged-in user joins even when their
    email differs from the invited address.
    """
    if not token:
        raise ValidationError("Token is required")

    invitation = (
        session.query(TeamInvitation)
        .filter(
            TeamInvitation.token == token,
            TeamInvitation.accepted_at.is_(None),
            TeamInvitation.expires_at > datetime.utcnow(),
        )
        .first()
    )
    if invitation is None:
        raise NotFoundError("Invitation not found, already used or expired")

    now = datetime.utcnow()
    existing = (
        session.query(TeamMember)
        .filter(TeamMember.team_id == invitation.team_id, TeamMember.user_id == user.id)
        .first()
    )
    if existing is not None:
        invitation.accepted_at = now
        return {"success": True, "message": "You are already a member of this team"}

    session.query(TeamMember).filter(TeamMember.user_id == user.id).delete()
    session.add(TeamMember(team_id=invitation.team_id, user_id=user.id, role=invitation.role))
    invitation.accepted_at = now

    logger.info(
        "team_invitation_accepted",
        team_id=invitation.team_id,
        user_id=user.id,
        role=invitation.role,
    )
    return {"success": True, "teamId": invitation.team_id, "role": invitation.role}
