"""Team settings, members and invitations."""

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from accounts import teams
from accounts.rbac import SessionUser
from analytics.common import iso
from api.deps import get_current_user, get_db_session
from api.schemas import InvitationAccept, InvitationCreate, MemberRoleUpdate, TeamUpdate
from notifications.email import get_email_sender

router = APIRouter(prefix="/api/team", tags=["team"])


@router.get("")
def read_team(user: SessionUser = Depends(get_current_user), session: Session = Depends(get_db_session)):
    return teams.get_team(session, user)


@router.patch("")
def rename_team(
    body: TeamUpdate,
    user: SessionUser = Depends(get_current_user),
    session: Session = Depends(get_db_session),
):
    team = teams.rename_team(session, user, body.name)
    return {"teamId": team.id, "teamName": team.name}


@router.get("/members")
def members(user: SessionUser = Depends(get_current_user), session: Session = Depends(get_db_session)):
    return teams.list_members(session, user)


@router.patch("/members")
def change_role(
    body: MemberRoleUpdate,
    user: SessionUser = Depends(get_current_user),
    session: Session = Depends(get_db_session),
):
    member = teams.change_member_role(session, user, body.memberId, body.role)
    return {"success": True, "memberId": member.id, "role": member.role}


@router.delete("/members")
def remove_member(
    memberId: str = Query(""),
    user: SessionUser = Depends(get_current_user),
    session: Session = Depends(get_db_session),
):
    teams.remove_member(session, user, memberId)
    return {"success": True}


@router.get("/invite")
def pending_invitations(
    user: SessionUser = Depends(get_current_user), session: Session = Depends(get_db_session)
):
    return [
        {
            "id": inv.id,
            "email": inv.email,
            "role": inv.role,
            "expiresAt": iso(inv.expires_at),
            "createdAt": iso(inv.created_at),
        }
        for inv in teams.list_pending_invitations(session, user)
    ]


@router.post("/invite")
def invite(
    body: InvitationCreate,
    background_tasks: BackgroundTasks,
    user: SessionUser = Depends(get_current_user),
    session: Session = Depends(get_db_session),
):
    invitation = teams.create_invitation(session, user, body.email, body.role)
    # The invitation must be stored before it is mailed
    session.commit()
    background_tasks.add_task(
        get_email_sender().send_team_invitation,
        to=invitation.email,
        inviter_name=user.name or user.email,
        team_name=user.team_name or "Team",
        token=invitation.token,
        role=invitation.role,
    )
    return {"success": True, "invitationId": invitation.id}


@router.delete("/invite")
def revoke_invitation(
    id: str = Query(""),
    user: SessionUser = Depends(get_current_user),
    session: Session = Depends(get_db_session),
):
    teams.revoke_invitation(session, user, id)
    return {"success": True}


@router.get("/invite/accept")
def describe_invitation(token: str = Query(""), session: Session = Depends(get_db_session)):
    return teams.describe_invitation(session, token)


@router.post("/invite/accept")
def accept_invitation(
    body: InvitationAccept,
    user: SessionUser = Depends(get_current_user),
    session: Session = Depends(get_db_session),
):
    return teams.accept_invitation(session, user, body.token)
