"""Access gating: super admin, paid subscription or trial window."""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import structlog
from sqlalchemy.orm import Session

from accounts.rbac import SessionUser
from core.config import Config, get_config
from core.errors import AccessDeniedError
from database.models import Subscription, User

logger = structlog.get_logger(__name__)

ACTIVE_SUBSCRIPTION_STATUSES = ("active", "trialing")


@dataclass
class AccessStatus:
    has_access: bool = False
    is_trial: bool = False
    trial_days_left: int = 0
    trial_ends_at: Optional[datetime] = None
    subscription_plan: Optional[str] = None
    subscription_status: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "hasAccess": self.has_access,
            "isTrial": self.is_trial,
            "trialDaysLeft": self.trial_days_left,
            "trialEndsAt": self.trial_ends_at.isoformat() if self.trial_ends_at else None,
            "subscriptionPlan": self.subscription_plan,
            "subscriptionStatus": self.subscription_status,
        }


def get_latest_subscription(session: Session, team_id: Optional[str]) -> Optional[Subscription]:
    if not team_id:
        return None
    return (
        session.query(Subscription)
        .filter(Subscription.team_id == team_id)
        .order_by(Subscription.created_at.desc())
        .first()
    )


def get_access_status(
    session: Session,
    user_id: str,
    team_id: Optional[str],
    role: Optional[str] = None,
    now: Optional[datetime] = None,
    config: Optional[Config] = None,
) -> AccessStatus:
    """Resolve whether a user may use the product.

    Checked in order: super admin, the team's latest subscription being
    active or trialing, then the trial window counted from registration.

    Args:
        session: Database session
        user_id: User ID
        team_id: Effective team ID
        role: Team role of the user
        now: Current time override
        config: Configuration (defaults to the global one)

    Returns:
        AccessStatus
    """
    config = config or get_config()
    now = now or datetime.utcnow()

    if role == "super_admin":
        return AccessStatus(has_access=True)

    subscription = get_latest_subscription(session, team_id)
    if subscription is not None and subscription.status in ACTIVE_SUBSCRIPTION_STATUSES:
        return AccessStatus(
            has_access=True,
            subscription_plan=subscription.plan,
            subscription_status=subscription.status,
        )

    registered_at = session.query(User.registered_at).filter(User.id == user_id).scalar()
    if registered_at is not None:
        trial_end = registered_at + timedelta(days=config.trial_days)
        days_left = math.ceil((trial_end - now).total_seconds() / 86400)
        if days_left > 0:
            return AccessStatus(
                has_access=True,
                is_trial=True,
                trial_days_left=days_left,
                trial_ends_at=trial_end,
            )

    return AccessStatus()


def require_access(session: Session, user: SessionUser) -> AccessStatus:
    """Raise AccessDeniedError unless the user has access.

    Raises:
        AccessDeniedError: Trial expired and no active subscription
    """
    status = get_access_status(session, user.id, user.team_id, user.role)
    if not status.has_access:
        logger.info("access_denied", user_id=user.id, team_id=user.team_id)
        raise AccessDeniedError("Trial expired. Please subscribe to continue.")
    return status
