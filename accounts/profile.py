"""User profile: display name plus company and billing address."""

from typing import Any, Dict

import structlog
from sqlalchemy.orm import Session

from core.errors import NotFoundError
from database.models import User, UserProfile

logger = structlog.get_logger(__name__)

# API field name -> profile column
COMPANY_FIELDS = {
    "phone": "phone",
    "companyName": "company_name",
    "companyStreet": "company_street",
    "companyZip": "company_zip",
    "companyCity": "company_city",
    "companyCountry": "company_country",
}

BILLING_FIELDS = {
    "billingCompanyName": "billing_company_name",
    "billingStreet": "billing_street",
    "billingZip": "billing_zip",
    "billingCity": "billing_city",
    "billingCountry": "billing_country",
}


def get_profile(session: Session, user_id: str) -> Dict[str, Any]:
    user = session.query(User).filter(User.id == user_id).first()
    if user is None:
        raise NotFoundError("User not found")
    profile = user.profile

    data: Dict[str, Any] = {"name": user.name or "", "email": user.email}
    for key, column in {**COMPANY_FIELDS, **BILLING_FIELDS}.items():
        data[key] = (getattr(profile, column) if profile else None) or ""
    data["billingDifferent"] = bool(profile and profile.billing_different)
    return data


def update_profile(session: Session, user_id: str, data: Dict[str, Any]) -> UserProfile:
    """Update the user's name and upsert their profile row.

    Billing fields are cleared unless ``billingDifferent`` is set.
    """
    user = session.query(User).filter(User.id == user_id).first()
    if user is None:
        raise NotFoundError("User not found")

    if "name" in data:
        user.name = data.get("name") or None

    profile = user.profile
    if profile is None:
        profile = UserProfile(user_id=user.id)
        session.add(profile)

    for key, column in COMPANY_FIELDS.items():
        setattr(profile, column, data.get(key) or "")

    billing_different = bool(data.get("billingDifferent"))
    profile.billing_different = billing_different
    for key, column in BILLING_FIELDS.items():
        setattr(profile, column, (data.get(key) or "") if billing_different else "")

    session.flush()
    logger.info("profile_updated", user_id=user_id)
    return profile
