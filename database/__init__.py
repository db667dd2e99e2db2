"""Database package for the Visicheck service."""

from database.models import (
    Base,
    Job,
    User,
    Account,
    UserSession,
    VerificationToken,
    Team,
    TeamMember,
    TeamInvitation,
    UserProfile,
    Domain,
    PromptSet,
    TrackingConfig,
    TrackingRun,
    TrackingResult,
    Favicon,
    Subscription,
    MagazineArticle,
    MagazineArticleTranslation,
)
from database.connection import DatabaseConnection, get_db, init_db

__all__ = [
    "Base",
    "Job",
    "User",
    "Account",
    "UserSession",
    "VerificationToken",
    "Team",
    "TeamMember",
    "TeamInvitation",
    "UserProfile",
    "Domain",
    "PromptSet",
    "TrackingConfig",
    "TrackingRun",
    "TrackingResult",
    "Favicon",
    "Subscription",
    "MagazineArticle",
    "MagazineArticleTranslation",
    "DatabaseConnection",
    "get_db",
    "init_db",
]
