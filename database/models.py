"""Database models for the Visicheck service."""

import uuid
from datetime import datetime
from sqlalchemy import (
    Column,
    String,
    Integer,
    DateTime,
    Boolean,
    Text,
    Index,
    ForeignKey,
    JSON,
    LargeBinary,
    PrimaryKeyConstraint,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")

ROLES = ("super_admin", "owner", "member")
INVITABLE_ROLES = ("owner", "member")
INTERVALS = ("daily", "weekly", "monthly", "on_demand")
RUN_STATUSES = ("pending", "running", "completed", "failed")
SENTIMENTS = ("positive", "neutral", "negative")


def _uuid() -> str:
    return str(uuid.uuid4())


class Job(Base):
    """Background job queue with exactly-once claiming."""

    __tablename__ = "jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_type = Column(String(50), nullable=False)
    payload = Column(JSONType, nullable=False)
    status = Column(
        String(20), nullable=False, default="pending", index=True
    )  # pending, processing, completed, failed
    visibility_timeout = Column(DateTime, nullable=True, index=True)
    claimed_by = Column(String(100), nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    processed_at = Column(DateTime, nullable=True)

    __table_args__ = (Index("idx_jobs_processing", "status", "visibility_timeout"),)

    def __repr__(self):
        return f"<Job(id={self.id}, type={self.job_type}, status={self.status})>"


# --- Users & authentication ---------------------------------------------------


class User(Base):
    """Application user. ``registered_at`` is null until sign-up completes."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=False, unique=True)
    email_verified = Column(DateTime, nullable=True)
    image = Column(Text, nullable=True)
    registered_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    accounts = relationship("Account", back_populates="user", cascade="all, delete-orphan")
    sessions = relationship("UserSession", back_populates="user", cascade="all, delete-orphan")
    memberships = relationship("TeamMember", back_populates="user", cascade="all, delete-orphan")
    profile = relationship(
        "UserProfile", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email})>"


class Account(Base):
    """OAuth account linked to a user."""

    __tablename__ = "accounts"

    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(50), nullable=False, default="oauth")
    provider = Column(String(50), nullable=False)
    provider_account_id = Column(String(255), nullable=False)
    refresh_token = Column(Text, nullable=True)
    access_token = Column(Text, nullable=True)
    expires_at = Column(Integer, nullable=True)
    token_type = Column(String(50), nullable=True)
    scope = Column(Text, nullable=True)
    id_token = Column(Text, nullable=True)

    user = relationship("User", back_populates="accounts")

    __table_args__ = (PrimaryKeyConstraint("provider", "provider_account_id"),)


class UserSession(Base):
    """Database-backed login session."""

    __tablename__ = "sessions"

    session_token = Column(String(128), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    expires = Column(DateTime, nullable=False)
    # Super admins may scope a session to another team
    impersonate_team_id = Column(String(36), nullable=True)
    impersonate_expires = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    user = relationship("User", back_populates="sessions")


class VerificationToken(Base):
    """Single-use magic-link token (only the SHA-256 hash is stored)."""

    __tablename__ = "verification_tokens"

    identifier = Column(String(255), nullable=False)
    token_hash = Column(String(64), nullable=False)
    expires = Column(DateTime, nullable=False)

    __table_args__ = (PrimaryKeyConstraint("identifier", "token_hash"),)


# --- Teams --------------------------------------------------------------------


class Team(Base):
    """Billing and access-control unit."""

    __tablename__ = "teams"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    stripe_customer_id = Column(String(255), nullable=True, unique=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    members = relationship("TeamMember", back_populates="team", cascade="all, delete-orphan")
    invitations = relationship(
        "TeamInvitation", back_populates="team", cascade="all, delete-orphan"
    )
    subscriptions = relationship(
        "Subscription", back_populates="team", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<Team(id={self.id}, name={self.name})>"


class TeamMember(Base):
    """Membership of a user in a team (one team per user)."""

    __tablename__ = "team_members"

    id = Column(String(36), primary_key=True, default=_uuid)
    team_id = Column(String(36), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(20), nullable=False, default="member")  # super_admin, owner, member
    joined_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    team = relationship("Team", back_populates="members")
    user = relationship("User", back_populates="memberships")

    __table_args__ = (UniqueConstraint("team_id", "user_id", name="team_members_unique"),)

    def __repr__(self):
        return f"<TeamMember(team_id={self.team_id}, user_id={self.user_id}, role={self.role})>"


class TeamInvitation(Base):
    __tablename__ = "team_invitations"

    id = Column(String(36), primary_key=True, default=_uuid)
    team_id = Column(String(36), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    email = Column(String(255), nullable=False, index=True)
    role = Column(String(20), nullable=False, default="member")  # owner, member
    invited_by = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token = Column(String(128), nullable=False, unique=True)
    expires_at = Column(DateTime, nullable=False)
    accepted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    team = relationship("Team", back_populates="invitations")
    inviter = relationship("User", foreign_keys=[invited_by])


class UserProfile(Base):
    """Company and billing address details."""

    __tablename__ = "user_profiles"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    phone = Column(String(50), nullable=True)
    company_name = Column(String(255), nullable=True)
    company_street = Column(String(255), nullable=True)
    company_zip = Column(String(20), nullable=True)
    company_city = Column(String(255), nullable=True)
    company_country = Column(String(2), nullable=True)
    billing_different = Column(Boolean, nullable=False, default=False)
    billing_company_name = Column(String(255), nullable=True)
    billing_street = Column(String(255), nullable=True)
    billing_zip = Column(String(20), nullable=True)
    billing_city = Column(String(255), nullable=True)
    billing_country = Column(String(2), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="profile")


# --- Tracking -----------------------------------------------------------------


class Domain(Base):
    """A tracked brand website."""

    __tablename__ = "domains"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    team_id = Column(String(36), ForeignKey("teams.id", ondelete="CASCADE"), nullable=True, index=True)
    name = Column(String(255), nullable=False)
    domain_url = Column(String(512), nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    configs = relationship("TrackingConfig", back_populates="domain", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Domain(id={self.id}, url={self.domain_url})>"


class PromptSet(Base):
    """Named list of prompts sent to every provider."""

    __tablename__ = "prompt_sets"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    team_id = Column(String(36), ForeignKey("teams.id", ondelete="CASCADE"), nullable=True, index=True)
    name = Column(String(255), nullable=False)
    prompts = Column(JSONType, nullable=False, default=list)
    intent_categories = Column(JSONType, nullable=True)  # funnel subcategory ids
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    configs = relationship(
        "TrackingConfig", back_populates="prompt_set", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<PromptSet(id={self.id}, name={self.name}, prompts={len(self.prompts or [])})>"


class TrackingConfig(Base):
    """Binding of a domain and a prompt set to a run interval."""

    __tablename__ = "tracking_configs"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    team_id = Column(String(36), ForeignKey("teams.id", ondelete="CASCADE"), nullable=True, index=True)
    domain_id = Column(String(36), ForeignKey("domains.id", ondelete="CASCADE"), nullable=False)
    prompt_set_id = Column(
        String(36), ForeignKey("prompt_sets.id", ondelete="CASCADE"), nullable=False
    )
    interval = Column(String(20), nullable=True)  # daily, weekly, monthly, on_demand
    next_run_at = Column(DateTime, nullable=True, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    domain = relationship("Domain", back_populates="configs")
    prompt_set = relationship("PromptSet", back_populates="configs")
    runs = relationship("TrackingRun", back_populates="config", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<TrackingConfig(id={self.id}, interval={self.interval})>"


class TrackingRun(Base):
    """One execution of a tracking config."""

    __tablename__ = "tracking_runs"

    id = Column(String(36), primary_key=True, default=_uuid)
    config_id = Column(
        String(36), ForeignKey("tracking_configs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status = Column(String(20), nullable=False, default="pending")  # pending, running, completed, failed
    started_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)
    error_message = Column(Text, nullable=True)

    config = relationship("TrackingConfig", back_populates="runs")
    results = relationship("TrackingResult", back_populates="run", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<TrackingRun(id={self.id}, status={self.status})>"


class TrackingResult(Base):
    """A single provider answer to a single prompt within a run."""

    __tablename__ = "tracking_results"

    id = Column(String(36), primary_key=True, default=_uuid)
    run_id = Column(
        String(36), ForeignKey("tracking_runs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    provider = Column(String(20), nullable=False)  # chatgpt, claude, gemini, perplexity
    prompt = Column(Text, nullable=False)
    response = Column(Text, nullable=False)
    visibility_score = Column(Integer, nullable=True)
    mention_count = Column(Integer, nullable=False, default=0)
    citations = Column(JSONType, nullable=True)
    sentiment = Column(String(20), nullable=True)  # positive, neutral, negative
    sentiment_score = Column(Integer, nullable=True)  # -100..100
    input_tokens = Column(Integer, nullable=True)
    output_tokens = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    run = relationship("TrackingRun", back_populates="results")

    __table_args__ = (Index("idx_tracking_results_provider_created", "provider", "created_at"),)

    def __repr__(self):
        return f"<TrackingResult(run_id={self.run_id}, provider={self.provider}, score={self.visibility_score})>"


class Favicon(Base):
    """Cached favicon of a cited hostname."""

    __tablename__ = "favicons"

    domain = Column(String(255), primary_key=True)
    content_type = Column(String(100), nullable=False, default="image/png")
    data = Column(LargeBinary, nullable=False)
    fetched_at = Column(DateTime, nullable=False, default=datetime.utcnow)


# --- Billing ------------------------------------------------------------------


class Subscription(Base):
    """Stripe subscription mirrored from webhooks."""

    __tablename__ = "subscriptions"

    id = Column(String(36), primary_key=True, default=_uuid)
    team_id = Column(String(36), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    stripe_subscription_id = Column(String(255), nullable=False, unique=True)
    stripe_price_id = Column(String(255), nullable=False)
    plan = Column(String(20), nullable=False)  # starter, team, professional
    status = Column(String(30), nullable=False)  # Stripe status string
    current_period_start = Column(DateTime, nullable=True)
    current_period_end = Column(DateTime, nullable=True)
    cancel_at_period_end = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    team = relationship("Team", back_populates="subscriptions")

    def __repr__(self):
        return f"<Subscription(team_id={self.team_id}, plan={self.plan}, status={self.status})>"


# --- Magazine -----------------------------------------------------------------


class MagazineArticle(Base):
    """CMS article authored in German (the default locale)."""

    __tablename__ = "magazine_articles"

    id = Column(String(36), primary_key=True, default=_uuid)
    slug = Column(String(255), nullable=False, unique=True)
    title = Column(String(500), nullable=False)
    excerpt = Column(Text, nullable=True)
    content = Column(Text, nullable=False)  # HTML
    cover_image = Column(Text, nullable=True)
    author_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    published = Column(Boolean, nullable=False, default=False)
    published_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    author = relationship("User")
    translations = relationship(
        "MagazineArticleTranslation", back_populates="article", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<MagazineArticle(slug={self.slug}, published={self.published})>"


class MagazineArticleTranslation(Base):
    __tablename__ = "magazine_article_translations"

    id = Column(String(36), primary_key=True, default=_uuid)
    article_id = Column(
        String(36), ForeignKey("magazine_articles.id", ondelete="CASCADE"), nullable=False
    )
    locale = Column(String(5), nullable=False)
    slug = Column(String(255), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    excerpt = Column(Text, nullable=True)
    content = Column(Text, nullable=False)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    article = relationship("MagazineArticle", back_populates="translations")

    __table_args__ = (
        UniqueConstraint("article_id", "locale", name="magazine_translation_article_locale"),
    )
