"""
Pytest configuration for Visicheck tests

Provides an in-memory database, seeded users and teams, fake providers,
a recording email sender and an API client. Nothing here touches the network.
"""

from datetime import datetime, timedelta
from types import SimpleNamespace
from typing import Dict, List, Optional

import pytest

from accounts.rbac import SessionUser, create_team_for_user
from core.config import init_config, reset_config
from core.llm_client import set_openai_client
from database.connection import init_db
from database.models import Domain, PromptSet, Subscription, TeamMember, TrackingConfig, User
from notifications.email import set_email_sender
from providers.base import BaseProvider, ProviderResponse


@pytest.fixture(autouse=True)
def reset_globals():
    yield
    reset_config()
    set_openai_client(None)
    set_email_sender(None)


@pytest.fixture
def config():
    cfg = init_config(
        database_url="sqlite://",
        openai_api_key="sk-test",
        environment="test",
        cron_secret="cron-secret",
        stripe_secret_key="sk_test_stripe",
        stripe_webhook_secret="whsec_test",
        stripe_price_starter="price_starter",
        stripe_price_team="price_team",
        stripe_price_professional="price_professional",
        base_url="http://testserver",
        prompt_batch_size=2,
    )
    yield cfg
    reset_config()


@pytest.fixture
def db(config):
    connection = init_db("sqlite://")
    connection.create_tables()
    yield connection
    connection.close()


class RecordingEmailSender:
    """Collects outgoing mails instead of calling Resend."""

    def __init__(self):
        self.sent: List[Dict] = []

    async def send_magic_link(self, to, url):
        self.sent.append({"kind": "magic_link", "to": to, "url": url})
        return True

    async def send_team_invitation(self, to, inviter_name, team_name, token, role):
        self.sent.append(
            {"kind": "invitation", "to": to, "team": team_name, "token": token, "role": role}
        )
        return True

    async def send_run_completed(self, to, run_id, domain_name, prompt_count, status):
        self.sent.append({"kind": "run", "to": to, "run_id": run_id, "status": status})
        return True


@pytest.fixture
def emails():
    sender = RecordingEmailSender()
    set_email_sender(sender)
    yield sender
    set_email_sender(None)


class FakeCompletions:
    def __init__(self, replies):
        self.replies = list(replies)
        self.calls: List[Dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        content = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(content, Exception):
            raise content
        message = SimpleNamespace(content=content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def fake_openai(*replies):
    """An object shaped like AsyncOpenAI whose completions return canned content."""
    return SimpleNamespace(chat=SimpleNamespace(completions=FakeCompletions(replies)))


@pytest.fixture
def neutral_openai():
    client = fake_openai('{"sentiment": "neutral", "score": 0}')
    set_openai_client(client)
    yield client
    set_openai_client(None)


class FakeProvider(BaseProvider):
    """Provider answering from a fixed text, or failing with ``error``."""

    def __init__(self, name: str, text: str = "", citations=None, error: Optional[Exception] = None):
        self.name = name
        super().__init__(api_key="test", model="fake", max_retries=1, retry_delay=0)
        self.text = text
        self.citations = citations or []
        self.error = error
        self.prompts: List[str] = []

    async def _complete(self, prompt: str) -> ProviderResponse:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return ProviderResponse(
            provider=self.name,
            text=self.text,
            citations=list(self.citations),
            input_tokens=10,
            output_tokens=20,
        )


def make_user(
    session,
    email: str,
    name: str = "Test User",
    registered_days_ago: Optional[int] = 0,
    role: str = "owner",
    team_id: Optional[str] = None,
) -> SessionUser:
    """Create a registered user with a team and return them as a SessionUser."""
    registered_at = (
        datetime.utcnow() - timedelta(days=registered_days_ago)
        if registered_days_ago is not None
        else None
    )
    user = User(email=email, name=name, registered_at=registered_at)
    session.add(user)
    session.flush()

    if team_id is None:
        team = create_team_for_user(session, user.id, name)
        team_id = team.id
        if role != "owner":
            member = session.query(TeamMember).filter(TeamMember.user_id == user.id).one()
            member.role = role
    else:
        session.add(TeamMember(team_id=team_id, user_id=user.id, role=role))
    session.flush()

    return SessionUser(
        id=user.id,
        email=email,
        name=name,
        team_id=team_id,
        team_name=name,
        role=role,
    )


def make_tracking_setup(session, user: SessionUser, prompts=None, interval="on_demand", next_run_at=None):
    """Domain, prompt set and config owned by the user's team."""
    domain = Domain(user_id=user.id, team_id=user.team_id, name="Acme", domain_url="https://acme.com")
    prompt_set = PromptSet(
        user_id=user.id,
        team_id=user.team_id,
        name="Core prompts",
        prompts=prompts or ["best anvils", "anvil reviews"],
    )
    session.add_all([domain, prompt_set])
    session.flush()

    config = TrackingConfig(
        user_id=user.id,
        team_id=user.team_id,
        domain_id=domain.id,
        prompt_set_id=prompt_set.id,
        interval=interval,
        next_run_at=next_run_at,
    )
    session.add(config)
    session.flush()
    return SimpleNamespace(domain=domain, prompt_set=prompt_set, config=config)


def add_subscription(session, team_id: str, plan: str = "starter", status: str = "active", **kwargs):
    now = datetime.utcnow()
    subscription = Subscription(
        team_id=team_id,
        stripe_subscription_id=kwargs.get("stripe_subscription_id", f"sub_{team_id[:8]}"),
        stripe_price_id=f"price_{plan}",
        plan=plan,
        status=status,
        current_period_start=kwargs.get("period_start", now - timedelta(days=5)),
        current_period_end=kwargs.get("period_end", now + timedelta(days=25)),
    )
    session.add(subscription)
    session.flush()
    return subscription


@pytest.fixture
def owner(db):
    with db.session() as session:
        return make_user(session, "owner@acme.com", name="Olivia Owner")


@pytest.fixture
def setup(db, owner):
    with db.session() as session:
        return make_tracking_setup(session, owner)
