"""Tests for access gating and prompt metering."""

from datetime import datetime, timedelta

import pytest

from accounts.access import get_access_status, require_access
from accounts.usage import (
    calendar_month,
    check_prompt_quota,
    count_configured_prompts,
    count_executed_prompts,
    get_prompt_usage,
)
from core.errors import AccessDeniedError
from database.models import TrackingResult, TrackingRun
from tests.conftest import add_subscription, make_tracking_setup, make_user


def add_results(session, config_id, prompts, providers=("chatgpt", "claude"), created_at=None):
    run = TrackingRun(config_id=config_id, status="completed")
    session.add(run)
    session.flush()
    for prompt in prompts:
        for provider in providers:
            session.add(
                TrackingResult(
                    run_id=run.id,
                    provider=provider,
                    prompt=prompt,
                    response="text",
                    visibility_score=0,
                    created_at=created_at or datetime.utcnow(),
                )
            )
    session.flush()
    return run


def test_super_admin_always_has_access(db):
    with db.session() as session:
        admin = make_user(session, "admin@acme.com", registered_days_ago=400, role="super_admin")
        status = get_access_status(session, admin.id, admin.team_id, admin.role)

    assert status.has_access
    assert not status.is_trial


def test_trial_access_counts_remaining_days(db):
    with db.session() as session:
        user = make_user(session, "new@acme.com", registered_days_ago=3)
        status = get_access_status(session, user.id, user.team_id, user.role)

    assert status.has_access
    assert status.is_trial
    assert status.trial_days_left == 11


def test_active_subscription_wins_over_expired_trial(db):
    with db.session() as session:
        user = make_user(session, "paid@acme.com", registered_days_ago=60)
        add_subscription(session, user.team_id, plan="team", status="trialing")
        status = get_access_status(session, user.id, user.team_id, user.role)

    assert status.has_access
    assert not status.is_trial
    assert status.subscription_plan == "team"
    assert status.subscription_status == "trialing"


def test_expired_trial_without_subscription_is_denied(db):
    with db.session() as session:
        user = make_user(session, "old@acme.com", registered_days_ago=30)
        add_subscription(session, user.team_id, status="canceled")

        assert not get_access_status(session, user.id, user.team_id, user.role).has_access
        with pytest.raises(AccessDeniedError) as exc_info:
            require_access(session, user)

    assert exc_info.value.status_code == 403
    assert exc_info.value.to_dict()["code"] == "TRIAL_EXPIRED"


def test_unregistered_user_has_no_trial(db):
    with db.session() as session:
        user = make_user(session, "invitee@acme.com", registered_days_ago=None)
        assert not get_access_status(session, user.id, user.team_id, user.role).has_access


def test_calendar_month_bounds():
    start, end = calendar_month(datetime(2024, 2, 10, 12, 0))
    assert start == datetime(2024, 2, 1)
    assert end.date() == datetime(2024, 2, 29).date()


def test_executed_prompts_count_once_per_run(db):
    with db.session() as session:
        user = make_user(session, "meter@acme.com")
        setup = make_tracking_setup(session, user, prompts=["a", "b", "c"])
        add_results(session, setup.config.id, ["a", "b"], providers=("chatgpt", "claude", "gemini"))
        add_results(session, setup.config.id, ["a"])

        start, end = calendar_month(datetime.utcnow())
        executed = count_executed_prompts(session, user.id, user.team_id, start, end)
        configured = count_configured_prompts(session, user.id, user.team_id)

    assert executed == 3
    assert configured == 3


def test_trial_usage_uses_calendar_month_and_trial_limit(db, config):
    with db.session() as session:
        user = make_user(session, "trial@acme.com")
        setup = make_tracking_setup(session, user)
        add_results(session, setup.config.id, ["x", "y"])
        add_results(
            session, setup.config.id, ["old"], created_at=datetime.utcnow() - timedelta(days=70)
        )

        usage = get_prompt_usage(session, user.id, user.team_id, is_trial=True)

    assert usage.limit == 25
    assert usage.used == 2
    assert usage.remaining == 23


def test_paid_usage_uses_subscription_period_and_plan_limit(db, config):
    now = datetime.utcnow()
    with db.session() as session:
        user = make_user(session, "pro@acme.com", registered_days_ago=90)
        setup = make_tracking_setup(session, user)
        add_subscription(
            session,
            user.team_id,
            plan="professional",
            period_start=now - timedelta(days=2),
            period_end=now + timedelta(days=28),
        )
        add_results(session, setup.config.id, ["in period"])
        add_results(session, setup.config.id, ["before"], created_at=now - timedelta(days=3))

        usage = get_prompt_usage(session, user.id, user.team_id, is_trial=False)

    assert usage.limit == 300
    assert usage.used == 1


def test_unpaid_usage_has_zero_limit(db, config):
    with db.session() as session:
        user = make_user(session, "unpaid@acme.com", registered_days_ago=90)
        usage = get_prompt_usage(session, user.id, user.team_id, is_trial=False)

    assert usage.limit == 0
    assert usage.remaining == 0


def test_quota_refusal_names_used_limit_and_needed(db, config):
    with db.session() as session:
        user = make_user(session, "quota@acme.com")
        setup = make_tracking_setup(session, user)
        add_results(session, setup.config.id, [f"p{i}" for i in range(24)])

        allowed = check_prompt_quota(session, user.id, user.team_id, True, 1)
        refused = check_prompt_quota(session, user.id, user.team_id, True, 2)

    assert allowed.allowed
    assert not refused.allowed
    assert "24/25" in refused.reason
    assert "needs 2" in refused.reason
