"""Tests for tracking run execution."""

import asyncio
from datetime import timedelta

import pytest

from database.models import TrackingConfig, TrackingResult, TrackingRun
from tests.conftest import FakeProvider, fake_openai, make_tracking_setup
from tracking import executor as executor_module
from tracking.executor import RunExecutor

ANSWER = "**Acme** at acme.com is the best. See https://acme.com/anvils and https://www.tools.org/x"


@pytest.fixture
def favicon_calls(monkeypatch):
    calls = []

    async def fake_fetch(db, domains):
        calls.append(list(domains))
        return len(calls[-1])

    monkeypatch.setattr(executor_module, "fetch_favicons_for_domains", fake_fetch)
    return calls


def create_run(db, config_id):
    with db.session() as session:
        run = TrackingRun(config_id=config_id, status="pending")
        session.add(run)
        session.flush()
        return run.id


def make_executor(db, config, emails, providers):
    return RunExecutor(
        db,
        providers={p.name: p for p in providers},
        email_sender=emails,
        config=config,
        openai_client=fake_openai('{"sentiment": "positive", "score": 60}'),
    )


def test_run_scores_every_prompt_and_provider(db, config, emails, setup, favicon_calls):
    run_id = create_run(db, setup.config.id)
    chatgpt = FakeProvider("chatgpt", text=ANSWER)
    claude = FakeProvider("claude", error=RuntimeError("overloaded"))

    summary = asyncio.run(
        make_executor(db, config, emails, [chatgpt, claude]).execute(run_id, notify_email="owner@acme.com")
    )

    assert summary == {"runId": run_id, "status": "completed", "results": 4}
    assert sorted(chatgpt.prompts) == ["anvil reviews", "best anvils"]

    with db.session() as session:
        run = session.query(TrackingRun).filter(TrackingRun.id == run_id).one()
        results = session.query(TrackingResult).filter(TrackingResult.run_id == run_id).all()
        config_row = session.query(TrackingConfig).filter(TrackingConfig.id == setup.config.id).one()

    assert run.status == "completed"
    assert run.completed_at is not None
    assert config_row.next_run_at is None

    ok = [r for r in results if r.provider == "chatgpt"]
    failed = [r for r in results if r.provider == "claude"]
    assert len(ok) == 2 and len(failed) == 2

    first = ok[0]
    assert "**" not in first.response
    assert first.mention_count == 3
    assert first.visibility_score == 75
    assert first.citations == ["https://acme.com/anvils", "https://www.tools.org/x"]
    assert first.sentiment == "positive"
    assert first.sentiment_score == 60
    assert first.input_tokens == 10

    assert all(r.response == "Error: overloaded" for r in failed)
    assert all(r.visibility_score == 0 and r.sentiment is None for r in failed)

    assert favicon_calls == [["acme.com", "tools.org"]]
    assert emails.sent == [
        {"kind": "run", "to": "owner@acme.com", "run_id": run_id, "status": "completed"}
    ]


def test_scheduled_config_gets_next_run(db, config, emails, owner, favicon_calls):
    with db.session() as session:
        setup = make_tracking_setup(session, owner, prompts=["one"], interval="weekly")
    run_id = create_run(db, setup.config.id)

    asyncio.run(make_executor(db, config, emails, [FakeProvider("gemini", text="nothing")]).execute(run_id))

    with db.session() as session:
        run = session.query(TrackingRun).filter(TrackingRun.id == run_id).one()
        config_row = session.query(TrackingConfig).filter(TrackingConfig.id == setup.config.id).one()

    assert config_row.next_run_at - run.completed_at == timedelta(days=7)
    assert emails.sent == []


def test_run_without_providers_fails(db, config, emails, setup, favicon_calls):
    run_id = create_run(db, setup.config.id)

    summary = asyncio.run(
        make_executor(db, config, emails, []).execute(run_id, notify_email="owner@acme.com")
    )
    assert summary["status"] == "failed"
    assert "No LLM providers" in summary["error"]

    with db.session() as session:
        run = session.query(TrackingRun).filter(TrackingRun.id == run_id).one()

    assert run.status == "failed"
    assert "No LLM providers" in run.error_message
    assert emails.sent[0]["status"] == "failed"
    assert favicon_calls == []


def count_results(db, run_id):
    with db.session() as session:
        return session.query(TrackingResult).filter(TrackingResult.run_id == run_id).count()


def test_executing_a_finished_run_again_is_skipped(db, config, emails, setup, favicon_calls):
    run_id = create_run(db, setup.config.id)
    provider = FakeProvider("chatgpt", text=ANSWER)

    asyncio.run(make_executor(db, config, emails, [provider]).execute(run_id))
    again = asyncio.run(make_executor(db, config, emails, [provider]).execute(run_id))

    assert again == {"runId": run_id, "status": "skipped", "results": 0}
    assert count_results(db, run_id) == 2
    assert len(provider.prompts) == 2


def test_failed_run_is_not_executed_or_reported_twice(db, config, emails, setup, favicon_calls):
    run_id = create_run(db, setup.config.id)

    asyncio.run(make_executor(db, config, emails, []).execute(run_id, notify_email="owner@acme.com"))
    again = asyncio.run(
        make_executor(db, config, emails, []).execute(run_id, notify_email="owner@acme.com")
    )

    assert again["status"] == "skipped"
    assert [mail["status"] for mail in emails.sent] == ["failed"]


def test_interrupted_run_starts_over_without_partial_results(db, config, emails, setup, favicon_calls):
    run_id = create_run(db, setup.config.id)
    with db.session() as session:
        session.query(TrackingRun).filter(TrackingRun.id == run_id).update({TrackingRun.status: "running"})
        session.add(
            TrackingResult(
                run_id=run_id,
                provider="chatgpt",
                prompt="best anvils",
                response="stale",
                mention_count=0,
                visibility_score=0,
            )
        )

    summary = asyncio.run(
        make_executor(db, config, emails, [FakeProvider("chatgpt", text=ANSWER)]).execute(run_id)
    )

    assert summary["status"] == "completed"
    assert count_results(db, run_id) == 2
    with db.session() as session:
        responses = [r.response for r in session.query(TrackingResult).filter(TrackingResult.run_id == run_id)]
    assert "stale" not in responses


def test_heartbeat_after_every_batch(db, config, emails, owner, favicon_calls):
    with db.session() as session:
        setup = make_tracking_setup(session, owner, prompts=["one", "two", "three"])
    run_id = create_run(db, setup.config.id)
    beats = []

    asyncio.run(
        make_executor(db, config, emails, [FakeProvider("claude", text="nothing")]).execute(
            run_id, heartbeat=lambda: beats.append(count_results(db, run_id))
        )
    )

    # prompt_batch_size is 2 in the test config
    assert beats == [2, 3]
