"""Tests for visibility, sentiment, source, run and admin analytics."""

from datetime import datetime, timedelta

import pytest

from analytics.admin import estimate_cost, get_admin_stats, list_teams
from analytics.common import round_half_up
from analytics.runs import get_run_detail, list_runs
from analytics.sentiment import get_sentiment_overview
from analytics.sources import get_source_analytics
from analytics.visibility import get_visibility_timeline
from core.errors import NotFoundError, ValidationError
from database.models import Favicon, TrackingResult, TrackingRun
from tests.conftest import add_subscription, make_tracking_setup, make_user

DAY_ONE = datetime(2025, 3, 1, 9, 0)
DAY_TWO = datetime(2025, 3, 2, 9, 0)


def add_run(session, config_id, results, started_at=DAY_ONE, status="completed"):
    run = TrackingRun(config_id=config_id, status=status, started_at=started_at)
    session.add(run)
    session.flush()
    for values in results:
        values = dict(values)
        values.setdefault("prompt", "best anvils")
        values.setdefault("response", "")
        values.setdefault("created_at", started_at)
        session.add(TrackingResult(run_id=run.id, **values))
    session.flush()
    return run


def test_round_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(-2.5) == -2
    assert round_half_up(1.25, 1) == 1.3
    assert round_half_up(7.0) == 7


def test_visibility_timeline_averages_and_trend(db, owner, setup):
    with db.session() as session:
        add_run(
            session,
            setup.config.id,
            [
                {"provider": "chatgpt", "visibility_score": 100},
                {"provider": "chatgpt", "visibility_score": 50},
                {"provider": "claude", "visibility_score": 0},
                {"provider": "gemini", "visibility_score": None},
            ],
        )
        add_run(
            session,
            setup.config.id,
            [
                {"provider": "chatgpt", "visibility_score": 100},
                {"provider": "claude", "visibility_score": 50},
            ],
            started_at=DAY_TWO,
        )

    with db.session() as session:
        data = get_visibility_timeline(session, owner, setup.domain.id)

    first, second = data["timeline"]
    assert first == {
        "date": "2025-03-01",
        "chatgpt": 75,
        "claude": 0,
        "gemini": None,
        "perplexity": None,
        "avg": 37.5,
    }
    assert second["avg"] == 75
    assert data["summary"] == {
        "latestAvg": 75,
        "previousAvg": 37.5,
        "trend": 37.5,
        "totalDataPoints": 6,
        "timelineDays": 2,
    }


def test_visibility_requires_domain(db, owner):
    with db.session() as session:
        with pytest.raises(ValidationError):
            get_visibility_timeline(session, owner, "")


def test_visibility_hides_other_owners(db, owner, setup):
    with db.session() as session:
        add_run(session, setup.config.id, [{"provider": "chatgpt", "visibility_score": 100}])
        stranger = make_user(session, "stranger@other.com")

    with db.session() as session:
        data = get_visibility_timeline(session, stranger, setup.domain.id)
    assert data["timeline"] == []
    assert data["summary"]["latestAvg"] is None


def test_sentiment_overview(db, owner, setup):
    with db.session() as session:
        add_run(
            session,
            setup.config.id,
            [
                {"provider": "chatgpt", "sentiment": "positive", "sentiment_score": 80},
                {"provider": "claude", "sentiment": "negative", "sentiment_score": -60,
                 "prompt": "anvil reviews", "response": "Acme anvils crack."},
                {"provider": "claude", "sentiment": "neutral", "sentiment_score": 0,
                 "prompt": "anvil reviews"},
                {"provider": "gemini", "sentiment": None},
            ],
        )

    with db.session() as session:
        data = get_sentiment_overview(session, owner, domain_id=setup.domain.id)

    assert data["totals"] == {"positive": 1, "neutral": 1, "negative": 1, "total": 3, "avgScore": 7}
    assert data["byProvider"]["claude"]["avgScore"] == -30
    assert "gemini" not in data["byProvider"]
    assert [p["prompt"] for p in data["promptRanking"]] == ["anvil reviews", "best anvils"]
    assert data["recentNegative"][0]["response"] == "Acme anvils crack."
    assert data["recentNegative"][0]["domain"] == "Acme"
    assert data["overTime"][0]["date"] == "2025-03-01"


def test_sentiment_category_filter(db, owner, setup):
    with db.session() as session:
        prompt_set = session.merge(setup.prompt_set)
        prompt_set.intent_categories = ["comparison"]
        add_run(session, setup.config.id, [{"provider": "chatgpt", "sentiment": "positive", "sentiment_score": 50}])

    with db.session() as session:
        assert get_sentiment_overview(session, owner, category="consideration")["totals"]["total"] == 1
        assert get_sentiment_overview(session, owner, category="comparison")["totals"]["total"] == 1
        assert get_sentiment_overview(session, owner, category="trust")["totals"]["total"] == 0


def test_source_analytics_splits_cited_and_brand_only(db, owner, setup):
    with db.session() as session:
        add_run(
            session,
            setup.config.id,
            [
                {"provider": "perplexity", "response": "See the docs.",
                 "citations": ["https://acme.com/anvils"], "mention_count": 1},
                {"provider": "chatgpt", "response": "Try acme.com for anvils."},
                {"provider": "claude", "response": "Acme makes anvils."},
                {"provider": "gemini", "response": "Nothing relevant."},
            ],
        )

    with db.session() as session:
        data = get_source_analytics(session, owner, setup.domain.id)

    assert data["sourcesByProvider"] == {"perplexity": 1, "chatgpt": 1}
    assert data["brandOnlyByProvider"] == {"claude": 1}
    assert data["ownUrls"][0]["url"] == "https://acme.com/anvils"
    assert data["ownUrls"][0]["count"] == 1
    assert len(data["outputsWithSource"]) == 2
    assert "_sort" not in data["outputsBrandOnly"][0]


def test_list_runs_and_detail(db, owner, setup):
    with db.session() as session:
        run = add_run(
            session,
            setup.config.id,
            [
                {"provider": "chatgpt", "visibility_score": 100,
                 "citations": ["https://www.tools.org/x"]},
                {"provider": "claude", "visibility_score": 0},
            ],
        )
        add_run(session, setup.config.id, [], started_at=DAY_TWO, status="failed")
        session.add(Favicon(domain="tools.org", data=b"\x89PNG", content_type="image/png"))

    with db.session() as session:
        listing = list_runs(session, owner)
        failed_only = list_runs(session, owner, status="failed")
        detail = get_run_detail(session, owner, run.id)

    assert [r["status"] for r in listing["runs"]] == ["failed", "completed"]
    assert listing["domains"] == [{"id": setup.domain.id, "name": "Acme"}]
    assert len(failed_only["runs"]) == 1

    assert detail["resultCount"] == 2
    assert set(detail["resultsByProvider"]) == {"chatgpt", "claude"}
    assert detail["promptSet"]["promptCount"] == 2
    assert detail["favicons"] == {"tools.org": "/api/favicons/tools.org"}


def test_run_detail_of_other_owner_is_not_found(db, owner, setup):
    with db.session() as session:
        run = add_run(session, setup.config.id, [])
        stranger = make_user(session, "stranger@other.com")

    with db.session() as session:
        with pytest.raises(NotFoundError):
            get_run_detail(session, stranger, run.id)


def test_estimate_cost():
    assert estimate_cost("chatgpt", 1_000_000, 1_000_000) == pytest.approx(0.75)
    assert estimate_cost("claude", 500_000, 0) == pytest.approx(0.40)
    assert estimate_cost("unknown", 100, 100) == 0.0


def test_admin_stats_mix_actual_and_estimated_tokens(db, owner, setup):
    now = datetime.utcnow()
    with db.session() as session:
        add_run(
            session,
            setup.config.id,
            [
                {"provider": "chatgpt", "input_tokens": 1_000_000, "output_tokens": 0},
                {"provider": "chatgpt", "prompt": "a" * 40, "response": "b" * 400},
            ],
            started_at=now - timedelta(hours=1),
        )

    with db.session() as session:
        stats = get_admin_stats(session, now=now)

    chatgpt = stats["costByProvider"][0]
    assert chatgpt["provider"] == "chatgpt"
    assert chatgpt["inputTokens"] == 1_000_010
    assert chatgpt["outputTokens"] == 100
    assert chatgpt["calls"] == 2
    assert chatgpt["hasActualUsage"] is True
    assert stats["usageCoverage"] == 50
    assert stats["totals"]["users"] == 1
    assert stats["totals"]["apiCalls"] == 2
    assert stats["apiCallsPerDay"][0]["chatgpt"] == 2
    assert stats["usersOverTime"][-1]["count"] == 1


def test_list_teams(db, owner, setup):
    with db.session() as session:
        add_subscription(session, owner.team_id, plan="team")
        make_user(session, "member@acme.com", role="member", team_id=owner.team_id)

    with db.session() as session:
        teams = list_teams(session)

    assert len(teams) == 1
    team = teams[0]
    assert team["subscription"] == {"plan": "team", "status": "active"}
    assert {m["email"] for m in team["members"]} == {"owner@acme.com", "member@acme.com"}
    assert team["domainCount"] == 1
    assert team["promptSets"][0]["promptCount"] == 2
