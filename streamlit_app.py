"""Streamlit dashboard for Visicheck visibility and sentiment trends."""
from __future__ import annotations

from typing import Dict, List

import streamlit as st

from accounts.auth import get_user_by_email, normalize_email
from accounts.rbac import SessionUser, get_team_for_user
from analytics.sentiment import get_sentiment_overview
from analytics.visibility import get_visibility_timeline
from core.config import get_config
from core.logging_setup import setup_logging
from database.connection import DatabaseConnection
from providers.registry import PROVIDER_LABELS, PROVIDERS
from tracking.resources import list_domains


@st.cache_resource
def get_connection() -> DatabaseConnection:
    config = get_config()
    setup_logging(config.log_level)
    return DatabaseConnection(database_url=config.database_url, pool_size=2)


def load_user(email: str) -> SessionUser | None:
    with get_connection().session() as session:
        user = get_user_by_email(session, normalize_email(email))
        if user is None:
            return None
        team = get_team_for_user(session, user.id)
        return SessionUser(
            id=user.id,
            email=user.email,
            name=user.name,
            team_id=team.team_id if team else None,
            team_name=team.team_name if team else None,
            role=team.role if team else None,
        )


st.set_page_config(page_title="Visicheck Dashboard", page_icon="🔎", layout="wide")

st.title("🔎 Visicheck Dashboard")
st.write("How often AI answer engines mention or cite your domain, and in what tone.")

with st.sidebar:
    st.header("Account")
    email = st.text_input("User email")

if not email:
    st.info("Enter a user email in the sidebar to load their domains.")
    st.stop()

user = load_user(email)
if user is None:
    st.error("No user with that email address.")
    st.stop()

with get_connection().session() as session:
    domains = {d.id: d.name for d in list_domains(session, user)}

if not domains:
    st.warning(f"{user.team_name or user.email} has no domains yet.")
    st.stop()

with st.sidebar:
    domain_id = st.selectbox("Domain", options=list(domains), format_func=domains.get)

with get_connection().session() as session:
    visibility = get_visibility_timeline(session, user, domain_id)
    sentiment = get_sentiment_overview(session, user, domain_id=domain_id)

summary = visibility["summary"]
col1, col2, col3 = st.columns(3)
col1.metric("Latest visibility", summary["latestAvg"], delta=summary["trend"])
col2.metric("Data points", summary["totalDataPoints"])
col3.metric("Days tracked", summary["timelineDays"])

st.subheader("Visibility over time")
timeline: List[Dict] = visibility["timeline"]
if timeline:
    series = [p for p in PROVIDERS if any(row.get(p) is not None for row in timeline)] + ["avg"]
    rows = [{"date": row["date"], **{s: row.get(s) for s in series}} for row in timeline]
    st.line_chart(rows, x="date", y=series)
else:
    st.info("No completed runs for this domain yet.")

st.subheader("Provider breakdown")
if timeline:
    latest = timeline[-1]
    st.bar_chart(
        [{"provider": PROVIDER_LABELS.get(p, p), "score": latest[p]} for p in PROVIDERS if latest.get(p) is not None],
        x="provider",
        y="score",
    )

st.subheader("Sentiment")
totals = sentiment["totals"]
pos, neu, neg = st.columns(3)
pos.metric("Positive", totals.get("positive", 0))
neu.metric("Neutral", totals.get("neutral", 0))
neg.metric("Negative", totals.get("negative", 0))

for item in sentiment["recentNegative"]:
    with st.expander(f"{PROVIDER_LABELS.get(item['provider'], item['provider'])}: {item['prompt'][:80]}"):
        st.write(item["response"])
