"""Dashboards over tracking results."""

from analytics.runs import get_run_detail, list_runs
from analytics.sentiment import get_sentiment_overview
from analytics.sources import get_source_analytics
from analytics.visibility import get_visibility_timeline

__all__ = [
    "get_run_detail",
    "get_sentiment_overview",
    "get_source_analytics",
    "get_visibility_timeline",
    "list_runs",
]
