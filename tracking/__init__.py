"""Tracking runs: execution, scoring, scheduling and prompt generation."""

from tracking.executor import RunExecutor
from tracking.scheduler import compute_next_run, run_scheduled, start_run
from tracking.scoring import compute_visibility_score, count_mentions, strip_markdown

__all__ = [
    "RunExecutor",
    "compute_next_run",
    "compute_visibility_score",
    "count_mentions",
    "run_scheduled",
    "start_run",
    "strip_markdown",
]
