"""
Polling system for wait-for-checks.

This package contains the check-run poller and the pure helpers it uses to
select and classify check runs.
"""

from .filters import (
    filter_check_runs,
    is_failure,
    latest_check_runs,
    select_watched_check_runs,
)
from .poller import CheckRunFetcher, CheckRunPoller

__all__ = [
    "CheckRunFetcher",
    "CheckRunPoller",
    "filter_check_runs",
    "is_failure",
    "latest_check_runs",
    "select_watched_check_runs",
]
