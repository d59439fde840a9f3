"""
Check-run selection and classification helpers.

These are pure functions: the poller feeds them the runs fetched in one cycle
and decides what to do with the result.
"""

import re
from collections.abc import Collection, Iterable

from ..config import PollConfig
from ..models import CheckRun


def latest_check_runs(runs: Iterable[CheckRun]) -> list[CheckRun]:
    """
    Reduce check runs to the most recently started run per check name.

    A re-run reports a new check run under the same name while the old ones
    stay listed, so only the newest one says anything about the commit.
    Runs without a start time count as the oldest. Which run survives an
    exact tie is not defined.

    Args:
        runs: Check runs in any order

    Returns:
        One check run per name, in order of first appearance
    """
    latest: dict[str, CheckRun] = {}
    for run in runs:
        existing = latest.get(run.name)
        if existing is None or run.started_at_or_oldest > existing.started_at_or_oldest:
            latest[run.name] = run
    return list(latest.values())


def filter_check_runs(
    runs: Iterable[CheckRun],
    ignore_checks: Collection[str] = (),
    match_pattern: str | None = None,
    ignore_pattern: str | None = None,
) -> list[CheckRun]:
    """
    Narrow check runs down to the ones a session should wait on.

    Args:
        runs: Candidate check runs
        ignore_checks: Names to drop by exact match
        match_pattern: If set, keep only names this expression finds a match in
        ignore_pattern: If set, drop names this expression finds a match in

    Returns:
        The remaining check runs, order preserved
    """
    ignored = set(ignore_checks)
    check_runs = [run for run in runs if run.name not in ignored]

    if match_pattern:
        pattern = re.compile(match_pattern)
        check_runs = [run for run in check_runs if pattern.search(run.name)]

    if ignore_pattern:
        pattern = re.compile(ignore_pattern)
        check_runs = [run for run in check_runs if not pattern.search(run.name)]

    return check_runs


def select_watched_check_runs(
    runs: Iterable[CheckRun], config: PollConfig
) -> list[CheckRun]:
    """Deduplicate then filter check runs according to a poll configuration."""
    return filter_check_runs(
        latest_check_runs(runs),
        ignore_checks=config.ignore_checks,
        match_pattern=config.match_pattern,
        ignore_pattern=config.ignore_pattern,
    )


def is_failure(run: CheckRun, success_conclusions: Collection[str]) -> bool:
    """Return True if the run completed with a conclusion not counted as success."""
    if run.is_completed:
        return run.conclusion not in success_conclusions
    # still queued or in progress
    return False


def pending_check_runs(runs: Iterable[CheckRun]) -> list[CheckRun]:
    return [run for run in runs if not run.is_completed]
