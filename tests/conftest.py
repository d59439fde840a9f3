"""
Pytest configuration and fixtures for wait-for-checks tests.
"""

import os
from typing import Any
from unittest.mock import patch

import pytest

from wait_for_checks.config import PollConfig, Settings, build_poll_config
from wait_for_checks.models import CheckRun, CheckRunPage


def make_run(
    name: str,
    status: str = "completed",
    conclusion: str | None = "success",
    started_at: str | None = "2024-01-01T00:00:00",
) -> CheckRun:
    """Build a check run with sensible defaults."""
    return CheckRun(
        name=name, status=status, conclusion=conclusion, started_at=started_at
    )


def make_page(*runs: CheckRun, total_count: int | None = None) -> CheckRunPage:
    """Build a page whose total defaults to the number of runs on it."""
    return CheckRunPage(
        check_runs=list(runs),
        total_count=len(runs) if total_count is None else total_count,
    )


def make_settings(**env: str) -> Settings:
    """Build settings from exactly the given environment variables."""
    with patch.dict(os.environ, env, clear=True):
        return Settings(_env_file=None)


class FakeFetcher:
    """Check-run fetcher replaying a fixed list of pages or errors."""

    def __init__(self, *responses: CheckRunPage | Exception):
        self.responses = list(responses)
        self.calls: list[tuple[str, str, str, int, int]] = []

    async def fetch_check_runs_page(
        self, owner: str, repo: str, ref: str, page: int, per_page: int
    ) -> CheckRunPage:
        self.calls.append((owner, repo, ref, page, per_page))
        if not self.responses:
            raise AssertionError("fetcher called more often than expected")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def pages_requested(self) -> list[int]:
        return [call[3] for call in self.calls]


class RecordingSleeper:
    """Sleep collaborator that records durations instead of sleeping."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, milliseconds: float) -> None:
        self.calls.append(milliseconds)


@pytest.fixture
def sleeper() -> RecordingSleeper:
    """Sleep collaborator for poller tests."""
    return RecordingSleeper()


@pytest.fixture
def poll_config_factory():
    """Factory for poll configurations with test-friendly defaults."""

    def factory(**overrides: Any) -> PollConfig:
        values: dict[str, Any] = {
            "owner": "test-org",
            "repo": "test-repo",
            "ref": "abc123",
            "interval_seconds": 10,
            "timeout_seconds": 60,
            "page_delay_seconds": 1,
        }
        values.update(overrides)
        return build_poll_config(**values)

    return factory


@pytest.fixture
def poll_config(poll_config_factory) -> PollConfig:
    """Default poll configuration."""
    return poll_config_factory()


@pytest.fixture
def workflow_env(tmp_path) -> dict[str, str]:
    """Environment of a push-triggered workflow run."""
    return {
        "GITHUB_TOKEN": "test-token",
        "GITHUB_REPOSITORY": "test-org/test-repo",
        "GITHUB_SHA": "abc123",
        "GITHUB_EVENT_NAME": "push",
        "GITHUB_JOB": "wait-for-checks",
        "GITHUB_OUTPUT": str(tmp_path / "github_output"),
    }
