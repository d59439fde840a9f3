"""
Data models for wait-for-checks.

Check runs are parsed from the GitHub Checks API shape and are never
persisted; a fresh set is fetched on every polling cycle.
"""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from .exceptions import PollFailedError

COMPLETED = "completed"

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


class CheckConclusion(str, Enum):
    """Conclusions GitHub reports for a completed check run."""

    SUCCESS = "success"
    FAILURE = "failure"
    NEUTRAL = "neutral"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"
    TIMED_OUT = "timed_out"
    ACTION_REQUIRED = "action_required"


class TimeoutBehavior(str, Enum):
    """How a session resolves when the timeout elapses."""

    FAIL = "fail"
    SUCCESS = "success"


class CheckRun(BaseModel):
    """One reported execution of a check against a commit."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str
    status: str
    conclusion: str | None = None
    started_at: datetime | None = None
    html_url: str | None = None
    details_url: str | None = None

    @property
    def is_completed(self) -> bool:
        return self.status == COMPLETED

    @property
    def started_at_or_oldest(self) -> datetime:
        """Start time for ordering; missing is oldest, naive is read as UTC."""
        if self.started_at is None:
            return _OLDEST
        if self.started_at.tzinfo is None:
            return self.started_at.replace(tzinfo=timezone.utc)
        return self.started_at


class CheckRunPage(BaseModel):
    """A single page of check runs plus the total the API reports."""

    check_runs: list[CheckRun] = Field(default_factory=list)
    total_count: int = 0


class PollStatus(str, Enum):
    """Terminal status of a polling session."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"


class PollOutcome(BaseModel):
    """The single terminal outcome of a polling session."""

    model_config = ConfigDict(frozen=True)

    status: PollStatus
    reason: str | None = None
    elapsed_seconds: float = 0
    timed_out: bool = False
    failed_checks: list[CheckRun] = Field(default_factory=list)

    @classmethod
    def succeeded(cls, reason: str | None = None, **kwargs) -> "PollOutcome":
        return cls(status=PollStatus.SUCCEEDED, reason=reason, **kwargs)

    @classmethod
    def failed(cls, reason: str, **kwargs) -> "PollOutcome":
        return cls(status=PollStatus.FAILED, reason=reason, **kwargs)

    @property
    def is_success(self) -> bool:
        return self.status == PollStatus.SUCCEEDED

    def raise_for_status(self) -> None:
        """Raise PollFailedError if the session failed."""
        if not self.is_success:
            raise PollFailedError(self.reason or "Polling failed", outcome=self)
