"""
Custom exceptions for wait-for-checks.

This module defines custom exception classes for better error handling
and debugging across the application.
"""

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .models import PollOutcome


class WaitForChecksError(Exception):
    """Base exception for wait-for-checks errors."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.code = code or "WAIT_FOR_CHECKS_ERROR"
        self.context = context or {}


class ConfigurationError(WaitForChecksError):
    """Exception for configuration related errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message, "CONFIGURATION_ERROR", context)


class InvalidDurationError(WaitForChecksError):
    """Exception for sleep durations that are not usable numbers."""

    def __init__(self, message: str, duration: Any = None):
        super().__init__(message, "INVALID_DURATION", {"duration": repr(duration)})
        self.duration = duration


class FetchError(WaitForChecksError):
    """Exception for failures while fetching check runs."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, code or "FETCH_ERROR", context)


class GitHubAPIError(FetchError):
    """Exception for GitHub API related errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, "GITHUB_API_ERROR", context)
        self.status_code = status_code


class AuthenticationError(FetchError):
    """Exception for authentication related errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message, "AUTHENTICATION_ERROR", context)


class PollFailedError(WaitForChecksError):
    """Raised when a polling session ends with a failed outcome."""

    def __init__(self, reason: str, outcome: "PollOutcome | None" = None):
        super().__init__(reason, "POLL_FAILED")
        self.reason = reason
        self.outcome = outcome
