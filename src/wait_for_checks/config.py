"""
Configuration management for wait-for-checks.

This module handles environment variables, settings validation, and configuration
management using Pydantic Settings for type safety and validation. Action inputs
arrive as ``INPUT_<NAME>`` variables; the workflow context arrives as the usual
``GITHUB_*`` variables.
"""

import re
from enum import Enum
from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError
from .models import CheckConclusion, TimeoutBehavior

DEFAULT_SUCCESS_CONCLUSIONS = frozenset(
    {CheckConclusion.SUCCESS, CheckConclusion.SKIPPED}
)


def _as_text(item: Any) -> str:
    return str(item.value if isinstance(item, Enum) else item).strip()


def _split_csv(v: Any, field_name: str) -> list[str]:
    if isinstance(v, str):
        return [item.strip() for item in v.split(",") if item.strip()]
    elif isinstance(v, (list, tuple, set, frozenset)):
        return [_as_text(item) for item in v if _as_text(item)]
    elif isinstance(v, (int, float)) and not isinstance(v, bool):
        # a bare number in the environment is JSON-decoded before validation
        return [str(v)]
    else:
        error_msg = f"{field_name} must be a string or list, got {type(v)}"
        raise ValueError(error_msg)


class PollConfig(BaseModel):
    """Immutable configuration for one polling session."""

    model_config = ConfigDict(frozen=True)

    owner: str = Field(..., min_length=1, description="Repository owner")
    repo: str = Field(..., min_length=1, description="Repository name")
    ref: str = Field(..., min_length=1, description="Commit SHA, branch or tag")

    # frequency and timeout
    interval_seconds: float = Field(
        default=10, ge=0, description="Delay between polling cycles"
    )
    timeout_seconds: float = Field(
        default=3600, ge=0, description="Maximum elapsed polling time"
    )
    timeout_behavior: TimeoutBehavior = Field(
        default=TimeoutBehavior.FAIL, description="Outcome when the timeout elapses"
    )

    # ignore
    ignore_checks: tuple[str, ...] = Field(
        default=(), description="Check names excluded by exact match"
    )

    # success criteria
    success_conclusions: frozenset[CheckConclusion] = Field(
        default=DEFAULT_SUCCESS_CONCLUSIONS,
        description="Conclusions of completed runs that are not failures",
    )

    match_pattern: str | None = Field(
        default=None, description="Only watch checks whose name matches"
    )
    ignore_pattern: str | None = Field(
        default=None, description="Do not watch checks whose name matches"
    )

    # pagination
    page_size: int = Field(default=100, ge=1, le=100, description="Runs per page")
    page_delay_seconds: float = Field(
        default=1.0, ge=0, description="Pause between page requests in one cycle"
    )

    max_consecutive_fetch_errors: int = Field(
        default=0,
        ge=0,
        description="Failed fetches in a row before giving up (0 = never)",
    )

    @field_validator("ignore_checks", mode="before")
    @classmethod
    def parse_ignore_checks(cls, v: Any) -> tuple[str, ...]:
        """Parse ignored check names from comma-separated string or list."""
        return tuple(_split_csv(v, "ignore_checks"))

    @field_validator("success_conclusions", mode="before")
    @classmethod
    def parse_success_conclusions(cls, v: Any) -> list[str]:
        """Parse success conclusions from comma-separated string or list."""
        conclusions = _split_csv(v, "success_conclusions")
        allowed = {conclusion.value for conclusion in CheckConclusion}
        for conclusion in conclusions:
            if conclusion not in allowed:
                raise ValueError(f"Invalid conclusion: {conclusion}")
        return conclusions

    @field_validator("match_pattern", "ignore_pattern", mode="before")
    @classmethod
    def blank_pattern_as_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("match_pattern", "ignore_pattern")
    @classmethod
    def validate_pattern(cls, v: str | None) -> str | None:
        """Validate that a name pattern compiles."""
        if v is not None:
            try:
                re.compile(v)
            except re.error as e:
                raise ValueError(f"Invalid regular expression {v!r}: {e}") from e
        return v


def build_poll_config(**values: Any) -> PollConfig:
    """
    Build a PollConfig, reporting invalid values as a ConfigurationError.

    Args:
        **values: PollConfig fields

    Returns:
        Validated PollConfig
    """
    try:
        return PollConfig(**values)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in e.errors()
        )
        raise ConfigurationError(
            f"Invalid polling configuration: {problems}",
            context={"errors": e.errors(include_url=False)},
        ) from e


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True,
        populate_by_name=True,
    )

    # GitHub authentication
    github_token: str = Field(
        default="",
        validation_alias=AliasChoices("INPUT_TOKEN", "GITHUB_TOKEN"),
        description="Personal access token or workflow token",
    )
    github_app_id: int = Field(
        default=0,
        validation_alias=AliasChoices("INPUT_APP_ID", "GITHUB_APP_ID"),
        description="GitHub App ID (0 for token mode)",
    )
    github_app_private_key_path: str = Field(
        default="",
        validation_alias=AliasChoices(
            "INPUT_PRIVATE_KEY_PATH", "GITHUB_APP_PRIVATE_KEY_PATH"
        ),
        description="GitHub App private key path",
    )
    github_api_url: str = Field(
        default="https://api.github.com",
        validation_alias=AliasChoices("GITHUB_API_URL"),
        description="GitHub API URL",
    )

    # Workflow context
    github_repository: str = Field(
        default="",
        validation_alias=AliasChoices("INPUT_REPOSITORY", "GITHUB_REPOSITORY"),
        description="Repository in owner/name form",
    )
    github_sha: str = Field(default="", validation_alias=AliasChoices("GITHUB_SHA"))
    github_event_name: str = Field(
        default="", validation_alias=AliasChoices("GITHUB_EVENT_NAME")
    )
    github_event_path: str = Field(
        default="", validation_alias=AliasChoices("GITHUB_EVENT_PATH")
    )
    github_job: str = Field(default="", validation_alias=AliasChoices("GITHUB_JOB"))
    github_output: str = Field(
        default="", validation_alias=AliasChoices("GITHUB_OUTPUT")
    )

    # Polling inputs
    ref: str = Field(
        default="",
        validation_alias=AliasChoices("INPUT_REF"),
        description="Explicit ref to poll instead of the event's commit",
    )
    ignore: str | list[str] = Field(
        default="",
        validation_alias=AliasChoices("INPUT_IGNORE"),
        description="Check names to ignore (comma-separated)",
    )
    interval_seconds: int = Field(
        default=10,
        validation_alias=AliasChoices("INPUT_INTERVAL", "interval_seconds"),
        description="Polling interval in seconds",
    )
    timeout_seconds: int = Field(
        default=3600,
        validation_alias=AliasChoices("INPUT_TIMEOUT", "timeout_seconds"),
        description="Polling timeout in seconds",
    )
    timeout_behavior: str = Field(
        default=TimeoutBehavior.FAIL.value,
        validation_alias=AliasChoices("INPUT_TIMEOUT_BEHAVIOR", "timeout_behavior"),
        description="Outcome on timeout: fail or success",
    )
    success_conclusions: str | list[str] = Field(
        default="success,skipped",
        validation_alias=AliasChoices(
            "INPUT_SUCCESS_CONCLUSIONS", "success_conclusions"
        ),
        description="Conclusions treated as success (comma-separated)",
    )
    match_pattern: str = Field(
        default="",
        validation_alias=AliasChoices("INPUT_MATCH_PATTERN", "match_pattern"),
        description="Only watch checks matching this regular expression",
    )
    ignore_pattern: str = Field(
        default="",
        validation_alias=AliasChoices("INPUT_IGNORE_PATTERN", "ignore_pattern"),
        description="Ignore checks matching this regular expression",
    )
    page_size: int = Field(
        default=100,
        validation_alias=AliasChoices("INPUT_PAGE_SIZE", "page_size"),
        description="Check runs requested per page",
    )
    page_delay_seconds: float = Field(
        default=1.0,
        validation_alias=AliasChoices("INPUT_PAGE_DELAY", "page_delay_seconds"),
        description="Pause between page requests in seconds",
    )
    max_fetch_errors: int = Field(
        default=0,
        validation_alias=AliasChoices("INPUT_MAX_FETCH_ERRORS", "max_fetch_errors"),
        description="Consecutive fetch errors before failing (0 = unlimited)",
    )

    # Logging configuration
    log_level: str = Field(
        default="INFO",
        validation_alias=AliasChoices("INPUT_LOG_LEVEL", "LOG_LEVEL"),
        description="Log level",
    )
    log_format: str = Field(
        default="console",
        validation_alias=AliasChoices("INPUT_LOG_FORMAT", "LOG_FORMAT"),
        description="Log format: console or json",
    )

    @field_validator("ignore", "success_conclusions", mode="before")
    @classmethod
    def parse_csv(cls, v: Any) -> list[str]:
        """Parse a list input from comma-separated string or list."""
        return _split_csv(v, "value")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        allowed_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed_levels:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        if v.lower() not in {"console", "json"}:
            raise ValueError(f"Invalid log format: {v}")
        return v.lower()

    @property
    def is_app_mode(self) -> bool:
        """Check if GitHub App credentials are configured."""
        return bool(self.github_app_id and self.github_app_private_key_path)

    @property
    def owner_and_repo(self) -> tuple[str, str]:
        """Split the configured repository into owner and name."""
        owner, sep, repo = self.github_repository.partition("/")
        if not sep or not owner or not repo or "/" in repo:
            raise ConfigurationError(
                "GITHUB_REPOSITORY must be set in owner/name form, "
                f"got {self.github_repository!r}"
            )
        return owner, repo

    def validate_credentials(self) -> None:
        """Require a token or a complete set of GitHub App credentials."""
        if not self.github_token and not self.is_app_mode:
            raise ConfigurationError(
                "No valid credentials found: set INPUT_TOKEN or GITHUB_TOKEN, "
                "or GITHUB_APP_ID with GITHUB_APP_PRIVATE_KEY_PATH"
            )

    def to_poll_config(self, ref: str, ignore_checks: list[str]) -> PollConfig:
        """
        Build the polling configuration for the given ref.

        Args:
            ref: Commit reference to poll
            ignore_checks: Final list of ignored check names

        Returns:
            Validated PollConfig
        """
        owner, repo = self.owner_and_repo
        return build_poll_config(
            owner=owner,
            repo=repo,
            ref=ref,
            interval_seconds=self.interval_seconds,
            timeout_seconds=self.timeout_seconds,
            timeout_behavior=self.timeout_behavior,
            ignore_checks=ignore_checks,
            success_conclusions=self.success_conclusions,
            match_pattern=self.match_pattern,
            ignore_pattern=self.ignore_pattern,
            page_size=self.page_size,
            page_delay_seconds=self.page_delay_seconds,
            max_consecutive_fetch_errors=self.max_fetch_errors,
        )


# Global settings instance - initialized lazily to avoid import-time errors
_settings_instance = None


def get_settings() -> Settings:
    """Get the global settings instance, creating it if necessary."""
    global _settings_instance
    if _settings_instance is None:
        try:
            _settings_instance = Settings()
        except ValidationError as e:
            raise ConfigurationError(f"Invalid settings: {e}") from e
    return _settings_instance
