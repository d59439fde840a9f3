"""
Main application entry point for wait-for-checks.

This module configures logging, turns the workflow environment into a
polling configuration, runs the poller and reports the outcome as workflow
outputs and a process exit code.
"""

import asyncio
import json
import logging
import sys
from datetime import datetime
from pathlib import Path

import structlog

from .config import PollConfig, Settings, get_settings
from .exceptions import ConfigurationError, PollFailedError
from .github_client import GitHubClient
from .models import PollOutcome
from .polling import CheckRunPoller

EXIT_SUCCESS = 0
EXIT_FAILED = 1
EXIT_CONFIGURATION_ERROR = 2


def setup_logging(log_level: str = "INFO", log_format: str = "console") -> None:
    """
    Configure structlog on top of the standard logging module.

    Args:
        log_level: Name of the minimum level to emit
        log_format: "json" for machine-readable lines, anything else for
            the console renderer
    """
    logging.basicConfig(level=getattr(logging, log_level), format="%(message)s")

    renderer = (
        structlog.processors.JSONRenderer()
        if log_format == "json"
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def pick_sha(settings: Settings) -> str:
    """
    Pick the commit to poll.

    An explicit ref wins. For pull_request events the head commit of the pull
    request is used, since GITHUB_SHA points at the test merge commit there.
    """
    if settings.ref:
        return settings.ref

    if settings.github_event_name == "pull_request" and settings.github_event_path:
        try:
            payload = json.loads(Path(settings.github_event_path).read_text())
        except (OSError, ValueError) as e:
            raise ConfigurationError(
                f"Failed to read event payload {settings.github_event_path}: {e}"
            ) from e
        head_sha = (payload.get("pull_request") or {}).get("head", {}).get("sha")
        if head_sha:
            return str(head_sha)

    if not settings.github_sha:
        raise ConfigurationError("No ref to poll: set INPUT_REF or GITHUB_SHA")
    return settings.github_sha


def build_ignore_list(settings: Settings) -> list[str]:
    """Configured ignore list plus the current job, which cannot wait on itself."""
    ignore = list(settings.ignore)
    if settings.github_job and settings.github_job not in ignore:
        ignore.append(settings.github_job)
    return ignore


def write_outputs(settings: Settings, outcome: PollOutcome) -> None:
    """Append step outputs to the GITHUB_OUTPUT file when running in a workflow."""
    if not settings.github_output:
        return

    with open(settings.github_output, "a", encoding="utf-8") as f:
        f.write(f"time={datetime.now().astimezone().strftime('%H:%M:%S %Z')}\n")
        f.write(f"outcome={outcome.status.value}\n")


async def run(settings: Settings, config: PollConfig) -> PollOutcome:
    """Poll check runs with a GitHub client built from the settings."""
    github_client = GitHubClient(settings)
    try:
        poller = CheckRunPoller(github_client, config)
        return await poller.poll()
    finally:
        github_client.close()


def main() -> None:
    """Main entry point."""
    try:
        settings = get_settings()
    except ConfigurationError as e:
        print(f"::error::{e}")
        sys.exit(EXIT_CONFIGURATION_ERROR)

    setup_logging(settings.log_level, settings.log_format)
    logger = structlog.get_logger()

    try:
        settings.validate_credentials()
        config = settings.to_poll_config(
            pick_sha(settings), build_ignore_list(settings)
        )
    except ConfigurationError as e:
        logger.error("Invalid configuration", error=str(e))
        print(f"::error::{e}")
        sys.exit(EXIT_CONFIGURATION_ERROR)

    outcome = asyncio.run(run(settings, config))
    write_outputs(settings, outcome)

    try:
        outcome.raise_for_status()
    except PollFailedError as e:
        logger.error("Check runs did not succeed", reason=e.reason)
        print(f"::error::{e.reason}")
        sys.exit(EXIT_FAILED)

    logger.info("Check runs succeeded", reason=outcome.reason)
    sys.exit(EXIT_SUCCESS)


if __name__ == "__main__":
    main()
