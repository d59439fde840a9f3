"""
Check-run poller for wait-for-checks.

This module repeatedly fetches the check runs of a commit and decides when
the watched checks have resolved.
"""

from collections.abc import Awaitable, Callable
from typing import Protocol

import structlog

from ..config import PollConfig
from ..exceptions import FetchError
from ..models import CheckRun, CheckRunPage, PollOutcome, TimeoutBehavior
from ..wait import wait
from .filters import is_failure, pending_check_runs, select_watched_check_runs

logger = structlog.get_logger(__name__)

Sleeper = Callable[[float], Awaitable[None]]


class CheckRunFetcher(Protocol):
    """Anything that can return one page of check runs for a ref."""

    async def fetch_check_runs_page(
        self, owner: str, repo: str, ref: str, page: int, per_page: int
    ) -> CheckRunPage: ...


class CheckRunPoller:
    """
    Polls check runs for a ref until they resolve or the timeout elapses.

    Each cycle fetches every page of check runs, keeps the latest run per
    name, applies the configured filters and classifies what is left:
    any failure ends the session, all completed ends it successfully,
    anything else waits one interval and tries again.
    """

    def __init__(
        self,
        fetcher: CheckRunFetcher,
        config: PollConfig,
        sleep: Sleeper = wait,
    ):
        """
        Initialize the poller.

        Args:
            fetcher: Source of check-run pages
            config: Polling configuration
            sleep: Coroutine sleeping for a number of milliseconds
        """
        self.fetcher = fetcher
        self.config = config
        self._sleep = sleep

    async def poll(self) -> PollOutcome:
        """
        Poll until the watched check runs resolve or the timeout elapses.

        Returns:
            The terminal outcome of the session
        """
        config = self.config
        elapsed_seconds = 0.0
        consecutive_fetch_errors = 0

        logger.info(
            "Starting polling GitHub check runs",
            repository=f"{config.owner}/{config.repo}",
            ref=config.ref,
            timeout_seconds=config.timeout_seconds,
            interval_seconds=config.interval_seconds,
            ignore=list(config.ignore_checks),
            success_conclusions=sorted(c.value for c in config.success_conclusions),
        )
        if config.match_pattern:
            logger.info("Using match pattern", match_pattern=config.match_pattern)
        if config.ignore_pattern:
            logger.info("Using ignore pattern", ignore_pattern=config.ignore_pattern)

        while elapsed_seconds < config.timeout_seconds:
            try:
                all_check_runs = await self.fetch_all_check_runs()
            except FetchError as e:
                consecutive_fetch_errors += 1
                logger.error(
                    "Failed to fetch check runs",
                    error=str(e),
                    code=e.code,
                    consecutive_errors=consecutive_fetch_errors,
                )
                limit = config.max_consecutive_fetch_errors
                if limit and consecutive_fetch_errors >= limit:
                    return PollOutcome.failed(
                        f"giving up after {consecutive_fetch_errors} consecutive "
                        f"fetch errors: {e}",
                        elapsed_seconds=elapsed_seconds,
                    )
            else:
                consecutive_fetch_errors = 0
                outcome = self._evaluate_cycle(all_check_runs, elapsed_seconds)
                if outcome is not None:
                    return outcome

            logger.info("Retrying", retry_in_seconds=config.interval_seconds)
            elapsed_seconds += config.interval_seconds
            await self._sleep(config.interval_seconds * 1000)

        return self._resolve_timeout(elapsed_seconds)

    async def fetch_all_check_runs(self) -> list[CheckRun]:
        """
        Fetch every page of check runs for the configured ref.

        Pages are requested until the reported total is reached or a page
        comes back short, pausing between requests.

        Returns:
            All check runs reported for the ref

        Raises:
            FetchError: If any page request fails
        """
        config = self.config
        logger.info(
            "Fetching check runs",
            repository=f"{config.owner}/{config.repo}",
            ref=config.ref,
        )

        check_runs: list[CheckRun] = []
        page_number = 0
        while True:
            page_number += 1
            page = await self.fetcher.fetch_check_runs_page(
                config.owner, config.repo, config.ref, page_number, config.page_size
            )
            check_runs.extend(page.check_runs)
            logger.debug(
                "Received check runs page",
                page=page_number,
                page_count=len(page.check_runs),
                received=len(check_runs),
                total_count=page.total_count,
            )

            if len(check_runs) >= page.total_count:
                break
            if len(page.check_runs) < config.page_size:
                logger.debug(
                    "Short page before reported total, stopping",
                    received=len(check_runs),
                    total_count=page.total_count,
                )
                break

            await self._sleep(config.page_delay_seconds * 1000)

        return check_runs

    def _evaluate_cycle(
        self, all_check_runs: list[CheckRun], elapsed_seconds: float
    ) -> PollOutcome | None:
        """Classify one cycle's check runs; None means keep polling."""
        config = self.config
        check_runs = select_watched_check_runs(all_check_runs, config)
        logger.debug(
            "Selected watched check runs",
            fetched=len(all_check_runs),
            watched=len(check_runs),
        )

        logger.info("Parsing check runs", count=len(check_runs))
        for run in check_runs:
            logger.debug(
                "Check run state",
                check=run.name,
                status=run.status,
                conclusion=run.conclusion,
            )

        failed = [
            run for run in check_runs if is_failure(run, config.success_conclusions)
        ]
        if failed:
            logger.info("One or more watched check runs were not successful")
            for run in failed:
                logger.info(
                    "Check run unsuccessful",
                    check=run.name,
                    conclusion=run.conclusion,
                    url=run.html_url,
                )
            return PollOutcome.failed(
                "One or more check runs were not successful: "
                + ", ".join(f"{run.name} ({run.conclusion})" for run in failed),
                elapsed_seconds=elapsed_seconds,
                failed_checks=failed,
            )

        pending = pending_check_runs(check_runs)
        if not pending:
            if not check_runs:
                logger.info("No check runs left to watch after filtering")
            logger.info("All runs completed without failure")
            return PollOutcome.succeeded(
                "All check runs completed without failure",
                elapsed_seconds=elapsed_seconds,
            )

        logger.info("Check runs have not yet completed", pending=len(pending))
        for run in pending:
            logger.info("Check run still pending", check=run.name, status=run.status)
        return None

    def _resolve_timeout(self, elapsed_seconds: float) -> PollOutcome:
        config = self.config
        logger.info("Timeout reached", elapsed_seconds=elapsed_seconds)

        if config.timeout_behavior == TimeoutBehavior.SUCCESS:
            logger.info(
                'Timeout behavior set to "success" - treating timeout as '
                "successful completion"
            )
            return PollOutcome.succeeded(
                f"elapsed time {elapsed_seconds:g} reached timeout "
                f"{config.timeout_seconds:g}, treated as success",
                elapsed_seconds=elapsed_seconds,
                timed_out=True,
            )

        return PollOutcome.failed(
            f"elapsed time {elapsed_seconds:g} exceeds timeout "
            f"{config.timeout_seconds:g}",
            elapsed_seconds=elapsed_seconds,
            timed_out=True,
        )
