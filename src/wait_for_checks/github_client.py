"""
GitHub API client for wait-for-checks.

This module provides the check-run fetcher used by the poller, with
token or GitHub App authentication and error handling.
"""

import time
from pathlib import Path
from typing import Optional, Union, cast

import httpx
import jwt
import requests
import structlog
from github import Auth, Github, GithubException
from github.CheckRun import CheckRun as GithubCheckRun
from github.Commit import Commit
from pydantic import ValidationError

from .config import Settings
from .exceptions import AuthenticationError, GitHubAPIError
from .models import CheckRun, CheckRunPage

logger = structlog.get_logger(__name__)


class GitHubClient:
    """
    GitHub API client for listing check runs.

    This client handles token and GitHub App authentication and returns check
    runs one page at a time, translating library errors into GitHubAPIError.
    """

    def __init__(self, settings: Settings) -> None:
        """
        Initialize the GitHub client.

        Args:
            settings: Application settings
        """
        self.settings = settings
        self._github: Optional[Github] = None
        self._installation_id: Optional[int] = None
        self._commits: dict[tuple[str, str, str], Commit] = {}

    async def _get_github_instance(self) -> Github:
        """Get authenticated GitHub instance."""
        if self._github is None:
            await self._authenticate()
        if self._github is None:
            raise AuthenticationError("Failed to authenticate with GitHub")
        return self._github

    async def _authenticate(self) -> None:
        """Authenticate with GitHub using App authentication or a token."""
        try:
            if self.settings.is_app_mode:
                private_key_path = Path(self.settings.github_app_private_key_path)
                if not private_key_path.exists():
                    raise AuthenticationError(
                        f"Private key not found: {private_key_path}"
                    )

                private_key = private_key_path.read_text()
                jwt_token = self._create_jwt_token(private_key)
                installation_id = await self._get_installation_id(jwt_token)
                access_token = await self._get_installation_access_token(
                    jwt_token, installation_id
                )

                self._github = self._create_github(access_token)
                self._installation_id = installation_id
                logger.info(
                    "GitHub authentication successful (GitHub App mode)",
                    installation_id=installation_id,
                )
                return

            if not self.settings.github_token:
                raise AuthenticationError(
                    "No valid credentials found (GITHUB_TOKEN or GitHub App "
                    "ID and private key)"
                )

            self._github = self._create_github(self.settings.github_token)
            logger.info("GitHub authentication successful (token mode)")

        except AuthenticationError as e:
            logger.error("GitHub authentication failed", error=str(e))
            raise
        except (httpx.HTTPError, jwt.PyJWTError, OSError, ValueError) as e:
            logger.error("GitHub authentication failed", error=str(e))
            raise AuthenticationError(f"Failed to authenticate with GitHub: {e}") from e

    def _create_github(self, token: str) -> Github:
        return Github(
            auth=Auth.Token(token),
            base_url=self.settings.github_api_url,
            per_page=self.settings.page_size,
        )

    def _create_jwt_token(self, private_key: str) -> str:
        """Create JWT token for GitHub App authentication."""
        now = int(time.time())
        payload = {
            "iat": now - 60,  # allow for clock drift
            "exp": now + 600,  # 10 minutes
            "iss": str(self.settings.github_app_id),
        }

        token = cast(
            Union[str, bytes], jwt.encode(payload, private_key, algorithm="RS256")
        )
        # Handle jwt.encode returning bytes in some versions
        if isinstance(token, bytes):
            return token.decode("utf-8")
        return token

    async def _get_installation_id(self, jwt_token: str) -> int:
        """Get the App installation ID for the configured repository."""
        owner, repo = self.settings.owner_and_repo
        async with httpx.AsyncClient(base_url=self.settings.github_api_url) as client:
            response = await client.get(
                f"/repos/{owner}/{repo}/installation",
                headers={
                    "Authorization": f"Bearer {jwt_token}",
                    "Accept": "application/vnd.github+json",
                },
            )

            if response.status_code != 200:
                raise AuthenticationError(
                    f"No installation found for repository {owner}/{repo}: "
                    f"{response.text}"
                )

            installation_id = response.json().get("id")
            if isinstance(installation_id, int):
                return installation_id
            raise AuthenticationError(
                f"Invalid installation ID type: {type(installation_id)}"
            )

    async def _get_installation_access_token(
        self, jwt_token: str, installation_id: int
    ) -> str:
        """Get installation access token."""
        async with httpx.AsyncClient(base_url=self.settings.github_api_url) as client:
            response = await client.post(
                f"/app/installations/{installation_id}/access_tokens",
                headers={
                    "Authorization": f"Bearer {jwt_token}",
                    "Accept": "application/vnd.github+json",
                },
            )

            if response.status_code != 201:
                raise AuthenticationError(
                    f"Failed to get access token: {response.text}"
                )

            token = response.json().get("token")
            if isinstance(token, str):
                return token
            raise AuthenticationError(f"Invalid token type: {type(token)}")

    def _get_commit(
        self, github_instance: Github, owner: str, repo: str, ref: str, page: int
    ) -> Commit:
        # page 1 starts a cycle: follow the ref if it moved since the last one
        key = (owner, repo, ref)
        if page == 1 or key not in self._commits:
            repository = github_instance.get_repo(f"{owner}/{repo}", lazy=True)
            self._commits[key] = repository.get_commit(ref)
        return self._commits[key]

    async def fetch_check_runs_page(
        self, owner: str, repo: str, ref: str, page: int, per_page: int
    ) -> CheckRunPage:
        """
        Fetch one page of check runs for a git reference.

        Args:
            owner: Repository owner
            repo: Repository name
            ref: Commit SHA, branch or tag
            page: 1-based page number
            per_page: Requested page size

        Returns:
            The page's check runs and the total count GitHub reports
        """
        github_instance = await self._get_github_instance()

        try:
            if github_instance.per_page != per_page:
                github_instance.per_page = per_page

            commit = self._get_commit(github_instance, owner, repo, ref, page)
            paginated = commit.get_check_runs()
            runs = paginated.get_page(page - 1)
            total_count = paginated.totalCount if runs else 0

            return CheckRunPage(
                check_runs=[self._to_check_run(run) for run in runs],
                total_count=total_count,
            )
        except ValidationError as e:
            logger.error(
                "Malformed check run in response",
                repo=f"{owner}/{repo}",
                ref=ref,
                page=page,
                error=str(e),
            )
            raise GitHubAPIError(
                f"Malformed check run for {owner}/{repo}@{ref}: {e}",
                context={"page": page},
            ) from e
        except GithubException as e:
            logger.error(
                "Failed to list check runs",
                repo=f"{owner}/{repo}",
                ref=ref,
                page=page,
                status=e.status,
                error=str(e),
            )
            raise GitHubAPIError(
                f"Failed to list check runs for {owner}/{repo}@{ref}: {e}",
                status_code=e.status,
                context={"page": page},
            ) from e
        except requests.RequestException as e:
            logger.error(
                "Request for check runs failed",
                repo=f"{owner}/{repo}",
                ref=ref,
                page=page,
                error=str(e),
            )
            raise GitHubAPIError(
                f"Request for check runs of {owner}/{repo}@{ref} failed: {e}",
                context={"page": page},
            ) from e

    @staticmethod
    def _to_check_run(run: GithubCheckRun) -> CheckRun:
        return CheckRun(
            name=run.name,
            status=run.status,
            conclusion=run.conclusion,
            started_at=run.started_at,
            html_url=run.html_url,
            details_url=run.details_url,
        )

    def close(self) -> None:
        """Release the underlying HTTP session."""
        if self._github is not None:
            self._github.close()
            self._github = None
        self._commits.clear()
