"""
Tests for the GitHub check-run fetcher.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import jwt
import pytest
import requests
from conftest import make_settings
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from github import GithubException

from wait_for_checks.exceptions import AuthenticationError, FetchError, GitHubAPIError
from wait_for_checks.github_client import GitHubClient


def github_check_run(name, status="completed", conclusion="success", started_at=None):
    """Mock a PyGithub CheckRun object."""
    run = MagicMock()
    run.name = name
    run.status = status
    run.conclusion = conclusion
    run.started_at = started_at
    run.html_url = f"https://github.com/test-org/test-repo/runs/{name}"
    run.details_url = None
    return run


@pytest.fixture
def private_key_pem() -> str:
    """A throwaway RSA private key in PEM form."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


@pytest.fixture
def mock_github():
    """Patch the PyGithub client class used by GitHubClient."""
    with patch("wait_for_checks.github_client.Github") as github_class:
        yield github_class


class TestFetchCheckRunsPage:
    """Test listing check runs through PyGithub."""

    def setup_method(self):
        self.settings = make_settings(
            GITHUB_TOKEN="test-token", GITHUB_REPOSITORY="test-org/test-repo"
        )

    @pytest.mark.asyncio
    async def test_converts_page(self, mock_github):
        """Test that a page of PyGithub check runs is converted."""
        started = datetime(2024, 1, 1, tzinfo=timezone.utc)
        github_instance = mock_github.return_value
        commit = github_instance.get_repo.return_value.get_commit.return_value
        paginated = commit.get_check_runs.return_value
        paginated.get_page.return_value = [
            github_check_run("build", started_at=started),
            github_check_run("test", status="in_progress", conclusion=None),
        ]
        paginated.totalCount = 3

        client = GitHubClient(self.settings)
        page = await client.fetch_check_runs_page(
            "test-org", "test-repo", "abc123", 2, 50
        )

        github_instance.get_repo.assert_called_once_with("test-org/test-repo", lazy=True)
        github_instance.get_repo.return_value.get_commit.assert_called_once_with(
            "abc123"
        )
        paginated.get_page.assert_called_once_with(1)
        assert github_instance.per_page == 50
        assert page.total_count == 3
        assert [run.name for run in page.check_runs] == ["build", "test"]
        assert page.check_runs[0].started_at == started
        assert page.check_runs[0].conclusion == "success"
        assert page.check_runs[1].is_completed is False

    @pytest.mark.asyncio
    async def test_empty_page(self, mock_github):
        """Test that an empty page reports no further runs."""
        commit = mock_github.return_value.get_repo.return_value.get_commit.return_value
        commit.get_check_runs.return_value.get_page.return_value = []

        client = GitHubClient(self.settings)
        page = await client.fetch_check_runs_page("test-org", "test-repo", "abc", 1, 100)

        assert page.check_runs == []
        assert page.total_count == 0

    @pytest.mark.asyncio
    async def test_ref_is_resolved_again_each_cycle(self, mock_github):
        """Test that a branch that moves between cycles is followed."""
        get_commit = mock_github.return_value.get_repo.return_value.get_commit
        old_commit, new_commit = MagicMock(), MagicMock()
        old_commit.get_check_runs.return_value.get_page.return_value = [
            github_check_run("old-sha-check")
        ]
        old_commit.get_check_runs.return_value.totalCount = 1
        new_commit.get_check_runs.return_value.get_page.return_value = [
            github_check_run("new-sha-check")
        ]
        new_commit.get_check_runs.return_value.totalCount = 1
        get_commit.side_effect = [old_commit, new_commit]

        client = GitHubClient(self.settings)
        first = await client.fetch_check_runs_page(
            "test-org", "test-repo", "main", 1, 100
        )
        second = await client.fetch_check_runs_page(
            "test-org", "test-repo", "main", 1, 100
        )

        assert [run.name for run in first.check_runs] == ["old-sha-check"]
        assert [run.name for run in second.check_runs] == ["new-sha-check"]
        assert get_commit.call_count == 2
        mock_github.assert_called_once()

    @pytest.mark.asyncio
    async def test_later_pages_stay_on_the_cycle_commit(self, mock_github):
        """Test that pages after the first reuse the commit resolved on page 1."""
        get_commit = mock_github.return_value.get_repo.return_value.get_commit
        get_commit.return_value.get_check_runs.return_value.get_page.return_value = []

        client = GitHubClient(self.settings)
        for page_number in (1, 2, 3):
            await client.fetch_check_runs_page(
                "test-org", "test-repo", "main", page_number, 100
            )

        get_commit.assert_called_once_with("main")

    @pytest.mark.asyncio
    async def test_malformed_check_run_becomes_api_error(self, mock_github):
        """Test that a run without a name is reported as a fetch error."""
        commit = mock_github.return_value.get_repo.return_value.get_commit.return_value
        commit.get_check_runs.return_value.get_page.return_value = [
            github_check_run(None, status=None)
        ]
        commit.get_check_runs.return_value.totalCount = 1

        client = GitHubClient(self.settings)
        with pytest.raises(GitHubAPIError, match="Malformed check run") as exc_info:
            await client.fetch_check_runs_page("test-org", "test-repo", "abc", 1, 100)

        assert isinstance(exc_info.value, FetchError)

    @pytest.mark.asyncio
    async def test_github_exception_becomes_api_error(self, mock_github):
        """Test that PyGithub errors are wrapped as fetch errors."""
        mock_github.return_value.get_repo.return_value.get_commit.side_effect = (
            GithubException(502, {"message": "Bad Gateway"}, None)
        )

        client = GitHubClient(self.settings)
        with pytest.raises(GitHubAPIError) as exc_info:
            await client.fetch_check_runs_page("test-org", "test-repo", "abc", 1, 100)

        assert exc_info.value.status_code == 502
        assert isinstance(exc_info.value, FetchError)

    @pytest.mark.asyncio
    async def test_transport_error_becomes_api_error(self, mock_github):
        """Test that connection problems are wrapped as fetch errors."""
        commit = mock_github.return_value.get_repo.return_value.get_commit.return_value
        commit.get_check_runs.return_value.get_page.side_effect = (
            requests.ConnectionError("connection reset")
        )

        client = GitHubClient(self.settings)
        with pytest.raises(GitHubAPIError, match="connection reset"):
            await client.fetch_check_runs_page("test-org", "test-repo", "abc", 1, 100)

    @pytest.mark.asyncio
    async def test_failed_commit_lookup_is_retried(self, mock_github):
        """Test that a failed lookup is not cached."""
        get_commit = mock_github.return_value.get_repo.return_value.get_commit
        commit = MagicMock()
        commit.get_check_runs.return_value.get_page.return_value = []
        get_commit.side_effect = [GithubException(404, {"message": "No commit"}), commit]

        client = GitHubClient(self.settings)
        with pytest.raises(GitHubAPIError):
            await client.fetch_check_runs_page("test-org", "test-repo", "abc", 1, 100)
        page = await client.fetch_check_runs_page("test-org", "test-repo", "abc", 1, 100)

        assert page.total_count == 0
        assert get_commit.call_count == 2

    def test_close(self, mock_github):
        """Test that closing releases the PyGithub session."""
        client = GitHubClient(self.settings)
        client._github = mock_github.return_value

        client.close()

        mock_github.return_value.close.assert_called_once()
        assert client._github is None


class TestAuthentication:
    """Test token and GitHub App authentication."""

    @pytest.mark.asyncio
    async def test_token_mode(self, mock_github):
        """Test that a token creates an authenticated client."""
        settings = make_settings(GITHUB_TOKEN="test-token", INPUT_PAGE_SIZE="25")

        client = GitHubClient(settings)
        github_instance = await client._get_github_instance()

        assert github_instance is mock_github.return_value
        kwargs = mock_github.call_args.kwargs
        assert kwargs["base_url"] == "https://api.github.com"
        assert kwargs["per_page"] == 25

    @pytest.mark.asyncio
    async def test_missing_credentials(self, mock_github):
        """Test that a fetch without credentials raises AuthenticationError."""
        client = GitHubClient(make_settings())

        with pytest.raises(AuthenticationError, match="No valid credentials"):
            await client.fetch_check_runs_page("test-org", "test-repo", "abc", 1, 100)

        mock_github.assert_not_called()

    @pytest.mark.asyncio
    async def test_app_mode_missing_key_file(self, tmp_path, mock_github):
        """Test that a missing private key is an authentication error."""
        settings = make_settings(
            GITHUB_APP_ID="123",
            GITHUB_APP_PRIVATE_KEY_PATH=str(tmp_path / "missing.pem"),
            GITHUB_REPOSITORY="test-org/test-repo",
        )

        with pytest.raises(AuthenticationError, match="Private key not found"):
            await GitHubClient(settings)._get_github_instance()

    @pytest.mark.asyncio
    async def test_app_mode(self, tmp_path, private_key_pem, mock_github):
        """Test authenticating as a GitHub App installation."""
        key_path = tmp_path / "app.pem"
        key_path.write_text(private_key_pem)
        settings = make_settings(
            GITHUB_APP_ID="123",
            GITHUB_APP_PRIVATE_KEY_PATH=str(key_path),
            GITHUB_REPOSITORY="test-org/test-repo",
        )
        client = GitHubClient(settings)

        with (
            patch.object(
                client, "_get_installation_id", AsyncMock(return_value=42)
            ) as get_installation_id,
            patch.object(
                client,
                "_get_installation_access_token",
                AsyncMock(return_value="installation-token"),
            ) as get_access_token,
            patch("wait_for_checks.github_client.Auth.Token") as token_auth,
        ):
            await client._get_github_instance()

        jwt_token = get_installation_id.await_args.args[0]
        get_access_token.assert_awaited_once_with(jwt_token, 42)
        token_auth.assert_called_once_with("installation-token")
        assert client._installation_id == 42

    def test_jwt_token_is_signed_with_app_key(self, private_key_pem):
        """Test the App JWT claims and signature."""
        settings = make_settings(GITHUB_APP_ID="123", GITHUB_APP_PRIVATE_KEY_PATH="x")
        client = GitHubClient(settings)

        token = client._create_jwt_token(private_key_pem)

        public_key = serialization.load_pem_private_key(
            private_key_pem.encode("utf-8"), password=None
        ).public_key()
        claims = jwt.decode(token, public_key, algorithms=["RS256"])
        assert claims["iss"] == "123"
        assert claims["exp"] - claims["iat"] == 660
