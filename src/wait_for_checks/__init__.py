"""
wait-for-checks

Blocks a CI workflow step until the GitHub check runs of a commit succeed,
fail, or a timeout elapses.
"""

__version__ = "0.1.0"

from .config import PollConfig, Settings, build_poll_config
from .exceptions import WaitForChecksError
from .github_client import GitHubClient
from .models import CheckRun, PollOutcome
from .polling import CheckRunPoller

__all__ = [
    "Settings",
    "PollConfig",
    "build_poll_config",
    "GitHubClient",
    "CheckRun",
    "PollOutcome",
    "CheckRunPoller",
    "WaitForChecksError",
]
