from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from github import Auth, Github, GithubException, UnknownObjectException

from .exceptions import FatalConfigError

if TYPE_CHECKING:
    from github.Issue import Issue
    from github.Repository import Repository

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"


def get_client(token: str, api_url: str = DEFAULT_API_URL) -> Github:
    """Get a GitHub client using the token."""
    return Github(auth=Auth.Token(token), base_url=api_url.rstrip("/"))


def get_repo(client: Github, repo_path: str) -> Repository:
    """Get the repository hosting the orchestrator and batch processor workflows."""
    parts = repo_path.strip().split("/")
    if len(parts) != 2 or not all(parts):
        msg = f"Invalid GitHub repository path '{repo_path}'. Expected format: 'owner/repository'"
        raise FatalConfigError(msg)

    try:
        return client.get_repo(repo_path)
    except UnknownObjectException as e:
        msg = f"Repository {repo_path} not found or not accessible"
        raise FatalConfigError(msg) from e
    except GithubException as e:
        msg = f"Error accessing repository {repo_path}: {e}"
        raise FatalConfigError(msg) from e


def get_issue(repo: Repository, number: int) -> Issue:
    """Get the migration issue that receives progress comments and cancel commands."""
    try:
        return repo.get_issue(number)
    except GithubException as e:
        msg = f"Cannot access issue #{number} in {repo.full_name}: {e}"
        raise FatalConfigError(msg) from e
