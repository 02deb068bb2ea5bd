"""
Detecting cancellation of a running orchestration.

Two sources are consulted on every check: the orchestrator's own workflow
run (cancelled from the Actions UI) and a cancel command posted as an
issue comment.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Final

import requests
from github import GithubException

from .exceptions import CancellationCheckError
from .models import CancellationSignal

if TYPE_CHECKING:
    import datetime as dt

    from github.Issue import Issue
    from github.IssueComment import IssueComment
    from github.Repository import Repository

logger: logging.Logger = logging.getLogger(__name__)

CANCEL_COMMAND: Final[str] = "/cancel-migration"
_ACTIONS_BOT_LOGIN: Final[str] = "github-actions[bot]"


def is_cancel_command(body: str | None, command: str = CANCEL_COMMAND) -> bool:
    """Return True if a comment body is the cancel command.

    The command must be the whole comment or open its first line; a
    sentence that merely mentions it does not count.
    """
    trimmed = (body or "").strip()
    if not trimmed:
        return False
    first_line = trimmed.splitlines()[0].strip()
    return first_line == command or first_line.startswith(f"{command} ")


def is_automated(comment: IssueComment) -> bool:
    # Bot comments may quote the command in their instructions
    user = comment.user
    return user is None or user.type == "Bot" or user.login == _ACTIONS_BOT_LOGIN


class GitHubCancellationMonitor:
    """Cancellation monitor backed by the GitHub Actions and Issues APIs."""

    def __init__(
        self,
        repo: Repository,
        issue: Issue,
        *,
        run_id: int | None = None,
        requester: str | None = None,
        command: str = CANCEL_COMMAND,
    ) -> None:
        self.repo: Repository = repo
        self.issue: Issue = issue
        self.run_id: int | None = run_id
        self.requester: str | None = requester
        self.command: str = command

    def _host_cancelled(self) -> bool:
        if self.run_id is None:
            return False
        try:
            run = self.repo.get_workflow_run(self.run_id)
        except (GithubException, requests.RequestException) as e:
            msg = f"Failed to read workflow run {self.run_id}: {e}"
            raise CancellationCheckError(msg) from e
        return run.status == "cancelled" or run.conclusion == "cancelled"

    def _command_posted(self, since: dt.datetime) -> bool:
        try:
            comments = list(self.issue.get_comments(since=since))
        except (GithubException, requests.RequestException) as e:
            msg = f"Failed to list comments of issue #{self.issue.number}: {e}"
            raise CancellationCheckError(msg) from e

        for comment in comments:
            # ``since`` filters on update time, so edited older comments show up too
            if comment.created_at < since:
                continue
            if is_automated(comment):
                continue
            if self.requester and comment.user.login != self.requester:
                continue
            if is_cancel_command(comment.body, self.command):
                logger.info(f"Cancel command found in comment by {comment.user.login}")
                return True
        return False

    def check(self, since: dt.datetime) -> CancellationSignal:
        """Return HOST, COMMAND or NONE. Read errors count as not cancelled."""
        try:
            if self._host_cancelled():
                return CancellationSignal.HOST
        except CancellationCheckError as e:
            logger.warning(f"Error checking cancellation status: {e}")

        try:
            if self._command_posted(since):
                return CancellationSignal.COMMAND
        except CancellationCheckError as e:
            logger.warning(f"Error checking for cancel command: {e}")

        return CancellationSignal.NONE
