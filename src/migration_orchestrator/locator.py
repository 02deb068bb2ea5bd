"""Finding and cancelling batch processor workflow runs by correlation token.

``repository_dispatch`` does not return the run it creates, and GitHub
offers no structured field to attach to it. The batch processor therefore
renders the token into its run name (``Migration Batch 3 - ID:<token>``)
and the locator scans recent runs for it.
"""

from __future__ import annotations

import itertools
import logging
import re
from typing import TYPE_CHECKING, Final

import requests
from github import GithubException

from .exceptions import LocatorTransientError
from .models import RemoteRun, RunConclusion, RunStatus

if TYPE_CHECKING:
    from collections.abc import Iterable

    from github.Repository import Repository
    from github.Workflow import Workflow
    from github.WorkflowRun import WorkflowRun

logger: logging.Logger = logging.getLogger(__name__)

DEFAULT_WORKFLOW_FILE: Final[str] = "batch-processor.yml"
DISPATCH_EVENT: Final[str] = "repository_dispatch"
_ACTIVE_STATUSES: Final[tuple[str, ...]] = ("queued", "in_progress")


def token_pattern(token: str) -> re.Pattern[str]:
    """Match ``ID:<token>`` as a whole token.

    ``batch-1-1700000000000-1`` must not match inside ``batch-1-1700000000000-12``.
    """
    return re.compile(rf"(?<![\w-])ID:{re.escape(token)}(?![\w-])")


def run_title(run: WorkflowRun) -> str:
    """Return the rendered run name, falling back to the workflow name."""
    return run.display_title or run.name or ""


def to_remote_run(run: WorkflowRun) -> RemoteRun:
    return RemoteRun(
        id=run.id,
        name=run_title(run),
        status=RunStatus.from_api(run.status),
        conclusion=RunConclusion.from_api(run.conclusion),
        html_url=run.html_url,
    )


class WorkflowRunLocator:
    """Run locator backed by the workflow runs API."""

    def __init__(
        self,
        repo: Repository,
        workflow_file: str = DEFAULT_WORKFLOW_FILE,
        *,
        per_page: int = 20,
    ) -> None:
        self.repo: Repository = repo
        self.workflow_file: str = workflow_file
        self.per_page: int = per_page
        self._workflow: Workflow | None = None

    @property
    def workflow(self) -> Workflow:
        if self._workflow is None:
            self._workflow = self.repo.get_workflow(self.workflow_file)
        return self._workflow

    def _list_recent_runs(self, status: str | None = None) -> list[WorkflowRun]:
        """List the most recent dispatched runs of the batch processor.

        Raises:
            LocatorTransientError: If the API call failed
        """
        try:
            if status is None:
                runs = self.workflow.get_runs(event=DISPATCH_EVENT)
            else:
                runs = self.workflow.get_runs(event=DISPATCH_EVENT, status=status)
            return list(itertools.islice(runs, self.per_page))
        except (GithubException, requests.RequestException) as e:
            msg = f"Failed to list runs of {self.workflow_file}: {e}"
            raise LocatorTransientError(msg) from e

    def find_by_correlation(self, token: str) -> RemoteRun | None:
        """Return the run whose name carries ``token``, or None if not there yet."""
        pattern = token_pattern(token)
        try:
            runs = self._list_recent_runs()
        except LocatorTransientError as e:
            logger.warning(f"Error finding workflow by batch ID {token}: {e}")
            return None

        for run in runs:
            if pattern.search(run_title(run)):
                return to_remote_run(run)
        return None

    def cancel_runs(self, tokens: Iterable[str]) -> int:
        """Cancel queued and in-progress runs belonging to any of ``tokens``."""
        patterns = [token_pattern(token) for token in tokens]
        if not patterns:
            return 0

        cancelled = 0
        seen: set[int] = set()
        for status in _ACTIVE_STATUSES:
            try:
                runs = self._list_recent_runs(status)
            except LocatorTransientError as e:
                logger.warning(f"Error listing {status} batch workflows: {e}")
                continue

            for run in runs:
                title = run_title(run)
                if run.id in seen or not any(pattern.search(title) for pattern in patterns):
                    continue
                seen.add(run.id)
                try:
                    accepted = run.cancel()
                except (GithubException, requests.RequestException) as e:
                    logger.warning(f"Failed to cancel workflow run {run.id}: {e}")
                    continue
                # The API answers 202 when the request is accepted and 409 once the run has finished
                if not accepted:
                    logger.warning(f"Failed to cancel workflow run {run.id}: request refused")
                    continue
                cancelled += 1
                logger.info(f"Cancelled workflow run {run.id} ({title})")
        return cancelled
