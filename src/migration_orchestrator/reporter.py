"""Progress notifications posted as comments on the migration issue."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import requests
from github import GithubException

from .cancellation import CANCEL_COMMAND

if TYPE_CHECKING:
    from github.Issue import Issue

    from .models import Batch, OrchestrationResult, RemoteRun

logger: logging.Logger = logging.getLogger(__name__)


def format_minutes(seconds: float) -> str:
    minutes = round(seconds / 60)
    return f"{minutes} minute{'s' if minutes != 1 else ''}"


class IssueCommentReporter:
    """Status reporter that writes markdown comments to the migration issue.

    Heartbeats are only logged; the hourly "still processing" notice is
    the only comment posted while a batch runs. A failing comment is logged
    and never interrupts the orchestration.
    """

    def __init__(
        self,
        issue: Issue,
        repo_full_name: str,
        *,
        server_url: str = "https://github.com",
        cancel_command: str = CANCEL_COMMAND,
    ) -> None:
        self.issue: Issue = issue
        self.repo_full_name: str = repo_full_name
        self.server_url: str = server_url.rstrip("/")
        self.cancel_command: str = cancel_command

    @property
    def actions_url(self) -> str:
        return f"{self.server_url}/{self.repo_full_name}/actions"

    @property
    def dispatch_runs_url(self) -> str:
        return f"{self.actions_url}?query=event%3Arepository_dispatch"

    def _post(self, body: str) -> None:
        try:
            self.issue.create_comment(body)
        except (GithubException, requests.RequestException) as e:
            logger.warning(f"Failed to post comment on issue #{self.issue.number}: {e}")

    @staticmethod
    def _next_step(batch: Batch, continuing: str) -> str:
        if batch.is_last:
            return "🏁 **This was the final batch.**"
        return continuing

    def batch_started(self, batch: Batch) -> None:
        meta = batch.metadata
        repo_lines = "\n".join(f"{index}. `{repo}`" for index, repo in enumerate(batch.repositories, start=1))
        body = f"### 🚀 Batch {batch.number} of {batch.total_batches} Starting\n\n"
        body += f"📦 **Repositories in this batch:** {len(batch.repositories)}\n"
        body += f"🔄 **Migration type:** {meta.migration_type}\n"
        body += f"🎯 **Target organization:** `{meta.target_organization}`\n\n"
        body += "<details>\n<summary><b>📋 Repositories being migrated</b></summary>\n\n"
        body += f"{repo_lines}\n\n</details>\n\n---\n\n"
        body += f"**[📊 Track batch progress →]({self.dispatch_runs_url})**"
        self._post(body)

    def batch_dispatch_failed(self, batch: Batch, error: str) -> None:
        body = f"### ❌ Failed to Dispatch Batch {batch.number}\n\n"
        body += f"**Error:** {error}\n\n"
        body += "<details>\n<summary><b>🔧 Troubleshooting Steps</b></summary>\n\n"
        body += "1. Check your GitHub token permissions\n"
        body += "2. Verify the repository dispatch settings\n"
        body += "3. Try manually triggering the workflow with this batch data\n"
        body += f"4. Check the [Actions settings]({self.server_url}/{self.repo_full_name}/settings/actions)\n\n"
        body += "</details>\n\n"
        body += self._next_step(batch, "⏭️ **Continuing with the next batch...**")
        self._post(body)

    def batch_heartbeat(self, batch: Batch, elapsed_seconds: float, status: str) -> None:
        logger.info(f"Batch {batch.number} still running... ({format_minutes(elapsed_seconds)}, {status})")

    def batch_still_processing(self, batch: Batch, elapsed_seconds: float, status: str) -> None:
        body = f"### ⏳ Batch {batch.number} Still Processing\n\n"
        body += f"**Elapsed time:** {format_minutes(elapsed_seconds)}\n"
        body += f"**Status:** {status}\n\n"
        body += "<details>\n<summary><b>Why is this taking so long?</b></summary>\n\n"
        body += "Large repositories or those with extensive history may take longer to migrate. This is normal for:\n"
        body += "- Repositories with many commits\n"
        body += "- Repositories with large files or Git LFS\n"
        body += "- Network latency between source and target\n\n"
        body += "</details>\n\n"
        body += (
            f"💡 **Tip:** You can cancel this migration by commenting `{self.cancel_command}` "
            "(as a standalone command, not in a sentence)"
        )
        self._post(body)

    def batch_completed(self, batch: Batch, run: RemoteRun, elapsed_seconds: float) -> None:
        conclusion = run.conclusion.value if run.conclusion else "unknown"
        icon, emoji = ("✅", "🎉") if run.succeeded else ("❌", "⚠️")
        body = f"### {icon} Batch {batch.number} of {batch.total_batches} Complete\n\n"
        body += f"{emoji} **Status:** {conclusion.upper()}\n"
        body += f"⏱️ **Duration:** {format_minutes(elapsed_seconds)}\n"
        body += f"🔗 **[View detailed results →]({run.html_url})**\n\n"
        body += self._next_step(batch, f"📥 **Next:** Preparing batch {batch.number + 1}...")
        self._post(body)

    def batch_unknown_status(self, batch: Batch) -> None:
        body = f"### ⚠️ Batch {batch.number} Status Unknown\n\n"
        body += "The batch workflow could not be tracked properly.\n\n"
        body += f"**Batch ID:** `{batch.correlation_token}`\n\n"
        body += "<details>\n<summary><b>🔍 Troubleshooting Steps</b></summary>\n\n"
        body += f"1. Check the [Actions tab]({self.actions_url}) for any running workflows\n"
        body += f'2. Look for a workflow named "Migration Batch {batch.number} - ID:{batch.correlation_token}"\n'
        body += "3. If found, wait for it to complete\n"
        body += "4. If not found, the batch may need to be re-run manually\n\n"
        body += "</details>\n\n"
        body += self._next_step(batch, "⏭️ **Continuing to next batch...**")
        self._post(body)

    def batch_timed_out(self, batch: Batch, max_wait_seconds: float) -> None:
        hours = round(max_wait_seconds / 3600, 1)
        body = f"### ⚠️ Batch {batch.number} Timed Out\n\n"
        body += f"The batch exceeded the maximum wait time of {hours:g} hours.\n\n"
        body += "**What this means:**\n"
        body += "- The batch may still be running\n"
        body += "- The workflow tracking timed out\n"
        body += "- Migration will continue with the next batch\n\n"
        body += f"**Action required:** Check the [Actions tab]({self.actions_url}) for the actual status.\n\n"
        body += self._next_step(batch, f"⏭️ **Proceeding to batch {batch.number + 1}...**")
        self._post(body)

    def batch_cancelled(self, batch: Batch) -> None:
        body = f"### 🛑 Migration Cancelled During Batch {batch.number}\n\n"
        body += "**Status:** Batch was in progress when cancellation was requested\n\n"
        body += (
            "> **Note:** A cancellation request was sent for the running batch workflow. "
            f"Check the [Actions tab]({self.actions_url}) for details."
        )
        self._post(body)

    def orchestration_cancelled(self, batch: Batch, completed: int, remaining: int) -> None:
        body = "### 🛑 Migration Cancelled\n\n"
        body += f"**Stopped at:** Batch {batch.number} of {batch.total_batches}\n\n"
        body += "| Status | Count |\n|--------|-------|\n"
        body += f"| ✅ Completed batches | {completed} |\n"
        body += f"| ⏭️ Remaining batches | {remaining} |\n\n"
        body += (
            "> **Note:** Cancellation was requested for batch workflows still running. "
            f"Check the [Actions tab]({self.actions_url}) for their final state."
        )
        self._post(body)

    def orchestration_finished(self, result: OrchestrationResult) -> None:
        body = "## 📈 All Batches Processed\n\n"
        body += "| Result | Batches |\n|--------|---------|\n"
        body += f"| ✅ Succeeded | {result.succeeded} |\n"
        body += f"| ❌ Failed or untracked | {result.failed} |\n"
        body += f"| 📦 Total | {result.total_batches} |\n\n"
        body += f"🔍 **[View all batch workflows →]({self.dispatch_runs_url})**"
        self._post(body)
