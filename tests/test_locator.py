"""
Tests for locating and cancelling batch processor workflow runs.
"""

import logging
from unittest.mock import Mock

import pytest
from github import GithubException

from migration_orchestrator.locator import WorkflowRunLocator, token_pattern
from migration_orchestrator.models import RunConclusion, RunStatus

TOKEN = "batch-1-1700000000000-4"  # noqa: S105


def _run(run_id: int, title: str, status: str = "in_progress", conclusion: str | None = None) -> Mock:
    run = Mock()
    run.id = run_id
    run.display_title = title
    run.name = "Migration Batch Processor"
    run.status = status
    run.conclusion = conclusion
    run.html_url = f"https://github.com/acme/migrations/actions/runs/{run_id}"
    return run


def _locator(runs: list[Mock]) -> tuple[WorkflowRunLocator, Mock]:
    repo = Mock()
    workflow = repo.get_workflow.return_value
    workflow.get_runs.return_value = runs
    return WorkflowRunLocator(repo), workflow


@pytest.mark.unit
class TestTokenPattern:
    def test_matches_whole_token(self) -> None:
        assert token_pattern(TOKEN).search(f"Migration Batch 1 - ID:{TOKEN}")

    def test_rejects_longer_token_with_same_prefix(self) -> None:
        assert not token_pattern(TOKEN).search(f"Migration Batch 1 - ID:{TOKEN}2")
        assert not token_pattern(TOKEN).search(f"Migration Batch 1 - ID:{TOKEN}-retry")

    def test_requires_id_prefix(self) -> None:
        assert not token_pattern(TOKEN).search(f"Migration Batch 1 - {TOKEN}")
        assert not token_pattern(TOKEN).search(f"Migration Batch 1 - XID:{TOKEN}")


@pytest.mark.unit
class TestFindByCorrelation:
    """Test finding the run of a batch."""

    def test_returns_matching_run(self) -> None:
        locator, workflow = _locator(
            [
                _run(1, "Migration Batch 1 - ID:batch-1-1600000000000-0", "completed", "success"),
                _run(2, f"Migration Batch 1 - ID:{TOKEN}", "completed", "failure"),
            ]
        )

        run = locator.find_by_correlation(TOKEN)

        assert run is not None
        assert run.id == 2
        assert run.status is RunStatus.COMPLETED
        assert run.conclusion is RunConclusion.FAILURE
        assert run.html_url.endswith("/2")
        workflow.get_runs.assert_called_once_with(event="repository_dispatch")

    def test_previous_batch_with_similar_token_not_matched(self) -> None:
        locator, _ = _locator([_run(1, f"Migration Batch 1 - ID:{TOKEN}0")])

        assert locator.find_by_correlation(TOKEN) is None

    def test_falls_back_to_run_name(self) -> None:
        run = _run(3, "")
        run.display_title = None
        run.name = f"Migration Batch 1 - ID:{TOKEN}"
        locator, _ = _locator([run])

        found = locator.find_by_correlation(TOKEN)

        assert found is not None
        assert found.status is RunStatus.IN_PROGRESS
        assert found.conclusion is None

    def test_only_recent_runs_scanned(self) -> None:
        runs = [_run(n, f"Migration Batch {n} - ID:other-{n}") for n in range(25)]
        runs.append(_run(99, f"Migration Batch 1 - ID:{TOKEN}"))
        locator, _ = _locator(runs)

        assert locator.find_by_correlation(TOKEN) is None

    def test_waiting_status_reported_as_queued(self) -> None:
        locator, _ = _locator([_run(4, f"Migration Batch 1 - ID:{TOKEN}", "waiting")])

        run = locator.find_by_correlation(TOKEN)

        assert run is not None
        assert run.status is RunStatus.QUEUED

    def test_listing_error_treated_as_not_found(self, caplog: pytest.LogCaptureFixture) -> None:
        locator, workflow = _locator([])
        workflow.get_runs.side_effect = GithubException(502, "Bad Gateway", None)

        with caplog.at_level(logging.WARNING):
            assert locator.find_by_correlation(TOKEN) is None

        assert "Error finding workflow by batch ID" in caplog.text

    def test_workflow_looked_up_once(self) -> None:
        locator, _ = _locator([])

        locator.find_by_correlation(TOKEN)
        locator.find_by_correlation(TOKEN)

        locator.repo.get_workflow.assert_called_once_with("batch-processor.yml")


@pytest.mark.unit
class TestCancelRuns:
    """Test best-effort cancellation of unfinished runs."""

    def test_cancels_only_matching_runs(self) -> None:
        other = "batch-2-1700000000000-5"
        mine = _run(1, f"Migration Batch 1 - ID:{TOKEN}", "queued")
        also_mine = _run(2, f"Migration Batch 2 - ID:{other}", "in_progress")
        mine.cancel.return_value = True
        also_mine.cancel.return_value = True
        foreign = _run(3, "Migration Batch 1 - ID:batch-1-1600000000000-0", "in_progress")
        locator, workflow = _locator([])
        workflow.get_runs.side_effect = lambda **kwargs: {"queued": [mine], "in_progress": [also_mine, foreign]}[
            kwargs["status"]
        ]

        cancelled = locator.cancel_runs([TOKEN, other])

        assert cancelled == 2
        mine.cancel.assert_called_once()
        also_mine.cancel.assert_called_once()
        foreign.cancel.assert_not_called()

    def test_no_tokens_no_calls(self) -> None:
        locator, workflow = _locator([])

        assert locator.cancel_runs([]) == 0
        workflow.get_runs.assert_not_called()

    def test_refused_cancel_is_not_counted(self, caplog: pytest.LogCaptureFixture) -> None:
        run = _run(1, f"Migration Batch 1 - ID:{TOKEN}", "in_progress")
        run.cancel.return_value = False
        # listed by both the queued and the in_progress scan
        locator, _ = _locator([run])

        with caplog.at_level(logging.WARNING):
            assert locator.cancel_runs([TOKEN]) == 0

        run.cancel.assert_called_once()
        assert "Failed to cancel workflow run 1: request refused" in caplog.text

    def test_run_listed_twice_cancelled_once(self) -> None:
        run = _run(1, f"Migration Batch 1 - ID:{TOKEN}", "in_progress")
        run.cancel.return_value = True
        locator, _ = _locator([run])

        assert locator.cancel_runs([TOKEN]) == 1
        run.cancel.assert_called_once()

    def test_cancel_transport_error_is_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        run = _run(1, f"Migration Batch 1 - ID:{TOKEN}", "in_progress")
        run.cancel.side_effect = GithubException(500, "Server Error", None)
        locator, _ = _locator([run])

        with caplog.at_level(logging.WARNING):
            assert locator.cancel_runs([TOKEN]) == 0

        assert "Failed to cancel workflow run 1: 500" in caplog.text
