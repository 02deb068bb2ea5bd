"""
Command-line interface for the batch migration orchestrator.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from . import github_utils as ghu
from .cancellation import CANCEL_COMMAND, GitHubCancellationMonitor
from .config import DEFAULT_INSTANCES_PATH, get_github_token, load_instances, require_instance, resolve_instance
from .dispatcher import RepositoryDispatcher
from .exceptions import OrchestrationError
from .locator import DEFAULT_WORKFLOW_FILE, WorkflowRunLocator
from .models import JobMetadata
from .orchestrator import BatchOrchestrationController, OrchestratorSettings
from .partitioner import DEFAULT_BATCH_SIZE, create_batches, parse_repo_list
from .reporter import IssueCommentReporter
from .utils import setup_logging

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .models import Batch, OrchestrationResult

logger: logging.Logger = logging.getLogger(__name__)


def _env_int(name: str) -> int | None:
    value = os.environ.get(name, "").strip()
    return int(value) if value.isdigit() else None


def _default_migration_id() -> str:
    run_id = os.environ.get("GITHUB_RUN_ID", "")
    run_number = os.environ.get("GITHUB_RUN_NUMBER", "")
    return f"{run_id}-{run_number}" if run_id and run_number else ""


def parse_arguments(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Dispatch repository migrations in sequential batches and track each batch workflow"
    )

    # Positional arguments
    _ = parser.add_argument(
        "repository",
        nargs="?",
        default=os.environ.get("GITHUB_REPOSITORY"),
        help="Repository hosting the batch processor workflow (owner/repo, default: $GITHUB_REPOSITORY)",
    )

    _ = parser.add_argument("--issue", "-i", type=int, required=True, help="Migration issue number")
    _ = parser.add_argument(
        "--repos-file", "-r", default="-", help="File with repository URLs, text or JSON array (default: stdin)"
    )
    _ = parser.add_argument(
        "--batch-size", "-b", type=int, default=DEFAULT_BATCH_SIZE, help="Repositories per batch (default: 5)"
    )

    metadata = parser.add_argument_group("migration settings copied onto every batch")
    _ = metadata.add_argument("--migration-type", default="dry-run", help="Migration type (default: dry-run)")
    _ = metadata.add_argument("--migration-id", default=_default_migration_id(), help="Migration identifier")
    _ = metadata.add_argument("--source-org", default="", help="Source organization")
    _ = metadata.add_argument("--target-org", default="", help="Target organization")
    _ = metadata.add_argument("--source-instance", default="", help="Source instance name in instances.json")
    _ = metadata.add_argument("--target-instance", required=True, help="Target instance name in instances.json")
    _ = metadata.add_argument("--visibility", default="private", help="Target repository visibility")
    _ = metadata.add_argument("--skip-prereqs", action="store_true", help="Do not install prerequisites in batches")

    _ = parser.add_argument(
        "--instances-config", default=DEFAULT_INSTANCES_PATH, help=f"Path to instances.json ({DEFAULT_INSTANCES_PATH})"
    )
    _ = parser.add_argument(
        "--workflow", default=DEFAULT_WORKFLOW_FILE, help=f"Batch processor workflow file ({DEFAULT_WORKFLOW_FILE})"
    )
    _ = parser.add_argument(
        "--run-id", type=int, default=_env_int("GITHUB_RUN_ID"), help="Own workflow run id (default: $GITHUB_RUN_ID)"
    )
    _ = parser.add_argument("--requester", help="Only accept cancel commands from this user")
    _ = parser.add_argument("--cancel-command", default=CANCEL_COMMAND, help=f"Cancel command ({CANCEL_COMMAND})")
    _ = parser.add_argument("--max-wait-hours", type=float, default=12.0, help="Maximum wait per batch (default: 12)")
    _ = parser.add_argument("--github-pass-token", help="Path for the orchestrator's GitHub token in pass utility")
    _ = parser.add_argument("--plan-only", action="store_true", help="Print the batches as JSON and exit")
    _ = parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    args = parser.parse_args(argv)
    if not args.plan_only and not args.repository:
        parser.error("repository is required (or set GITHUB_REPOSITORY)")
    return args


def _read_repo_text(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    return Path(source).read_text(encoding="utf-8")


def build_batches(args: argparse.Namespace) -> list[Batch]:
    """Parse the repository list and split it into batches."""
    repositories = parse_repo_list(_read_repo_text(args.repos_file))
    logger.info(f"Total repositories: {len(repositories)}")
    metadata = JobMetadata(
        migration_id=args.migration_id,
        issue_number=args.issue,
        migration_type=args.migration_type,
        source_organization=args.source_org,
        target_organization=args.target_org,
        source_instance=args.source_instance,
        target_instance=args.target_instance,
        target_repository_visibility=args.visibility,
        install_prereqs=not args.skip_prereqs,
    )
    return create_batches(repositories, args.batch_size, metadata)


def orchestrate(args: argparse.Namespace, batches: list[Batch]) -> OrchestrationResult:
    """Resolve credentials, wire the GitHub collaborators and run all batches."""
    api_url = os.environ.get("GITHUB_API_URL", ghu.DEFAULT_API_URL)
    server_url = os.environ.get("GITHUB_SERVER_URL", "https://github.com")

    instances = load_instances(args.instances_config)
    # The source token is read by the batch processor, not here
    if args.source_instance:
        _ = require_instance(instances, "sources", args.source_instance)
    target = resolve_instance(instances, "targets", args.target_instance)

    client = ghu.get_client(get_github_token(args.github_pass_token), api_url)
    repo = ghu.get_repo(client, args.repository)
    issue = ghu.get_issue(repo, args.issue)

    poll_interval = OrchestratorSettings().poll_interval
    settings = OrchestratorSettings(max_attempts=max(1, round(args.max_wait_hours * 3600 / poll_interval)))

    controller = BatchOrchestrationController(
        RepositoryDispatcher(repo.full_name, target.token, api_url=api_url, orchestrator_run_id=args.run_id),
        WorkflowRunLocator(repo, args.workflow),
        GitHubCancellationMonitor(
            repo, issue, run_id=args.run_id, requester=args.requester, command=args.cancel_command
        ),
        IssueCommentReporter(issue, repo.full_name, server_url=server_url, cancel_command=args.cancel_command),
        settings=settings,
    )
    return controller.run(batches)


def main(argv: Sequence[str] | None = None) -> None:
    """Main entry point."""
    args = parse_arguments(argv)

    # Setup logging
    verbose: bool = getattr(args, "verbose", False)
    setup_logging(verbose=verbose, log_file=None if args.plan_only else "orchestration.log")

    try:
        batches = build_batches(args)

        if args.plan_only:
            print(json.dumps([batch.to_payload() for batch in batches], indent=2))
            sys.exit(0)

        if not batches:
            logger.warning("No repositories found in the repository list, nothing to do")
            sys.exit(0)

        result = orchestrate(args, batches)

    except OrchestrationError as e:
        logger.error(f"Orchestration aborted: {e}")
        sys.exit(1)
    except Exception:
        logger.exception("Orchestration failed")
        sys.exit(1)

    if result.cancelled:
        logger.info(
            f"Migration cancelled ({result.signal.value}): "
            f"{result.completed} completed, {result.remaining} remaining"
        )
    else:
        logger.info(f"=== All {result.total_batches} Batches Processed ===")
    sys.exit(0)
