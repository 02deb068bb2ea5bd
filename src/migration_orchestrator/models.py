"""Data models shared by the partitioner, the GitHub adapters and the controller.

Batches are created once and never mutated. Remote runs are read-only
snapshots of a workflow run as last seen by polling; the batch processor
owns the real resource.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class RunStatus(StrEnum):
    """Lifecycle status of a workflow run, reduced to what the controller needs."""

    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    @classmethod
    def from_api(cls, value: str | None) -> RunStatus:
        # GitHub also reports requested, waiting and pending; all mean "not started yet"
        if value == "completed":
            return cls.COMPLETED
        if value == "in_progress":
            return cls.IN_PROGRESS
        return cls.QUEUED


class RunConclusion(StrEnum):
    """Outcome of a completed workflow run."""

    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"
    NEUTRAL = "neutral"
    SKIPPED = "skipped"
    TIMED_OUT = "timed_out"
    ACTION_REQUIRED = "action_required"
    STALE = "stale"

    @classmethod
    def from_api(cls, value: str | None) -> RunConclusion | None:
        if value is None:
            return None
        try:
            return cls(value)
        except ValueError:
            return cls.NEUTRAL


class CancellationSignal(StrEnum):
    """Where a cancellation request came from, if anywhere."""

    NONE = "none"
    COMMAND = "command"
    HOST = "host"

    @property
    def requested(self) -> bool:
        return self is not CancellationSignal.NONE


class BatchState(StrEnum):
    """Per-batch state machine of the controller."""

    PENDING = "pending"
    DISPATCHED = "dispatched"
    LOCATING = "locating"
    POLLING = "polling"
    COMPLETED = "completed"
    DISPATCH_FAILED = "dispatch_failed"
    ABANDONED = "abandoned"
    POLL_TIMEOUT = "poll_timeout"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset(
    {
        BatchState.COMPLETED,
        BatchState.DISPATCH_FAILED,
        BatchState.ABANDONED,
        BatchState.POLL_TIMEOUT,
        BatchState.CANCELLED,
    }
)


@dataclass(frozen=True)
class JobMetadata:
    """Migration settings copied verbatim onto every batch."""

    migration_id: str = ""
    issue_number: int = 0
    migration_type: str = "dry-run"
    source_organization: str = ""
    target_organization: str = ""
    source_instance: str = ""
    target_instance: str = ""
    target_repository_visibility: str = "private"
    install_prereqs: bool = True


@dataclass(frozen=True)
class Batch:
    """An ordered slice of the repository list, dispatched as one workflow run."""

    number: int  # 1-indexed
    repositories: tuple[str, ...]
    correlation_token: str
    total_batches: int
    total_repositories: int
    metadata: JobMetadata = field(default_factory=JobMetadata)

    @property
    def is_last(self) -> bool:
        return self.number >= self.total_batches

    def to_payload(self) -> dict[str, Any]:
        """Return the ``client_payload.batch`` object consumed by the batch processor workflow."""
        meta = self.metadata
        return {
            "batchNumber": self.number,
            "repositories": list(self.repositories),
            "batchId": self.correlation_token,
            "totalBatches": self.total_batches,
            "totalRepos": self.total_repositories,
            "migrationId": meta.migration_id,
            "issueNumber": meta.issue_number,
            "migrationType": meta.migration_type,
            "sourceOrganization": meta.source_organization,
            "targetOrganization": meta.target_organization,
            "sourceInstance": meta.source_instance,
            "targetInstance": meta.target_instance,
            "targetRepositoryVisibility": meta.target_repository_visibility,
            "installPrereqs": meta.install_prereqs,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> Batch:
        metadata = JobMetadata(
            migration_id=payload.get("migrationId", ""),
            issue_number=int(payload.get("issueNumber", 0)),
            migration_type=payload.get("migrationType", "dry-run"),
            source_organization=payload.get("sourceOrganization", ""),
            target_organization=payload.get("targetOrganization", ""),
            source_instance=payload.get("sourceInstance", ""),
            target_instance=payload.get("targetInstance", ""),
            target_repository_visibility=payload.get("targetRepositoryVisibility", "private"),
            install_prereqs=bool(payload.get("installPrereqs", True)),
        )
        repositories = tuple(payload["repositories"])
        return cls(
            number=int(payload["batchNumber"]),
            repositories=repositories,
            correlation_token=payload["batchId"],
            total_batches=int(payload["totalBatches"]),
            total_repositories=int(payload.get("totalRepos", len(repositories))),
            metadata=metadata,
        )


@dataclass(frozen=True)
class RemoteRun:
    """Snapshot of the workflow run created for a dispatched batch."""

    id: int
    name: str
    status: RunStatus
    conclusion: RunConclusion | None = None
    html_url: str = ""

    @property
    def is_completed(self) -> bool:
        return self.status is RunStatus.COMPLETED

    @property
    def succeeded(self) -> bool:
        return self.is_completed and self.conclusion is RunConclusion.SUCCESS


@dataclass
class BatchResult:
    """Terminal outcome of one batch."""

    batch_number: int
    correlation_token: str
    state: BatchState
    run: RemoteRun | None = None
    elapsed_seconds: float = 0.0
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.state is BatchState.COMPLETED and self.run is not None and self.run.succeeded


@dataclass
class OrchestrationState:
    """Cross-batch state of one orchestration run.

    Lives only for the duration of the process; an interrupted run starts
    again from batch 1.
    """

    start_time: dt.datetime
    batch_state: BatchState = BatchState.PENDING
    attempts: int = 0
    elapsed_seconds: dict[int, float] = field(default_factory=dict)
    dispatch_failures: int = 0
    # Tokens of dispatched batches whose run was not seen completing
    unsettled_tokens: list[str] = field(default_factory=list)
    results: list[BatchResult] = field(default_factory=list)

    def settle(self, token: str) -> None:
        if token in self.unsettled_tokens:
            self.unsettled_tokens.remove(token)


@dataclass
class OrchestrationResult:
    """Result of an orchestration run."""

    total_batches: int
    results: list[BatchResult]
    cancelled: bool = False
    signal: CancellationSignal = CancellationSignal.NONE
    dispatch_failures: int = 0

    @property
    def completed(self) -> int:
        """Batches that reached a terminal state other than cancellation."""
        return sum(1 for r in self.results if r.state is not BatchState.CANCELLED)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.succeeded)

    @property
    def failed(self) -> int:
        return self.completed - self.succeeded

    @property
    def remaining(self) -> int:
        return self.total_batches - self.completed
