"""Protocols defining the collaborators of the batch orchestration controller.

The orchestration architecture separates concerns into small components:

1. Dispatcher: Starts the batch processor workflow for one batch
2. RunLocator: Finds the workflow run a dispatch created, by correlation token
3. CancellationMonitor: Reports whether the migration should stop
4. StatusReporter: Tells the requester what is going on
5. Clock: Provides the current time and all waiting

The controller only talks to these protocols. This allows:
- Running the full state machine against in-memory fakes
- Advancing a virtual clock instead of sleeping in tests
- Swapping the notification surface without touching orchestration code
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    import datetime as dt
    from collections.abc import Iterable

    from .models import Batch, CancellationSignal, OrchestrationResult, RemoteRun


class Clock(Protocol):
    """Source of time and the only way the controller waits."""

    def now(self) -> dt.datetime:
        """Return the current time as an aware UTC datetime."""
        ...

    def sleep(self, seconds: float) -> None:
        """Suspend for the given number of seconds."""
        ...


class Dispatcher(Protocol):
    """Starts a batch as an asynchronous remote job."""

    def dispatch(self, batch: Batch) -> None:
        """Fire the job for a batch without waiting for its run to exist.

        The correlation token must end up somewhere the RunLocator can find it.

        Raises:
            DispatchError: If the job could not be started
        """
        ...


class RunLocator(Protocol):
    """Resolves correlation tokens to remote runs."""

    def find_by_correlation(self, token: str) -> RemoteRun | None:
        """Return the run carrying this token, or None if it does not exist (yet).

        Transient listing failures are also reported as None.
        """
        ...

    def cancel_runs(self, tokens: Iterable[str]) -> int:
        """Request cancellation of unfinished runs for these tokens.

        Best effort: errors are logged, never raised. Returns how many
        cancellations were requested.
        """
        ...


class CancellationMonitor(Protocol):
    """Read-only view of cancellation requests."""

    def check(self, since: dt.datetime) -> CancellationSignal:
        """Return the current cancellation signal.

        Only requests made after ``since`` count. Read failures must be
        treated as "not cancelled".
        """
        ...


class StatusReporter(Protocol):
    """Renders progress notifications for the requester.

    Every terminal batch state is reported exactly once through one of
    batch_dispatch_failed, batch_completed, batch_unknown_status,
    batch_timed_out or batch_cancelled.
    """

    def batch_started(self, batch: Batch) -> None: ...

    def batch_dispatch_failed(self, batch: Batch, error: str) -> None: ...

    def batch_heartbeat(self, batch: Batch, elapsed_seconds: float, status: str) -> None: ...

    def batch_still_processing(self, batch: Batch, elapsed_seconds: float, status: str) -> None: ...

    def batch_completed(self, batch: Batch, run: RemoteRun, elapsed_seconds: float) -> None: ...

    def batch_unknown_status(self, batch: Batch) -> None: ...

    def batch_timed_out(self, batch: Batch, max_wait_seconds: float) -> None: ...

    def batch_cancelled(self, batch: Batch) -> None: ...

    def orchestration_cancelled(self, batch: Batch, completed: int, remaining: int) -> None: ...

    def orchestration_finished(self, result: OrchestrationResult) -> None: ...
