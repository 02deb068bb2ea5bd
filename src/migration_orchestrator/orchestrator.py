"""Batch orchestration controller.

The controller drives batches one at a time through the batch processor
workflow and never lets one batch's trouble stop the next one.

Per-batch Flow
--------------
    PENDING
       │  cancellation pre-check (stop the whole run if requested)
       ▼
    DISPATCHED ──(DispatchError)──► DISPATCH_FAILED
       │  grace period: the run is created asynchronously
       ▼
    LOCATING ──(not found within abandon_after ticks)──► ABANDONED
       │  run found
       ▼
    POLLING ──(status completed)──► COMPLETED
       │
       └──(max_attempts ticks)──► POLL_TIMEOUT

Cancellation is re-checked every ``cancel_check_every`` ticks while
locating or polling; a request there ends the batch as CANCELLED and
stops the run.

Cooperation
-----------
All waiting goes through the injected Clock, so tests drive the whole
state machine with a virtual clock. Batch ``i + 1`` is only dispatched
once batch ``i`` is terminal, which bounds the externally running jobs
to one batch's worth.

Error Handling
--------------
- Dispatch failures, untrackable runs and timeouts: reported, recorded,
  next batch continues
- Cancellation: not a failure; the run ends with ``cancelled=True`` and
  unfinished remote runs get a best-effort cancellation request
- Reporter and monitor failures are absorbed by those components
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .clock import SystemClock
from .exceptions import AbandonedBatch, DispatchError, LocatorTransientError, PollTimeout
from .models import (
    BatchResult,
    BatchState,
    CancellationSignal,
    OrchestrationResult,
    OrchestrationState,
)

if TYPE_CHECKING:
    import datetime as dt
    from collections.abc import Sequence

    from .models import Batch, RemoteRun
    from .protocols import CancellationMonitor, Clock, Dispatcher, RunLocator, StatusReporter

logger: logging.Logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrchestratorSettings:
    """Timing of the controller. Tick counts are multiples of ``poll_interval``."""

    grace_period: float = 20.0
    poll_interval: float = 30.0
    max_attempts: int = 1440  # 12 hours at 30 seconds
    cancel_check_every: int = 5
    not_found_warning_after: int = 6
    abandon_after: int = 10
    heartbeat_every: int = 20  # 10 minutes
    still_processing_every: int = 120  # 60 minutes
    inter_batch_delay: float = 30.0

    def __post_init__(self) -> None:
        for name in ("grace_period", "poll_interval", "inter_batch_delay"):
            if getattr(self, name) < 0:
                msg = f"{name} must not be negative"
                raise ValueError(msg)
        for name in (
            "max_attempts",
            "cancel_check_every",
            "not_found_warning_after",
            "abandon_after",
            "heartbeat_every",
            "still_processing_every",
        ):
            if getattr(self, name) <= 0:
                msg = f"{name} must be positive"
                raise ValueError(msg)

    @property
    def max_wait_seconds(self) -> float:
        return self.max_attempts * self.poll_interval


class _CancelledDuringBatch(Exception):  # noqa: N818
    """Unwinds the poll loop when cancellation is detected mid-batch."""

    def __init__(self, signal: CancellationSignal, run: RemoteRun | None) -> None:
        super().__init__(signal.value)
        self.signal: CancellationSignal = signal
        self.run: RemoteRun | None = run


class BatchOrchestrationController:
    """Runs batches sequentially through dispatch, lookup and polling.

    Usage:
        controller = BatchOrchestrationController(dispatcher, locator, monitor, reporter)
        result = controller.run(create_batches(repos, 5, metadata))

    The controller keeps no state between runs; everything lives in the
    OrchestrationState created by run().
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        locator: RunLocator,
        monitor: CancellationMonitor,
        reporter: StatusReporter,
        *,
        clock: Clock | None = None,
        settings: OrchestratorSettings | None = None,
    ) -> None:
        self._dispatcher = dispatcher
        self._locator = locator
        self._monitor = monitor
        self._reporter = reporter
        self._clock: Clock = clock or SystemClock()
        self.settings: OrchestratorSettings = settings or OrchestratorSettings()

    def run(self, batches: Sequence[Batch]) -> OrchestrationResult:
        """Process all batches in order, stopping early only on cancellation."""
        state = OrchestrationState(start_time=self._clock.now())
        total = len(batches)
        logger.info(f"Starting orchestration of {total} batches at {state.start_time.isoformat()}")
        logger.info("Will check for cancellation commands issued after this time only")

        for index, batch in enumerate(batches):
            state.batch_state = BatchState.PENDING

            signal = self._monitor.check(state.start_time)
            logger.info(f"Batch {batch.number} - cancellation signal: {signal.value}")
            if signal.requested:
                return self._stop_before_batch(batch, state, total, signal)

            try:
                result = self._process_batch(batch, state)
            except _CancelledDuringBatch as e:
                return self._stop_during_batch(batch, state, total, e)
            state.results.append(result)

            if index < total - 1:
                logger.info(f"Waiting {self.settings.inter_batch_delay:g} seconds before starting next batch...")
                self._clock.sleep(self.settings.inter_batch_delay)

        result = self._build_result(state, total)
        logger.info(
            f"All batches processed: {result.succeeded} succeeded, {result.failed} failed or untracked "
            f"({result.dispatch_failures} dispatch failures)"
        )
        self._reporter.orchestration_finished(result)
        return result

    def _elapsed(self, since: dt.datetime) -> float:
        return (self._clock.now() - since).total_seconds()

    @staticmethod
    def _transition(batch: Batch, state: OrchestrationState, new_state: BatchState) -> None:
        logger.debug(f"Batch {batch.number}: {state.batch_state} -> {new_state}")
        state.batch_state = new_state
        if new_state.is_terminal:
            logger.info(f"Batch {batch.number} finished in state {new_state}")

    def _build_result(
        self,
        state: OrchestrationState,
        total: int,
        signal: CancellationSignal = CancellationSignal.NONE,
    ) -> OrchestrationResult:
        return OrchestrationResult(
            total_batches=total,
            results=list(state.results),
            cancelled=signal.requested,
            signal=signal,
            dispatch_failures=state.dispatch_failures,
        )

    def _cancel_unsettled_runs(self, state: OrchestrationState) -> None:
        if not state.unsettled_tokens:
            return
        logger.info(f"Requesting cancellation of {len(state.unsettled_tokens)} unfinished batch workflows...")
        cancelled = self._locator.cancel_runs(list(state.unsettled_tokens))
        logger.info(f"Cancellation requested for {cancelled} workflow runs")

    def _stop_before_batch(
        self,
        batch: Batch,
        state: OrchestrationState,
        total: int,
        signal: CancellationSignal,
    ) -> OrchestrationResult:
        logger.info(f"Cancellation detected ({signal.value})! Stopping before batch {batch.number}")
        result = self._build_result(state, total, signal)
        self._reporter.orchestration_cancelled(batch, result.completed, result.remaining)
        self._cancel_unsettled_runs(state)
        return result

    def _stop_during_batch(
        self,
        batch: Batch,
        state: OrchestrationState,
        total: int,
        cancelled: _CancelledDuringBatch,
    ) -> OrchestrationResult:
        logger.info(f"Cancellation detected ({cancelled.signal.value}) during batch {batch.number}")
        self._transition(batch, state, BatchState.CANCELLED)
        state.results.append(
            BatchResult(
                batch_number=batch.number,
                correlation_token=batch.correlation_token,
                state=BatchState.CANCELLED,
                run=cancelled.run,
                elapsed_seconds=state.elapsed_seconds.get(batch.number, 0.0),
            )
        )
        self._reporter.batch_cancelled(batch)
        self._cancel_unsettled_runs(state)
        return self._build_result(state, total, cancelled.signal)

    def _process_batch(self, batch: Batch, state: OrchestrationState) -> BatchResult:
        token = batch.correlation_token
        logger.info(f"=== Dispatching Batch {batch.number} of {batch.total_batches} ===")
        logger.info(f"Batch ID: {token}, repositories: {len(batch.repositories)}")
        self._reporter.batch_started(batch)

        try:
            self._dispatcher.dispatch(batch)
        except DispatchError as e:
            logger.warning(f"Failed to dispatch batch {batch.number}: {e}")
            state.dispatch_failures += 1
            self._transition(batch, state, BatchState.DISPATCH_FAILED)
            self._reporter.batch_dispatch_failed(batch, str(e))
            return BatchResult(batch.number, token, BatchState.DISPATCH_FAILED, error=str(e))

        dispatched_at = self._clock.now()
        self._transition(batch, state, BatchState.DISPATCHED)
        state.unsettled_tokens.append(token)

        logger.info(f"Waiting {self.settings.grace_period:g} seconds for workflow to be created...")
        self._clock.sleep(self.settings.grace_period)

        try:
            run = self._poll_until_complete(batch, state, dispatched_at)
        except AbandonedBatch as e:
            logger.error(str(e))
            self._transition(batch, state, BatchState.ABANDONED)
            elapsed = self._elapsed(dispatched_at)
            self._reporter.batch_unknown_status(batch)
            return BatchResult(batch.number, token, BatchState.ABANDONED, elapsed_seconds=elapsed, error=str(e))
        except PollTimeout as e:
            logger.warning(str(e))
            self._transition(batch, state, BatchState.POLL_TIMEOUT)
            elapsed = self._elapsed(dispatched_at)
            self._reporter.batch_timed_out(batch, self.settings.max_wait_seconds)
            return BatchResult(batch.number, token, BatchState.POLL_TIMEOUT, elapsed_seconds=elapsed, error=str(e))

        state.settle(token)
        self._transition(batch, state, BatchState.COMPLETED)
        elapsed = self._elapsed(dispatched_at)
        state.elapsed_seconds[batch.number] = elapsed
        self._reporter.batch_completed(batch, run, elapsed)
        return BatchResult(batch.number, token, BatchState.COMPLETED, run=run, elapsed_seconds=elapsed)

    def _locate(self, token: str) -> RemoteRun | None:
        try:
            return self._locator.find_by_correlation(token)
        except LocatorTransientError as e:
            logger.warning(f"Error finding workflow by batch ID {token}: {e}")
            return None

    def _poll_until_complete(self, batch: Batch, state: OrchestrationState, dispatched_at: dt.datetime) -> RemoteRun:
        """Tick until the batch's run completes.

        Raises:
            AbandonedBatch: If the run was never found within ``abandon_after`` ticks
            PollTimeout: If the run did not complete within ``max_attempts`` ticks
            _CancelledDuringBatch: If cancellation was requested meanwhile
        """
        settings = self.settings
        token = batch.correlation_token
        tracked: RemoteRun | None = None
        self._transition(batch, state, BatchState.LOCATING)
        state.attempts = 0

        while state.attempts < settings.max_attempts:
            state.attempts += 1
            attempts = state.attempts

            if attempts % settings.cancel_check_every == 0:
                signal = self._monitor.check(state.start_time)
                if signal.requested:
                    raise _CancelledDuringBatch(signal, tracked)

            self._clock.sleep(settings.poll_interval)
            run = self._locate(token)

            if run is not None:
                if tracked is None:
                    logger.info(f"Found workflow run {run.id} for batch {batch.number}: {run.html_url}")
                    self._transition(batch, state, BatchState.POLLING)
                tracked = run
                if attempts == 1 or attempts % 10 == 0:
                    logger.debug(f"Batch {batch.number} workflow status: {run.status}, conclusion: {run.conclusion}")
                if run.is_completed:
                    logger.info(f"Batch {batch.number} completed with conclusion: {run.conclusion}")
                    logger.info(f"Workflow URL: {run.html_url}")
                    return run
            elif tracked is None:
                waited = attempts * settings.poll_interval
                if attempts > settings.abandon_after:
                    msg = (
                        f"Workflow for batch {batch.number} (ID: {token}) not found after "
                        f"{waited:g} seconds. Moving to next batch."
                    )
                    raise AbandonedBatch(msg)
                if attempts > settings.not_found_warning_after:
                    logger.warning(
                        f"Workflow for batch {batch.number} (ID: {token}) not found after {waited:g} seconds"
                    )

            elapsed = self._elapsed(dispatched_at)
            state.elapsed_seconds[batch.number] = elapsed
            status = f"workflow {tracked.status}" if tracked else "waiting for workflow to start"
            if attempts % settings.heartbeat_every == 0:
                self._reporter.batch_heartbeat(batch, elapsed, status)
            if attempts % settings.still_processing_every == 0:
                self._reporter.batch_still_processing(batch, elapsed, status)

        msg = f"Batch {batch.number} timed out after {settings.max_wait_seconds / 3600:g} hours"
        raise PollTimeout(msg)
