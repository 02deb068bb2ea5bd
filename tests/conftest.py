"""
Pytest configuration and fixtures.

The fakes in this module stand in for GitHub so the orchestration state
machine can be driven with a virtual clock:
- FakeClock: advances time only when the controller sleeps
- FakeDispatcher: records dispatched batches, fails on request
- SimulatedExecutor: a run locator whose runs appear and progress per lookup
- ScriptedMonitor: returns a cancellation signal from a given check onwards
- RecordingReporter: records every notification
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import pytest

from migration_orchestrator.exceptions import DispatchError, LocatorTransientError
from migration_orchestrator.models import CancellationSignal, RemoteRun, RunConclusion, RunStatus

if TYPE_CHECKING:
    from collections.abc import Iterable

    from migration_orchestrator.models import Batch, OrchestrationResult

START_TIME = dt.datetime(2024, 5, 1, 12, 0, tzinfo=dt.UTC)


def batch_number_of(token: str) -> int:
    """Tokens look like ``batch-<number>-<millis>-<sequence>``."""
    return int(token.split("-")[1])


class FakeClock:
    """Virtual clock; ``sleep`` advances ``now`` instantly."""

    def __init__(self, start: dt.datetime = START_TIME) -> None:
        self.current: dt.datetime = start
        self.sleeps: list[float] = []

    def now(self) -> dt.datetime:
        return self.current

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.current += dt.timedelta(seconds=seconds)


class FakeDispatcher:
    def __init__(self, fail_for: Iterable[int] = ()) -> None:
        self.fail_for: set[int] = set(fail_for)
        self.dispatched: list[int] = []

    def dispatch(self, batch: Batch) -> None:
        if batch.number in self.fail_for:
            raise DispatchError(500, "Internal Server Error")
        self.dispatched.append(batch.number)


@dataclass
class RunPlan:
    """How the run of one batch behaves, counted in lookups of its token.

    ``appear_after=None`` means the run is never created. Once visible, the
    run walks through ``statuses`` one lookup at a time and then stays on
    the last one.
    """

    appear_after: int | None = 1
    statuses: list[str] = field(default_factory=lambda: ["queued", "in_progress", "completed"])
    conclusion: str = "success"
    transient_errors_on: set[int] = field(default_factory=set)


class SimulatedExecutor:
    """Run locator backed by per-batch RunPlans (default: completes on third lookup)."""

    def __init__(self, plans: dict[int, RunPlan] | None = None) -> None:
        self.plans: dict[int, RunPlan] = plans or {}
        self.lookups: dict[int, int] = {}
        self.cancel_requests: list[list[str]] = []

    def find_by_correlation(self, token: str) -> RemoteRun | None:
        number = batch_number_of(token)
        count = self.lookups.get(number, 0) + 1
        self.lookups[number] = count
        plan = self.plans.get(number, RunPlan())

        if count in plan.transient_errors_on:
            msg = "502 Bad Gateway"
            raise LocatorTransientError(msg)
        if plan.appear_after is None or count < plan.appear_after:
            return None

        index = min(count - plan.appear_after, len(plan.statuses) - 1)
        status = RunStatus.from_api(plan.statuses[index])
        conclusion = RunConclusion(plan.conclusion) if status is RunStatus.COMPLETED else None
        return RemoteRun(
            id=1000 + number,
            name=f"Migration Batch {number} - ID:{token}",
            status=status,
            conclusion=conclusion,
            html_url=f"https://github.com/acme/migrations/actions/runs/{1000 + number}",
        )

    def cancel_runs(self, tokens: Iterable[str]) -> int:
        tokens = list(tokens)
        self.cancel_requests.append(tokens)
        return len(tokens)


class ScriptedMonitor:
    """Reports ``signal`` from the ``cancel_on_call``-th check onwards."""

    def __init__(
        self,
        cancel_on_call: int | None = None,
        signal: CancellationSignal = CancellationSignal.COMMAND,
    ) -> None:
        self.cancel_on_call: int | None = cancel_on_call
        self.signal: CancellationSignal = signal
        self.calls: int = 0
        self.since: list[dt.datetime] = []

    def check(self, since: dt.datetime) -> CancellationSignal:
        self.calls += 1
        self.since.append(since)
        if self.cancel_on_call is not None and self.calls >= self.cancel_on_call:
            return self.signal
        return CancellationSignal.NONE


class RecordingReporter:
    """Records notifications as ``(event, batch_number, details)`` tuples."""

    TERMINAL_EVENTS = frozenset(
        {"dispatch_failed", "completed", "unknown_status", "timed_out", "batch_cancelled"}
    )

    def __init__(self) -> None:
        self.events: list[tuple[str, int | None, dict[str, Any]]] = []
        self.finished: OrchestrationResult | None = None

    def names(self) -> list[str]:
        return [name for name, _, _ in self.events]

    def of(self, name: str) -> list[tuple[str, int | None, dict[str, Any]]]:
        return [event for event in self.events if event[0] == name]

    def terminal_events(self) -> list[tuple[str, int | None]]:
        return [(name, number) for name, number, _ in self.events if name in self.TERMINAL_EVENTS]

    def batch_started(self, batch: Batch) -> None:
        self.events.append(("started", batch.number, {}))

    def batch_dispatch_failed(self, batch: Batch, error: str) -> None:
        self.events.append(("dispatch_failed", batch.number, {"error": error}))

    def batch_heartbeat(self, batch: Batch, elapsed_seconds: float, status: str) -> None:
        self.events.append(("heartbeat", batch.number, {"elapsed": elapsed_seconds, "status": status}))

    def batch_still_processing(self, batch: Batch, elapsed_seconds: float, status: str) -> None:
        self.events.append(("still_processing", batch.number, {"elapsed": elapsed_seconds, "status": status}))

    def batch_completed(self, batch: Batch, run: RemoteRun, elapsed_seconds: float) -> None:
        self.events.append(("completed", batch.number, {"run": run, "elapsed": elapsed_seconds}))

    def batch_unknown_status(self, batch: Batch) -> None:
        self.events.append(("unknown_status", batch.number, {}))

    def batch_timed_out(self, batch: Batch, max_wait_seconds: float) -> None:
        self.events.append(("timed_out", batch.number, {"max_wait": max_wait_seconds}))

    def batch_cancelled(self, batch: Batch) -> None:
        self.events.append(("batch_cancelled", batch.number, {}))

    def orchestration_cancelled(self, batch: Batch, completed: int, remaining: int) -> None:
        details = {"completed": completed, "remaining": remaining}
        self.events.append(("orchestration_cancelled", batch.number, details))

    def orchestration_finished(self, result: OrchestrationResult) -> None:
        self.finished = result
        self.events.append(("finished", None, {}))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def dispatcher() -> FakeDispatcher:
    return FakeDispatcher()


@pytest.fixture
def executor() -> SimulatedExecutor:
    return SimulatedExecutor()


@pytest.fixture
def monitor() -> ScriptedMonitor:
    return ScriptedMonitor()


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()
