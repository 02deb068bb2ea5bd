"""
Custom exception classes for the batch migration orchestrator.
"""

from __future__ import annotations


class OrchestrationError(Exception):
    """Base exception for orchestration errors."""


class InvalidInput(OrchestrationError):
    """Raised when the repository list or batch parameters are invalid."""


class FatalConfigError(OrchestrationError):
    """Raised when instances or credentials cannot be resolved before orchestration starts."""


class DispatchError(OrchestrationError):
    """Raised when a batch could not be dispatched to the batch processor workflow."""

    status: int | None
    text: str

    def __init__(self, status: int | None, text: str) -> None:
        self.status = status
        self.text = text
        message = f"HTTP {status}: {text}" if status is not None else text
        super().__init__(message)


class LocatorTransientError(OrchestrationError):
    """Raised when listing workflow runs failed; the lookup is retried on the next tick."""


class CancellationCheckError(OrchestrationError):
    """Raised when a cancellation source could not be read."""


class BatchTrackingError(OrchestrationError):
    """Base class for batches whose remote run could not be followed to completion."""


class AbandonedBatch(BatchTrackingError):
    """Raised when the workflow run of a batch never showed up."""


class PollTimeout(BatchTrackingError):
    """Raised when a batch did not complete within the maximum wait time."""
