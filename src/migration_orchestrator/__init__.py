"""
Batch Migration Orchestrator

Dispatches repository migrations to a batch processor workflow one batch
at a time, tracks each batch's workflow run to completion and honors
cancellation requests posted on the migration issue.
"""

from __future__ import annotations

from .cli import main
from .exceptions import (
    AbandonedBatch,
    CancellationCheckError,
    DispatchError,
    FatalConfigError,
    InvalidInput,
    LocatorTransientError,
    OrchestrationError,
    PollTimeout,
)
from .models import Batch, BatchState, CancellationSignal, JobMetadata, OrchestrationResult, RemoteRun
from .orchestrator import BatchOrchestrationController, OrchestratorSettings
from .partitioner import create_batches, parse_repo_list
from .utils import setup_logging

# Package version
__version__ = "0.1.0"

__all__ = [
    "AbandonedBatch",
    "Batch",
    "BatchOrchestrationController",
    "BatchState",
    "CancellationCheckError",
    "CancellationSignal",
    "DispatchError",
    "FatalConfigError",
    "InvalidInput",
    "JobMetadata",
    "LocatorTransientError",
    "OrchestrationError",
    "OrchestrationResult",
    "OrchestratorSettings",
    "PollTimeout",
    "RemoteRun",
    "create_batches",
    "main",
    "parse_repo_list",
    "setup_logging",
]
