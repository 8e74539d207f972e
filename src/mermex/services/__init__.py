"""Export orchestration services."""

from mermex.services.events import ProgressCallback, ProgressEvent
from mermex.services.orchestrator import BatchOrchestrator, CancellationToken
from mermex.services.schemas import (
    BatchResult,
    ExportJob,
    JobFailure,
    JobOutcome,
)

__all__ = [
    "BatchOrchestrator",
    "BatchResult",
    "CancellationToken",
    "ExportJob",
    "JobFailure",
    "JobOutcome",
    "ProgressCallback",
    "ProgressEvent",
]
