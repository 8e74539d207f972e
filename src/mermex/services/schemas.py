"""Job and result records for export runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from mermex.backends.base import RenderOptions
from mermex.constants import ErrorCode, ExportFormat, JobStatus, NamingMode, RunState
from mermex.discovery.schemas import DiagramSource


@dataclass(frozen=True)
class ExportJob:
    """One source rendered to one format."""

    index: int  # submission order within the run
    source: DiagramSource
    format: ExportFormat
    render_options: RenderOptions
    output_directory: Path
    naming_mode: NamingMode


@dataclass(frozen=True)
class JobFailure:
    index: int
    source: Path
    format: ExportFormat | None
    reason: str
    error_code: ErrorCode


@dataclass(frozen=True)
class JobOutcome:
    """What happened to a single job."""

    job: ExportJob
    status: JobStatus
    output_path: Path | None = None
    backend: str | None = None
    error: BaseException | None = None


@dataclass
class BatchResult:
    """Aggregate of a run.

    ``failures`` is ordered by job index whatever order jobs finished
    in; ``outputs`` holds the paths of succeeded and skipped jobs.
    """

    run_id: str
    state: RunState
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    failures: list[JobFailure] = field(default_factory=lambda: list[JobFailure]())
    outputs: list[Path] = field(default_factory=lambda: list[Path]())

    @property
    def ok(self) -> bool:
        return self.failed == 0 and self.state == RunState.COMPLETED
