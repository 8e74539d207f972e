"""Batch export orchestration — discovery to files on disk.

For each discovered source the orchestrator builds one ExportJob per
requested format, resolves the output path, renders on the selected
backend, writes the bytes and aggregates a BatchResult. A failing job
is recorded and the run moves on; only pre-flight problems raise.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
import uuid
from collections import OrderedDict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from mermex.backends import build_backends
from mermex.config import Settings
from mermex.constants import (
    FINISHED_RUNS_RETAINED,
    RUN_ID_HEX_LENGTH,
    ErrorCode,
    ExportFormat,
    JobStatus,
    NamingMode,
    RunState,
)
from mermex.discovery import (
    DiagramSource,
    UnreadableFile,
    discover_sources,
    parse_document,
)
from mermex.errors import (
    Cancelled,
    ExportError,
    FileSystemError,
    error_code_for,
    truncate_reason,
)
from mermex.logger import ExportLogger
from mermex.naming import (
    NamingEngine,
    overwrite_file_name,
    sanitize_base_name,
)
from mermex.resilience.locks import KeyedLock
from mermex.services.events import ProgressCallback, ProgressEvent
from mermex.services.schemas import (
    BatchResult,
    ExportJob,
    JobFailure,
    JobOutcome,
)
from mermex.strategy import StrategySelector

logger = logging.getLogger(__name__)

_FINAL_STATES = frozenset({RunState.COMPLETED, RunState.CANCELLED})


class CancellationToken:
    """Cooperative cancel flag, checked before each job starts."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


@dataclass
class _Run:
    """Mutable bookkeeping for one run."""

    run_id: str
    retain: bool = True  # keep the final state for run_state()
    token: CancellationToken = field(default_factory=CancellationToken)
    state: RunState = RunState.IDLE
    total: int = 0
    completed: int = 0
    outcomes: list[JobOutcome] = field(
        default_factory=lambda: list[JobOutcome]()
    )
    started: float = field(default_factory=time.monotonic)


class BatchOrchestrator:
    """Runs single, document and folder exports.

    All collaborators are injectable; by default they are built from
    ``settings`` (backends via ``build_backends``).
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        selector: StrategySelector | None = None,
        naming: NamingEngine | None = None,
        on_progress: ProgressCallback | None = None,
        export_logger: ExportLogger | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._selector = selector or StrategySelector(
            build_backends(self._settings),
            probe_ttl=self._settings.probe_ttl_seconds,
            failure_threshold=self._settings.backend_failure_threshold,
            recovery_timeout=self._settings.backend_recovery_timeout,
        )
        self._naming = naming or NamingEngine()
        self._on_progress = on_progress
        self._export_logger = export_logger
        self._locks = KeyedLock()
        self._runs: dict[str, _Run] = {}
        self._finished: OrderedDict[str, RunState] = OrderedDict()

    @property
    def selector(self) -> StrategySelector:
        return self._selector

    # ── Host-facing operations ───────────────────────────

    async def export_single(
        self,
        source: DiagramSource,
        fmt: ExportFormat | str,
        naming_mode: NamingMode | str | None = None,
    ) -> Path:
        """Export one source to one format and return the output path.

        Returns the existing path when identical content was already
        exported. Re-raises the job's error if it failed.
        """
        formats = [ExportFormat(str(fmt).lower())]
        mode = self._naming_mode(naming_mode)
        run = self._start_run(None, retain=False)
        result, outcomes = await self._process(
            run,
            [source],
            [],
            formats,
            mode,
            label=str(source.path),
        )
        if outcomes and outcomes[0].error is not None:
            raise outcomes[0].error
        if not result.outputs:
            raise Cancelled(run.run_id)
        return result.outputs[0]

    async def export_document(
        self,
        path: Path | str,
        formats: Sequence[ExportFormat | str] | None = None,
        naming_mode: NamingMode | str | None = None,
    ) -> BatchResult:
        """Export every diagram in one Markdown or .mmd file.

        An unreadable document raises InvalidSource.
        """
        requested = self._formats(formats)
        mode = self._naming_mode(naming_mode)
        run = self._start_run(None, retain=False)
        self._transition(run, RunState.DISCOVERING, f"Reading {path}")
        try:
            sources = await asyncio.to_thread(parse_document, Path(path))
        except BaseException:
            self._runs.pop(run.run_id, None)
            raise
        result, _ = await self._process(
            run,
            sources,
            [],
            requested,
            mode,
            label=str(path),
        )
        return result

    async def export_batch(
        self,
        root: Path | str,
        formats: Sequence[ExportFormat | str] | None = None,
        max_depth: int | None = None,
        naming_mode: NamingMode | str | None = None,
        run_id: str | None = None,
    ) -> BatchResult:
        """Discover and export every diagram under ``root``.

        Raises InvalidSource for an unusable root and StrategyUnavailable
        when no backend is available before processing starts. Every
        other problem is recorded in the result.
        """
        requested = self._formats(formats)
        mode = self._naming_mode(naming_mode)
        run = self._start_run(run_id)
        depth = self._settings.max_depth if max_depth is None else max_depth
        self._transition(run, RunState.DISCOVERING, f"Scanning {root}")
        try:
            discovery = await asyncio.to_thread(
                discover_sources,
                Path(root),
                depth,
                self._settings.include_patterns,
                self._settings.exclude_patterns,
                self._settings.skip_directories,
            )
        except BaseException:
            self._runs.pop(run.run_id, None)
            raise

        result, _ = await self._process(
            run,
            discovery.sources,
            discovery.unreadable,
            requested,
            mode,
            label=str(root),
        )
        return result

    def cancel(self, run_id: str) -> bool:
        """Request cooperative cancellation of a running batch.

        In-flight jobs finish; no new job starts. Returns False for an
        unknown or already finished run.
        """
        run = self._runs.get(run_id)
        if run is None or run.state in _FINAL_STATES:
            return False
        run.token.cancel()
        logger.info("event=run_cancel_requested run_id=%s", run_id)
        return True

    def run_state(self, run_id: str) -> RunState | None:
        """State of an active run or of a recently finished batch run."""
        run = self._runs.get(run_id)
        if run is not None:
            return run.state
        return self._finished.get(run_id)

    # ── Run lifecycle ────────────────────────────────────

    def _start_run(self, run_id: str | None, *, retain: bool = True) -> _Run:
        run_id = run_id or uuid.uuid4().hex[:RUN_ID_HEX_LENGTH]
        if run_id in self._runs:
            msg = f"Run {run_id} is already active"
            raise ValueError(msg)
        run = _Run(run_id=run_id, retain=retain)
        self._finished.pop(run_id, None)
        self._runs[run_id] = run
        return run

    async def _process(
        self,
        run: _Run,
        sources: Sequence[DiagramSource],
        unreadable: Sequence[UnreadableFile],
        formats: Sequence[ExportFormat],
        naming_mode: NamingMode,
        *,
        label: str,
    ) -> tuple[BatchResult, list[JobOutcome]]:
        jobs = self._build_jobs(sources, formats, naming_mode)
        run.total = len(jobs) + len(unreadable)
        run.completed = len(unreadable)

        if run.token.cancelled:
            return self._finish(run, jobs, unreadable), []

        if jobs:
            try:
                backend = await self._selector.resolve(self._preferred)
            except BaseException:
                self._runs.pop(run.run_id, None)
                raise
            logger.info(
                "event=preflight_ok run_id=%s backend=%s",
                run.run_id,
                backend.name,
            )

        if self._export_logger:
            self._export_logger.log_run_start(run.run_id, label, run.total)
        logger.info(
            "event=run_start run_id=%s target=%s jobs=%d unreadable=%d",
            run.run_id,
            label,
            len(jobs),
            len(unreadable),
        )

        self._transition(
            run, RunState.PROCESSING, f"Exporting {len(jobs)} diagram(s)"
        )
        for item in unreadable:
            self._log_unreadable(run, item)

        concurrency = self._settings.max_concurrency
        if concurrency <= 1:
            for job in jobs:
                if run.token.cancelled:
                    break
                self._record(run, await self._run_job(job))
        else:
            semaphore = asyncio.Semaphore(concurrency)

            async def _worker(job: ExportJob) -> None:
                if run.token.cancelled:
                    return
                async with semaphore:
                    if run.token.cancelled:
                        return
                    self._record(run, await self._run_job(job))

            await asyncio.gather(*(_worker(job) for job in jobs))

        outcomes = sorted(run.outcomes, key=lambda o: o.job.index)
        return self._finish(run, jobs, unreadable), outcomes

    def _finish(
        self,
        run: _Run,
        jobs: Sequence[ExportJob],
        unreadable: Sequence[UnreadableFile],
    ) -> BatchResult:
        cancelled = run.token.cancelled and len(run.outcomes) < len(jobs)
        state = RunState.CANCELLED if cancelled else RunState.COMPLETED
        result = _aggregate(run.run_id, state, jobs, run.outcomes, unreadable)
        self._transition(run, state, _summary(result))
        self._retire(run)

        duration_ms = (time.monotonic() - run.started) * 1000
        logger.info(
            "event=run_end run_id=%s state=%s total=%d succeeded=%d "
            "failed=%d skipped=%d duration_ms=%.0f",
            run.run_id,
            state,
            result.total,
            result.succeeded,
            result.failed,
            result.skipped,
            duration_ms,
        )
        if self._export_logger:
            self._export_logger.log_run_end(run.run_id, result, duration_ms)
        return result

    def _retire(self, run: _Run) -> None:
        """Drop a finished run; batch runs keep their state for a while."""
        self._runs.pop(run.run_id, None)
        if not run.retain:
            return
        self._finished[run.run_id] = run.state
        while len(self._finished) > FINISHED_RUNS_RETAINED:
            self._finished.popitem(last=False)

    # ── Jobs ─────────────────────────────────────────────

    def _build_jobs(
        self,
        sources: Iterable[DiagramSource],
        formats: Sequence[ExportFormat],
        naming_mode: NamingMode,
    ) -> list[ExportJob]:
        jobs: list[ExportJob] = []
        for source in sources:
            for fmt in formats:
                jobs.append(
                    ExportJob(
                        index=len(jobs),
                        source=source,
                        format=fmt,
                        render_options=self._settings.render_options(fmt),
                        output_directory=self._output_directory(source, fmt),
                        naming_mode=naming_mode,
                    )
                )
        return jobs

    def _output_directory(
        self, source: DiagramSource, fmt: ExportFormat
    ) -> Path:
        configured = self._settings.output_directory
        if configured is None:
            directory = source.path.parent
        elif configured.is_absolute():
            directory = configured
        else:
            directory = source.path.parent / configured
        if self._settings.organize_by_format:
            directory = directory / str(fmt)
        return directory

    async def _run_job(self, job: ExportJob) -> JobOutcome:
        """Run one job; every exception becomes a failed outcome."""
        try:
            async with self._locks.hold(lock_key(job)):
                return await self._execute(job)
        except Exception as exc:
            logger.warning(
                "event=job_failed index=%d source=%s format=%s code=%s "
                "error=%s",
                job.index,
                job.source.label,
                job.format,
                error_code_for(exc),
                truncate_reason(str(exc)),
            )
            return JobOutcome(job=job, status=JobStatus.FAILED, error=exc)

    async def _execute(self, job: ExportJob) -> JobOutcome:
        source = job.source
        record = self._naming.resolve(
            source.base_name,
            job.format,
            source.raw_text,
            job.output_directory,
            job.naming_mode,
        )
        if record.reused:
            logger.info(
                "event=job_skipped index=%d source=%s output=%s",
                job.index,
                source.label,
                record.output_path,
            )
            return JobOutcome(
                job=job,
                status=JobStatus.SKIPPED,
                output_path=record.output_path,
            )

        rendered = await self._selector.render(
            source.raw_text, job.render_options, self._preferred
        )
        await asyncio.to_thread(write_output, record.output_path, rendered.data)
        logger.info(
            "event=job_succeeded index=%d source=%s output=%s backend=%s",
            job.index,
            source.label,
            record.output_path,
            rendered.backend,
        )
        return JobOutcome(
            job=job,
            status=JobStatus.SUCCEEDED,
            output_path=record.output_path,
            backend=rendered.backend,
        )

    # ── Progress and logging ─────────────────────────────

    def _record(self, run: _Run, outcome: JobOutcome) -> None:
        run.outcomes.append(outcome)
        run.completed += 1
        if self._export_logger:
            self._export_logger.log_job(run.run_id, outcome)
        self._emit(
            ProgressEvent(
                run_id=run.run_id,
                state=run.state,
                completed=run.completed,
                total=run.total,
                message=f"{outcome.job.source.label} → {outcome.job.format}",
                outcome=outcome,
            )
        )

    def _log_unreadable(self, run: _Run, item: UnreadableFile) -> None:
        if self._export_logger:
            self._export_logger.log_error(
                run.run_id, str(item.path), item.reason
            )

    def _transition(self, run: _Run, state: RunState, message: str) -> None:
        run.state = state
        logger.debug("event=run_state run_id=%s state=%s", run.run_id, state)
        self._emit(
            ProgressEvent(
                run_id=run.run_id,
                state=state,
                completed=run.completed,
                total=run.total,
                message=message,
            )
        )

    def _emit(self, event: ProgressEvent) -> None:
        """Deliver a progress event; a failing callback never stops a run."""
        if self._on_progress is None:
            return
        try:
            self._on_progress(event)
        except Exception:
            logger.warning(
                "event=progress_callback_error run_id=%s",
                event.run_id,
                exc_info=True,
            )

    # ── Helpers ──────────────────────────────────────────

    @property
    def _preferred(self) -> str | None:
        return self._settings.preferred_backend or None

    def _formats(
        self, formats: Sequence[ExportFormat | str] | None
    ) -> list[ExportFormat]:
        requested = formats or self._settings.formats
        ordered: list[ExportFormat] = []
        for fmt in requested:
            value = ExportFormat(str(fmt).lower())
            if value not in ordered:
                ordered.append(value)
        if not ordered:
            msg = "At least one export format is required"
            raise ValueError(msg)
        return ordered

    def _naming_mode(self, mode: NamingMode | str | None) -> NamingMode:
        return NamingMode(mode) if mode else self._settings.naming_mode


def lock_key(job: ExportJob) -> tuple[str, str, str, str]:
    """Key that serializes jobs which can resolve to the same output file.

    Overwrite mode strips trailing numbers from the base name, so
    ``readme-1`` and ``readme1`` share the key for ``readme1.svg``.
    """
    base = sanitize_base_name(job.source.base_name)
    if job.naming_mode == NamingMode.OVERWRITE:
        base = overwrite_file_name(base, job.format)
    return (
        str(job.output_directory),
        str(job.naming_mode),
        base,
        str(job.format),
    )


def write_output(path: Path, data: bytes) -> None:
    """Write ``data`` to ``path`` via a sibling temp file and rename.

    Readers never observe a half-written export.
    """
    tmp = path.with_name(f".{path.name}.tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp.write_bytes(data)
        os.replace(tmp, path)
    except OSError as exc:
        tmp.unlink(missing_ok=True)
        detail = exc.strerror or str(exc)
        raise FileSystemError(path, f"Cannot write output ({detail})") from exc


def _aggregate(
    run_id: str,
    state: RunState,
    jobs: Sequence[ExportJob],
    outcomes: Iterable[JobOutcome],
    unreadable: Sequence[UnreadableFile],
) -> BatchResult:
    result = BatchResult(
        run_id=run_id,
        state=state,
        total=len(jobs) + len(unreadable),
    )
    for outcome in sorted(outcomes, key=lambda o: o.job.index):
        if outcome.status == JobStatus.FAILED:
            error = outcome.error or ExportError("Unknown error")
            result.failed += 1
            result.failures.append(
                JobFailure(
                    index=outcome.job.index,
                    source=outcome.job.source.path,
                    format=outcome.job.format,
                    reason=_reason(error),
                    error_code=error_code_for(error),
                )
            )
            continue
        if outcome.status == JobStatus.SKIPPED:
            result.skipped += 1
        else:
            result.succeeded += 1
        if outcome.output_path is not None:
            result.outputs.append(outcome.output_path)

    # Unreadable files were never jobs; they sort after every job.
    for offset, item in enumerate(unreadable):
        result.failed += 1
        result.failures.append(
            JobFailure(
                index=len(jobs) + offset,
                source=item.path,
                format=None,
                reason=truncate_reason(item.reason),
                error_code=ErrorCode.INVALID_SOURCE,
            )
        )
    return result


def _reason(error: BaseException) -> str:
    if isinstance(error, ExportError):
        return error.reason
    return truncate_reason(f"{type(error).__name__}: {error}")


def _summary(result: BatchResult) -> str:
    return (
        f"{result.succeeded} exported, {result.skipped} unchanged, "
        f"{result.failed} failed"
    )
