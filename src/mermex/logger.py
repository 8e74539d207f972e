"""Structured JSON run log for export runs."""

from __future__ import annotations

import hashlib
import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

from mermex.constants import ERROR_TRUNCATION_CHARS
from mermex.errors import error_code_for, truncate_reason
from mermex.logging_config import LOG_DATEFMT, LOG_FORMAT

if TYPE_CHECKING:
    from mermex.services.schemas import BatchResult, JobOutcome

__all__ = ["ExportLogger", "LOG_FORMAT", "LOG_DATEFMT"]

EXPORT_LOG_NAME = "export.log"


class ExportLogger:
    """JSON-lines log with run_id correlation.

    One ``export.log`` per log directory, each written through its own
    logger; records are ``run``, ``job`` and ``error``.
    """

    def __init__(self, log_dir: Path, level: str = "INFO") -> None:
        self._log_dir = log_dir
        self._log_dir.mkdir(parents=True, exist_ok=True)
        self._path = (log_dir / EXPORT_LOG_NAME).resolve()
        # Keyed by file path
        digest = hashlib.sha256(str(self._path).encode()).hexdigest()[:12]
        self._logger = logging.getLogger(f"mermex.export.{digest}")
        self._logger.setLevel(getattr(logging, level.upper()))
        self._logger.propagate = False

        self._handler: logging.FileHandler | None = None
        for existing in self._logger.handlers:
            if (
                isinstance(existing, logging.FileHandler)
                and Path(existing.baseFilename) == self._path
            ):
                self._handler = existing
        if self._handler is None:
            self._handler = logging.FileHandler(self._path, encoding="utf-8")
            self._handler.setFormatter(logging.Formatter("%(message)s"))
            self._logger.addHandler(self._handler)

    @property
    def path(self) -> Path:
        return self._path

    def close(self) -> None:
        """Detach and close this logger's file handler."""
        if self._handler is None:
            return
        self._logger.removeHandler(self._handler)
        self._handler.close()
        self._handler = None

    def log_run_start(self, run_id: str, target: str, total: int) -> None:
        self._logger.info(
            json.dumps({
                "type": "run",
                "event": "start",
                "timestamp": datetime.now(UTC).isoformat(),
                "run_id": run_id,
                "target": target,
                "total": total,
            })
        )

    def log_run_end(
        self,
        run_id: str,
        result: BatchResult,
        duration_ms: float,
    ) -> None:
        self._logger.info(
            json.dumps({
                "type": "run",
                "event": "end",
                "timestamp": datetime.now(UTC).isoformat(),
                "run_id": run_id,
                "state": str(result.state),
                "total": result.total,
                "succeeded": result.succeeded,
                "failed": result.failed,
                "skipped": result.skipped,
                "duration_ms": round(duration_ms, 1),
            })
        )

    def log_job(self, run_id: str, outcome: JobOutcome) -> None:
        job = outcome.job
        self._logger.info(
            json.dumps({
                "type": "job",
                "timestamp": datetime.now(UTC).isoformat(),
                "run_id": run_id,
                "index": job.index,
                "source": str(job.source.path),
                "block_index": job.source.block_index,
                "format": str(job.format),
                "status": str(outcome.status),
                "output": str(outcome.output_path)
                if outcome.output_path
                else None,
                "backend": outcome.backend,
                "error_code": str(error_code_for(outcome.error))
                if outcome.error
                else None,
                "error": truncate_reason(str(outcome.error))
                if outcome.error
                else None,
            })
        )

    def log_error(
        self,
        run_id: str,
        component: str,
        error: str,
    ) -> None:
        self._logger.error(
            json.dumps({
                "type": "error",
                "timestamp": datetime.now(UTC).isoformat(),
                "run_id": run_id,
                "component": component,
                "error": error[:ERROR_TRUNCATION_CHARS],
            })
        )
