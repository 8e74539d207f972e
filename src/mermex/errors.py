"""Export error taxonomy.

Per-job errors (RenderFailure, FileSystemError, mid-run
StrategyUnavailable) are recorded in the batch result. Only pre-flight
StrategyUnavailable and InvalidSource at the discovery root abort a run.
"""

from __future__ import annotations

from pathlib import Path

from mermex.constants import ERROR_TRUNCATION_CHARS, ErrorCode


class ExportError(Exception):
    """Base class for every error raised by the export core."""

    code: ErrorCode = ErrorCode.RENDER_FAILURE

    @property
    def reason(self) -> str:
        """Human-readable, length-bounded message for summaries."""
        return truncate_reason(str(self))


class InvalidSource(ExportError):
    """A discovered path (or the discovery root) cannot be read."""

    code = ErrorCode.INVALID_SOURCE

    def __init__(self, path: Path | str, detail: str) -> None:
        self.path = Path(path)
        self.detail = detail
        super().__init__(f"Cannot read {self.path}: {detail}")


class StrategyUnavailable(ExportError):
    """No render backend probed successfully."""

    code = ErrorCode.STRATEGY_UNAVAILABLE

    def __init__(self, tried: list[str] | None = None) -> None:
        self.tried = list(tried or [])
        names = ", ".join(self.tried) or "none configured"
        super().__init__(f"No render backend available (tried: {names})")


class RenderFailure(ExportError):
    """A backend accepted the job but could not produce output."""

    code = ErrorCode.RENDER_FAILURE

    def __init__(
        self,
        message: str,
        *,
        backend: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self.backend = backend
        # Read by resilience.errors.classify_error
        self.status_code = status_code
        prefix = f"[{backend}] " if backend else ""
        super().__init__(f"{prefix}{message}")


class FileSystemError(ExportError):
    """Output could not be scanned or written."""

    code = ErrorCode.FILESYSTEM_ERROR

    def __init__(self, path: Path | str, detail: str) -> None:
        self.path = Path(path)
        self.detail = detail
        super().__init__(f"{detail}: {self.path}")


class Cancelled(ExportError):
    """Cooperative cancellation observed between jobs."""

    code = ErrorCode.CANCELLED

    def __init__(self, run_id: str) -> None:
        self.run_id = run_id
        super().__init__(f"Run {run_id} was cancelled")


def truncate_reason(message: str) -> str:
    """Collapse whitespace and cap length for user-facing reasons."""
    flat = " ".join(message.split())
    if len(flat) <= ERROR_TRUNCATION_CHARS:
        return flat
    return flat[: ERROR_TRUNCATION_CHARS - 3] + "..."


def error_code_for(error: BaseException) -> ErrorCode:
    """Map any exception raised inside a job to a taxonomy code."""
    if isinstance(error, ExportError):
        return error.code
    if isinstance(error, OSError):
        return ErrorCode.FILESYSTEM_ERROR
    return ErrorCode.RENDER_FAILURE
