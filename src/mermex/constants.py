"""Shared constants — single source of truth for cross-module values.

StrEnum members are str-compatible, so file names, CLI choices and
JSON log records work unchanged.
"""

from __future__ import annotations

from enum import StrEnum

# ── String Enums ─────────────────────────────────────────


class ExportFormat(StrEnum):
    """Output formats a backend can be asked to produce."""

    SVG = "svg"
    PNG = "png"
    PDF = "pdf"
    WEBP = "webp"
    JPG = "jpg"
    JPEG = "jpeg"


class Theme(StrEnum):
    """Mermaid built-in themes."""

    DEFAULT = "default"
    DARK = "dark"
    FOREST = "forest"
    NEUTRAL = "neutral"


class NamingMode(StrEnum):
    """Output naming policy.

    VERSIONED: ``{base}-{seq:02d}-{hash8}.{fmt}``, reuses identical content.
    OVERWRITE: ``{base}{n}.{fmt}``, always re-rendered in place.
    """

    VERSIONED = "versioned"
    OVERWRITE = "overwrite"


class SourceKind(StrEnum):
    """Where a diagram's text came from."""

    STANDALONE = "standalone"
    EMBEDDED_BLOCK = "embedded_block"


class RunState(StrEnum):
    """Lifecycle of a batch run.

    There is no FAILED member: a run with zero successes
    still ends COMPLETED, and pre-flight errors raise instead.
    """

    IDLE = "idle"
    DISCOVERING = "discovering"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class JobStatus(StrEnum):
    """Outcome of a single export job."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class BackendRole(StrEnum):
    """Priority class of a render backend."""

    PRIMARY = "primary"
    FALLBACK = "fallback"


class ErrorCode(StrEnum):
    """Stable identifiers for the export error taxonomy."""

    INVALID_SOURCE = "invalid_source"
    STRATEGY_UNAVAILABLE = "strategy_unavailable"
    RENDER_FAILURE = "render_failure"
    FILESYSTEM_ERROR = "filesystem_error"
    CANCELLED = "cancelled"


# Formats mmdc writes directly; the rest go through png.
NATIVE_MMDC_FORMATS = frozenset({
    ExportFormat.SVG,
    ExportFormat.PNG,
    ExportFormat.PDF,
})

# Kroki's mermaid endpoint only serves these two.
NATIVE_KROKI_FORMATS = frozenset({
    ExportFormat.SVG,
    ExportFormat.PNG,
})

# ── Naming ───────────────────────────────────────────────

SHORT_HASH_LENGTH = 8
SEQUENCE_WIDTH = 2
DEFAULT_BASE_NAME = "diagram"
DEFAULT_OVERWRITE_SUFFIX = "1"

# ── Discovery ────────────────────────────────────────────

DEFAULT_MAX_DEPTH = 5
STANDALONE_EXTENSIONS = frozenset({".mmd", ".mermaid"})

DEFAULT_INCLUDE_PATTERNS = [
    "*.md",
    "*.markdown",
    "*.mmd",
    "*.mermaid",
]

DEFAULT_EXCLUDE_PATTERNS = [
    "*.min.*",
    "*.lock",
]

DEFAULT_SKIP_DIRECTORIES = [
    "node_modules",
    ".git",
    ".vscode",
    "dist",
    "build",
    ".next",
    ".nuxt",
    ".venv",
    "__pycache__",
]

# ── Rendering ────────────────────────────────────────────

DEFAULT_WIDTH = 800
DEFAULT_HEIGHT = 600
DEFAULT_BACKGROUND = "transparent"
RENDER_TIMEOUT_SECONDS = 30
PROBE_TIMEOUT_SECONDS = 5
PROBE_TTL_SECONDS = 30.0
DEFAULT_KROKI_URL = "https://kroki.io"

# ── Circuit Breaker Configuration ────────────────────────

CB_BACKEND_FAILURE_THRESHOLD = 3
CB_BACKEND_RECOVERY_TIMEOUT = 30

# ── Retry Strategy ───────────────────────────────────────

RENDER_RETRY_MAX_ATTEMPTS = 2
RENDER_RETRY_INITIAL_WAIT = 1
RENDER_RETRY_MAX_WAIT = 10

# ── Misc ─────────────────────────────────────────────────

ERROR_TRUNCATION_CHARS = 200
RUN_ID_HEX_LENGTH = 12
FINISHED_RUNS_RETAINED = 100  # batch run states kept for run_state()

# ── Run State Labels (user-facing) ───────────────────────

RUN_STATE_LABELS: dict[str, str] = {
    RunState.IDLE: "Waiting to start",
    RunState.DISCOVERING: "Scanning for diagrams",
    RunState.PROCESSING: "Exporting diagrams",
    RunState.COMPLETED: "Export finished",
    RunState.CANCELLED: "Export cancelled",
}
