"""Environment-based configuration."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated, Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode

from mermex.backends.base import RenderOptions
from mermex.constants import (
    CB_BACKEND_FAILURE_THRESHOLD,
    CB_BACKEND_RECOVERY_TIMEOUT,
    DEFAULT_BACKGROUND,
    DEFAULT_EXCLUDE_PATTERNS,
    DEFAULT_HEIGHT,
    DEFAULT_INCLUDE_PATTERNS,
    DEFAULT_KROKI_URL,
    DEFAULT_MAX_DEPTH,
    DEFAULT_SKIP_DIRECTORIES,
    DEFAULT_WIDTH,
    PROBE_TTL_SECONDS,
    RENDER_TIMEOUT_SECONDS,
    ExportFormat,
    NamingMode,
    Theme,
)

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Reads from .env file and MERMEX_* environment variables."""

    # Naming
    naming_mode: NamingMode = NamingMode.VERSIONED

    # Output
    formats: Annotated[list[ExportFormat], NoDecode] = [ExportFormat.SVG]
    output_directory: Path | None = None  # None = alongside source
    organize_by_format: bool = False

    # Discovery
    max_depth: int = DEFAULT_MAX_DEPTH
    include_patterns: list[str] = list(DEFAULT_INCLUDE_PATTERNS)
    exclude_patterns: list[str] = list(DEFAULT_EXCLUDE_PATTERNS)
    skip_directories: list[str] = list(DEFAULT_SKIP_DIRECTORIES)

    # Render options
    theme: Theme = Theme.DEFAULT
    width: int = DEFAULT_WIDTH
    height: int = DEFAULT_HEIGHT
    background_color: str = DEFAULT_BACKGROUND

    # Backends (priority: mmdc first, kroki fallback)
    preferred_backend: str = ""
    probe_ttl_seconds: float = PROBE_TTL_SECONDS
    mmdc_command: str = "mmdc"
    render_timeout_seconds: int = RENDER_TIMEOUT_SECONDS
    kroki_url: str = DEFAULT_KROKI_URL
    backend_failure_threshold: int = CB_BACKEND_FAILURE_THRESHOLD
    backend_recovery_timeout: int = CB_BACKEND_RECOVERY_TIMEOUT

    # Scheduling
    max_concurrency: int = 1

    # Logging
    log_level: str = "INFO"
    log_dir: Path | None = None

    @field_validator("formats", mode="before")
    @classmethod
    def _parse_formats(cls, v: Any) -> Any:
        """Accept comma-separated string or JSON array."""
        if isinstance(v, str):
            return [s.strip().lower() for s in v.split(",") if s.strip()]
        return v

    @field_validator("formats")
    @classmethod
    def _validate_formats(
        cls, v: list[ExportFormat]
    ) -> list[ExportFormat]:
        if not v:
            raise ValueError("formats must contain at least one format")
        unique: list[ExportFormat] = []
        dupes: list[str] = []
        for fmt in v:
            if fmt in unique:
                dupes.append(fmt)
                continue
            unique.append(fmt)
        if dupes:
            logger.warning(
                "Duplicate formats in MERMEX_FORMATS: %s",
                ", ".join(dupes),
            )
        return unique

    @field_validator("max_depth")
    @classmethod
    def _validate_max_depth(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_depth must be >= 1")
        return v

    @field_validator("max_concurrency")
    @classmethod
    def _validate_concurrency(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_concurrency must be >= 1")
        return v

    def render_options(self, fmt: ExportFormat | str) -> RenderOptions:
        """Build backend render options for one output format."""
        return RenderOptions(
            format=ExportFormat(fmt),
            theme=self.theme,
            width=self.width,
            height=self.height,
            background=self.background_color,
        )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "MERMEX_",
        "extra": "ignore",
    }
