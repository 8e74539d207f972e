"""Naming policies: where an export goes and whether it can be skipped.

Each policy is a small strategy object with ``compute_path`` and
``should_skip``; NamingEngine picks one per job. The output directory
is the only source of truth for sequence numbers; nothing is cached
between calls.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Protocol

from mermex.constants import (
    DEFAULT_OVERWRITE_SUFFIX,
    SEQUENCE_WIDTH,
    SHORT_HASH_LENGTH,
    NamingMode,
)
from mermex.errors import FileSystemError
from mermex.naming.sanitize import short_hash

logger = logging.getLogger(__name__)

# Any file produced by versioned naming: name-01-a4b2c8ef.svg
VERSIONED_NAME_RE = re.compile(
    rf"^.+-\d{{{SEQUENCE_WIDTH},}}-[0-9a-f]{{{SHORT_HASH_LENGTH}}}\.[A-Za-z0-9]+$"
)

_TRAILING_DIGITS_RE = re.compile(r"(\d+)$")
_TRAILING_NUMBER_RE = re.compile(r"[-_]?\d+$")


class NamingPolicy(Protocol):
    mode: NamingMode

    def compute_path(
        self,
        base_name: str,
        fmt: str,
        content: str,
        directory: Path,
    ) -> tuple[Path, int | None]: ...

    def should_skip(self, path: Path, content: str) -> bool: ...


def list_output_names(directory: Path) -> list[str]:
    """File names in ``directory``; a missing directory counts as empty.

    Any other scan failure raises FileSystemError rather than guessing
    a sequence, which could clobber an existing export.
    """
    try:
        return sorted(p.name for p in directory.iterdir() if p.is_file())
    except FileNotFoundError:
        return []
    except NotADirectoryError as exc:
        raise FileSystemError(
            directory, "Output path is not a directory"
        ) from exc
    except OSError as exc:
        detail = exc.strerror or str(exc)
        raise FileSystemError(
            directory, f"Cannot scan output directory ({detail})"
        ) from exc


def versioned_pattern(base_name: str, fmt: str) -> re.Pattern[str]:
    """Match ``{base}-{seq}-{hash8}.{fmt}`` for one (base, format) pair."""
    return re.compile(
        rf"^{re.escape(base_name)}"
        rf"-(\d{{{SEQUENCE_WIDTH},}})"
        rf"-([0-9a-f]{{{SHORT_HASH_LENGTH}}})"
        rf"\.{re.escape(fmt)}$"
    )


class VersionedNaming:
    """Content-addressed names: ``diagram-01-a4b2c8ef.svg``.

    Identical trimmed content maps back to the file that already holds
    it; new content gets max(existing sequence) + 1.
    """

    mode = NamingMode.VERSIONED

    def compute_path(
        self,
        base_name: str,
        fmt: str,
        content: str,
        directory: Path,
    ) -> tuple[Path, int | None]:
        content_hash = short_hash(content)
        pattern = versioned_pattern(base_name, fmt)

        highest = 0
        existing: list[tuple[int, str]] = []
        for name in list_output_names(directory):
            match = pattern.match(name)
            if match is None:
                continue
            seq = int(match.group(1))
            highest = max(highest, seq)
            if match.group(2) == content_hash:
                existing.append((seq, name))

        if existing:
            seq, name = min(existing)
            logger.debug(
                "event=naming_reuse file=%s hash=%s", name, content_hash
            )
            return directory / name, seq

        seq = highest + 1
        name = f"{base_name}-{seq:0{SEQUENCE_WIDTH}d}-{content_hash}.{fmt}"
        return directory / name, seq

    def should_skip(self, path: Path, content: str) -> bool:
        """Skip when the versioned file already exists.

        The hash is part of the name, so existence at this exact path
        already proves identical content; the bytes are not re-read.
        """
        return path.is_file() and bool(VERSIONED_NAME_RE.match(path.name))


class OverwriteNaming:
    """Stable names: ``diagram1.svg`` every time, whatever the content."""

    mode = NamingMode.OVERWRITE

    def compute_path(
        self,
        base_name: str,
        fmt: str,
        content: str,
        directory: Path,
    ) -> tuple[Path, int | None]:
        return directory / overwrite_file_name(base_name, fmt), None

    def should_skip(self, path: Path, content: str) -> bool:
        # Stable names trade deduplication for predictability: always
        # re-render so the file matches the latest content.
        return False


def overwrite_file_name(base_name: str, fmt: str) -> str:
    """``architecture-flow2`` → ``architecture-flow2.svg``; ``diagram`` → ``diagram1.svg``."""
    match = _TRAILING_DIGITS_RE.search(base_name)
    suffix = match.group(1) if match else DEFAULT_OVERWRITE_SUFFIX
    clean = _TRAILING_NUMBER_RE.sub("", base_name)
    return f"{clean}{suffix}.{fmt}"


POLICIES: dict[NamingMode, NamingPolicy] = {
    NamingMode.VERSIONED: VersionedNaming(),
    NamingMode.OVERWRITE: OverwriteNaming(),
}
