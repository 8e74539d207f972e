"""Depth-limited walk of a folder for Mermaid sources."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

import pathspec

from mermex.constants import (
    DEFAULT_EXCLUDE_PATTERNS,
    DEFAULT_INCLUDE_PATTERNS,
    DEFAULT_MAX_DEPTH,
    DEFAULT_SKIP_DIRECTORIES,
)
from mermex.discovery.markdown import parse_document
from mermex.discovery.schemas import DiscoveryResult, UnreadableFile
from mermex.errors import InvalidSource

logger = logging.getLogger(__name__)


def discover_sources(
    root: Path | str,
    max_depth: int = DEFAULT_MAX_DEPTH,
    include_patterns: Iterable[str] = DEFAULT_INCLUDE_PATTERNS,
    exclude_patterns: Iterable[str] = DEFAULT_EXCLUDE_PATTERNS,
    skip_directories: Iterable[str] = DEFAULT_SKIP_DIRECTORIES,
) -> DiscoveryResult:
    """Find every diagram under ``root``, in sorted walk order.

    ``max_depth`` counts folder levels including ``root`` itself: 1 scans
    only ``root``, 2 adds its direct subfolders. Files that match but
    cannot be read end up in ``unreadable`` instead of aborting.
    """
    if max_depth < 1:
        msg = f"max_depth must be >= 1, got {max_depth}"
        raise ValueError(msg)

    root_path = Path(root)
    if not root_path.is_dir():
        raise InvalidSource(root_path, "Not a directory")
    try:
        next(iter(root_path.iterdir()), None)
    except OSError as exc:
        raise InvalidSource(
            root_path, exc.strerror or "Directory is not readable"
        ) from exc

    include = pathspec.PathSpec.from_lines("gitignore", include_patterns)
    exclude = pathspec.PathSpec.from_lines("gitignore", exclude_patterns)
    ignored = _load_gitignore(root_path)

    files = _walk(
        root_path,
        root_path,
        depth=0,
        max_depth=max_depth,
        skip_dirs=set(skip_directories),
        ignored=ignored,
        resolved_root=root_path.resolve(),
    )

    result = DiscoveryResult(root=root_path)
    for file_path in files:
        rel = file_path.relative_to(root_path).as_posix()
        if not include.match_file(rel) or exclude.match_file(rel):
            continue
        result.files_scanned += 1
        try:
            result.sources.extend(parse_document(file_path))
        except InvalidSource as exc:
            logger.warning(
                "event=source_unreadable file=%s reason=%s",
                file_path,
                exc.reason,
            )
            result.unreadable.append(
                UnreadableFile(path=file_path, reason=exc.reason)
            )

    logger.info(
        "event=discovery_complete root=%s files=%d diagrams=%d unreadable=%d",
        root_path,
        result.files_scanned,
        len(result.sources),
        len(result.unreadable),
    )
    return result


def _walk(
    current: Path,
    root: Path,
    *,
    depth: int,
    max_depth: int,
    skip_dirs: set[str],
    ignored: pathspec.PathSpec,
    resolved_root: Path,
) -> list[Path]:
    """Recursive walk helper with symlink protection."""
    files: list[Path] = []
    try:
        entries = sorted(current.iterdir())
    except OSError as exc:
        logger.warning(
            "event=directory_unreadable dir=%s error=%s", current, exc
        )
        return files

    for item in entries:
        if item.is_symlink():
            resolved = item.resolve()
            if not resolved.is_relative_to(resolved_root):
                logger.debug("event=symlink_outside_root path=%s", item)
                continue
        rel = item.relative_to(root).as_posix()
        if item.is_dir():
            if item.name.startswith(".") or item.name in skip_dirs:
                continue
            if depth + 1 >= max_depth:
                continue
            if ignored.match_file(rel + "/"):
                continue
            files.extend(
                _walk(
                    item,
                    root,
                    depth=depth + 1,
                    max_depth=max_depth,
                    skip_dirs=skip_dirs,
                    ignored=ignored,
                    resolved_root=resolved_root,
                )
            )
        elif item.is_file():
            if not ignored.match_file(rel):
                files.append(item)
    return files


def _load_gitignore(root: Path) -> pathspec.PathSpec:
    """Load the root's .gitignore; a missing or unreadable one is empty."""
    gitignore = root / ".gitignore"
    if not gitignore.exists():
        return pathspec.PathSpec.from_lines("gitignore", [])
    try:
        with open(gitignore, encoding="utf-8") as f:
            return pathspec.PathSpec.from_lines("gitignore", f)
    except OSError:
        logger.warning("event=gitignore_unreadable path=%s", gitignore)
        return pathspec.PathSpec.from_lines("gitignore", [])
