"""Filesystem-safe base names and content hashes."""

from __future__ import annotations

import hashlib
import re
from pathlib import Path

from mermex.constants import DEFAULT_BASE_NAME, SHORT_HASH_LENGTH

_INVALID_CHARS_RE = re.compile(r'[<>:"/\\|?*\x00-\x1f\x7f]')
_TRAVERSAL_RE = re.compile(r"\.{2,}")
_WHITESPACE_RE = re.compile(r"\s+")
_DASH_RUN_RE = re.compile(r"-{2,}")


def sanitize_base_name(name: str) -> str:
    """Make ``name`` safe to use as a single path component.

    Path separators, reserved characters and ``..`` sequences become
    dashes; the result is lowercase and never empty.
    """
    cleaned = _INVALID_CHARS_RE.sub("-", name)
    cleaned = _TRAVERSAL_RE.sub("-", cleaned)
    cleaned = _WHITESPACE_RE.sub("-", cleaned)
    cleaned = _DASH_RUN_RE.sub("-", cleaned)
    cleaned = cleaned.strip("-._").lower()
    return cleaned or DEFAULT_BASE_NAME


def base_name_from_path(path: Path | str) -> str:
    """Sanitized file stem (``docs/My Flow.md`` → ``my-flow``)."""
    return sanitize_base_name(Path(path).stem)


def short_hash(content: str) -> str:
    """First 8 hex chars of SHA-256 over the trimmed content.

    Empty content hashes like any other string.
    """
    digest = hashlib.sha256(content.strip().encode("utf-8")).hexdigest()
    return digest[:SHORT_HASH_LENGTH]
