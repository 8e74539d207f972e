"""Deterministic output paths with idempotent reuse."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from mermex.constants import NamingMode
from mermex.naming.policies import POLICIES, NamingPolicy
from mermex.naming.sanitize import sanitize_base_name, short_hash


@dataclass(frozen=True)
class NamingRecord:
    """Result of resolving a job's output path.

    ``reused`` means the file already holds this content and the render
    step must be skipped.
    """

    output_path: Path
    content_hash: str
    sequence_number: int | None
    reused: bool


class NamingEngine:
    """Resolves output paths through a per-mode naming policy."""

    def __init__(
        self,
        policies: Mapping[NamingMode, NamingPolicy] | None = None,
    ) -> None:
        self._policies = dict(policies or POLICIES)

    def policy(self, mode: NamingMode | str) -> NamingPolicy:
        try:
            return self._policies[NamingMode(mode)]
        except (KeyError, ValueError):
            msg = f"Unsupported naming mode: {mode}"
            raise ValueError(msg) from None

    def resolve(
        self,
        base_name: str,
        fmt: str,
        content: str,
        directory: Path | str,
        mode: NamingMode | str = NamingMode.VERSIONED,
    ) -> NamingRecord:
        """Compute where ``content`` goes and whether to skip rendering.

        The base name is sanitized here, once; every directory lookup
        below uses the sanitized form.
        """
        safe_name = sanitize_base_name(base_name)
        policy = self.policy(mode)
        path, seq = policy.compute_path(
            safe_name, str(fmt), content, Path(directory)
        )
        return NamingRecord(
            output_path=path,
            content_hash=short_hash(content),
            sequence_number=seq,
            reused=policy.should_skip(path, content),
        )

    def should_skip_export(
        self,
        path: Path | str,
        content: str,
        mode: NamingMode | str,
    ) -> bool:
        return self.policy(mode).should_skip(Path(path), content)
