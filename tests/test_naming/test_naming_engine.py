"""Tests for NamingEngine path resolution."""

from __future__ import annotations

from pathlib import Path

import pytest

from mermex.constants import NamingMode
from mermex.naming import NamingEngine, short_hash


def _export(engine: NamingEngine, content: str, directory: Path) -> Path:
    """Resolve and, unless reused, write, as the orchestrator does."""
    record = engine.resolve("diagram", "svg", content, directory)
    if not record.reused:
        record.output_path.write_text(content)
    return record.output_path


class TestNamingEngine:
    def test_versioned_scenario(self, tmp_path: Path) -> None:
        """c1 → 01, c1 again → same, c2 → 02, c1 a third time → 01."""
        engine = NamingEngine()
        c1, c2 = "flow A->B", "flow A->B->C"

        first = engine.resolve("diagram", "svg", c1, tmp_path)
        assert first.output_path.name == f"diagram-01-{short_hash(c1)}.svg"
        assert first.sequence_number == 1
        assert first.reused is False
        first.output_path.write_text("<svg/>")

        again = engine.resolve("diagram", "svg", c1, tmp_path)
        assert again.output_path == first.output_path
        assert again.reused is True

        second = engine.resolve("diagram", "svg", c2, tmp_path)
        assert second.output_path.name == f"diagram-02-{short_hash(c2)}.svg"
        assert second.reused is False
        second.output_path.write_text("<svg/>")

        third = engine.resolve("diagram", "svg", c1, tmp_path)
        assert third.output_path == first.output_path
        assert third.reused is True

    def test_sequence_strictly_increases(self, tmp_path: Path) -> None:
        engine = NamingEngine()
        seqs = []
        for i in range(4):
            content = f"graph TD\n  A --> N{i}"
            record = engine.resolve("diagram", "svg", content, tmp_path)
            record.output_path.write_text(content)
            seqs.append(record.sequence_number)
        assert seqs == [1, 2, 3, 4]

    def test_overwrite_path_is_stable(self, tmp_path: Path) -> None:
        engine = NamingEngine()
        a = engine.resolve(
            "diagram", "svg", "c1", tmp_path, NamingMode.OVERWRITE
        )
        a.output_path.write_text("c1")
        b = engine.resolve(
            "diagram", "svg", "c2", tmp_path, NamingMode.OVERWRITE
        )
        assert a.output_path == b.output_path == tmp_path / "diagram1.svg"
        assert b.reused is False
        assert b.sequence_number is None

    def test_base_name_sanitized_before_scan(self, tmp_path: Path) -> None:
        """Unsafe names never escape the output directory."""
        engine = NamingEngine()
        record = engine.resolve("../My Flow", "svg", "graph TD", tmp_path)
        assert record.output_path.parent == tmp_path
        assert record.output_path.name.startswith("my-flow-01-")

        record.output_path.write_text("x")
        again = engine.resolve("../My Flow", "svg", "graph TD", tmp_path)
        assert again.reused is True

    def test_content_hash_recorded(self, tmp_path: Path) -> None:
        record = NamingEngine().resolve("d", "png", "graph TD", tmp_path)
        assert record.content_hash == short_hash("graph TD")

    def test_no_sidecar_files(self, tmp_path: Path) -> None:
        engine = NamingEngine()
        _export(engine, "c1", tmp_path)
        _export(engine, "c2", tmp_path)
        _export(engine, "c1", tmp_path)
        assert len(list(tmp_path.iterdir())) == 2

    def test_unsupported_mode(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="Unsupported naming mode"):
            NamingEngine().resolve("d", "svg", "x", tmp_path, "timestamped")

    def test_should_skip_export(self, tmp_path: Path) -> None:
        engine = NamingEngine()
        path = _export(engine, "c1", tmp_path)
        assert engine.should_skip_export(path, "c1", NamingMode.VERSIONED)
        assert not engine.should_skip_export(
            path, "c1", NamingMode.OVERWRITE
        )
