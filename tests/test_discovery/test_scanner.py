"""Tests for depth-limited source discovery."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from mermex.discovery import discover_sources
from mermex.errors import InvalidSource

BLOCK = "```mermaid\ngraph TD\n  A-->B\n```\n"


def _write(path: Path, text: str = "graph TD\n  A-->B\n") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture()
def tree(tmp_path: Path) -> Path:
    """root/a.mmd, root/l1/b.mmd, root/l1/l2/c.mmd, root/l1/l2/l3/d.mmd."""
    _write(tmp_path / "a.mmd")
    _write(tmp_path / "l1" / "b.mmd")
    _write(tmp_path / "l1" / "l2" / "c.mmd")
    _write(tmp_path / "l1" / "l2" / "l3" / "d.mmd")
    return tmp_path


def _names(root: Path, **kwargs: object) -> list[str]:
    result = discover_sources(root, **kwargs)  # type: ignore[arg-type]
    return [s.path.name for s in result.sources]


class TestDepth:
    @pytest.mark.parametrize(
        ("max_depth", "expected"),
        [
            (1, ["a.mmd"]),
            (2, ["a.mmd", "b.mmd"]),
            (3, ["a.mmd", "b.mmd", "c.mmd"]),
            (5, ["a.mmd", "b.mmd", "c.mmd", "d.mmd"]),
        ],
    )
    def test_only_sources_within_depth(
        self, tree: Path, max_depth: int, expected: list[str]
    ) -> None:
        assert sorted(_names(tree, max_depth=max_depth)) == expected

    @pytest.mark.parametrize("max_depth", [0, -1])
    def test_depth_below_one_rejected(
        self, tree: Path, max_depth: int
    ) -> None:
        with pytest.raises(ValueError, match="max_depth must be >= 1"):
            discover_sources(tree, max_depth=max_depth)

    def test_depth_one_skips_subfolders(self, tmp_path: Path) -> None:
        _write(tmp_path / "root.mmd")
        _write(tmp_path / "sub" / "child.mmd")
        assert _names(tmp_path, max_depth=1) == ["root.mmd"]


class TestFiltering:
    def test_sorted_walk_order(self, tmp_path: Path) -> None:
        _write(tmp_path / "b" / "z.mmd")
        _write(tmp_path / "a" / "y.mmd")
        _write(tmp_path / "c.mmd")
        assert _names(tmp_path) == ["y.mmd", "z.mmd", "c.mmd"]

    def test_markdown_blocks_discovered(self, tmp_path: Path) -> None:
        _write(tmp_path / "README.md", BLOCK + "\ntext\n\n" + BLOCK)
        result = discover_sources(tmp_path)
        assert [s.block_index for s in result.sources] == [0, 1]
        assert result.files_scanned == 1

    def test_non_matching_extensions_ignored(self, tmp_path: Path) -> None:
        _write(tmp_path / "notes.txt", BLOCK)
        _write(tmp_path / "script.py", BLOCK)
        assert _names(tmp_path) == []

    def test_hidden_and_skip_directories(self, tmp_path: Path) -> None:
        _write(tmp_path / ".hidden" / "a.mmd")
        _write(tmp_path / "node_modules" / "b.mmd")
        _write(tmp_path / "keep" / "c.mmd")
        assert _names(tmp_path) == ["c.mmd"]

    def test_custom_skip_directories(self, tmp_path: Path) -> None:
        _write(tmp_path / "drafts" / "a.mmd")
        assert _names(tmp_path, skip_directories=["drafts"]) == []

    def test_gitignore_respected(self, tmp_path: Path) -> None:
        _write(tmp_path / ".gitignore", "build/\nscratch.mmd\n")
        _write(tmp_path / "build" / "a.mmd")
        _write(tmp_path / "scratch.mmd")
        _write(tmp_path / "kept.mmd")
        assert _names(tmp_path) == ["kept.mmd"]

    def test_exclude_patterns(self, tmp_path: Path) -> None:
        _write(tmp_path / "a.mmd")
        _write(tmp_path / "generated" / "b.mmd")
        names = _names(tmp_path, exclude_patterns=["generated/"])
        assert names == ["a.mmd"]

    @pytest.mark.skipif(os.name == "nt", reason="symlinks need privileges")
    def test_symlink_outside_root_skipped(self, tmp_path: Path) -> None:
        outside = tmp_path / "outside"
        _write(outside / "secret.mmd")
        root = tmp_path / "root"
        _write(root / "inside.mmd")
        (root / "link").symlink_to(outside, target_is_directory=True)
        assert _names(root) == ["inside.mmd"]


class TestErrors:
    def test_missing_root_is_fatal(self, tmp_path: Path) -> None:
        with pytest.raises(InvalidSource):
            discover_sources(tmp_path / "nope")

    def test_file_as_root_is_fatal(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "a.mmd")
        with pytest.raises(InvalidSource, match="Not a directory"):
            discover_sources(path)

    def test_unreadable_file_collected(self, tmp_path: Path) -> None:
        _write(tmp_path / "good.mmd")
        (tmp_path / "bad.md").write_bytes(b"\xff\xfe\xfa")
        result = discover_sources(tmp_path)
        assert [s.path.name for s in result.sources] == ["good.mmd"]
        assert len(result.unreadable) == 1
        assert result.unreadable[0].path.name == "bad.md"
        assert "UTF-8" in result.unreadable[0].reason
