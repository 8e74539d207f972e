"""Tests for base-name sanitization and content hashing."""

from __future__ import annotations

from pathlib import Path

import pytest

from mermex.naming import base_name_from_path, sanitize_base_name, short_hash


class TestSanitizeBaseName:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("Architecture Flow", "architecture-flow"),
            ("a/b\\c", "a-b-c"),
            ("../../etc/passwd", "etc-passwd"),
            ('what?*<is>:"this"|', "what-is-this"),
            ("  spaced   out  ", "spaced-out"),
            ("--dashes--", "dashes"),
            ("tab\tand\nnewline", "tab-and-newline"),
            ("readme-3", "readme-3"),
        ],
    )
    def test_sanitizes(self, raw: str, expected: str) -> None:
        assert sanitize_base_name(raw) == expected

    @pytest.mark.parametrize("raw", ["", "...", "///", "  ", "-_."])
    def test_empty_result_falls_back_to_diagram(self, raw: str) -> None:
        assert sanitize_base_name(raw) == "diagram"

    def test_idempotent(self) -> None:
        once = sanitize_base_name("My Doc: Part 2")
        assert sanitize_base_name(once) == once

    def test_base_name_from_path(self) -> None:
        assert base_name_from_path(Path("docs/My Flow.md")) == "my-flow"
        assert base_name_from_path("notes.v2.mmd") == "notes.v2"


class TestShortHash:
    def test_known_digest(self) -> None:
        """First 8 hex chars of SHA-256."""
        assert short_hash("abc") == "ba7816bf"

    def test_empty_content_still_hashes(self) -> None:
        assert short_hash("") == "e3b0c442"

    def test_ignores_surrounding_whitespace(self) -> None:
        assert short_hash("  abc\n\n") == short_hash("abc")

    def test_inner_whitespace_matters(self) -> None:
        assert short_hash("a b") != short_hash("a  b")
