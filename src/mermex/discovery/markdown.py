"""Extract Mermaid diagrams from Markdown and standalone .mmd files."""

from __future__ import annotations

import logging
import re
from pathlib import Path

from mermex.constants import STANDALONE_EXTENSIONS, SourceKind
from mermex.discovery.schemas import DiagramSource
from mermex.errors import InvalidSource

logger = logging.getLogger(__name__)

_FENCE_OPEN_RE = re.compile(r"^(\s*)```\s*mermaid\s*$", re.IGNORECASE)
_FENCE_CLOSE = "```"

# First-keyword → diagram type. Order matters: "stateDiagram-v2"
# must not fall through to a shorter prefix.
_DIAGRAM_TYPES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"^(flowchart|graph)\b", re.IGNORECASE), "flowchart"),
    (re.compile(r"^sequenceDiagram\b", re.IGNORECASE), "sequence"),
    (re.compile(r"^classDiagram(-v2)?\b", re.IGNORECASE), "class"),
    (re.compile(r"^stateDiagram(-v2)?\b", re.IGNORECASE), "state"),
    (re.compile(r"^erDiagram\b", re.IGNORECASE), "er"),
    (re.compile(r"^journey\b", re.IGNORECASE), "journey"),
    (re.compile(r"^gantt\b", re.IGNORECASE), "gantt"),
    (re.compile(r"^pie\b", re.IGNORECASE), "pie"),
    (re.compile(r"^gitGraph\b", re.IGNORECASE), "gitgraph"),
    (re.compile(r"^mindmap\b", re.IGNORECASE), "mindmap"),
    (re.compile(r"^timeline\b", re.IGNORECASE), "timeline"),
    (re.compile(r"^sankey(-beta)?\b", re.IGNORECASE), "sankey"),
    (re.compile(r"^quadrantChart\b", re.IGNORECASE), "quadrant"),
    (re.compile(r"^requirementDiagram\b", re.IGNORECASE), "requirement"),
    (re.compile(r"^C4(Context|Container|Component|Dynamic|Deployment)\b"), "c4"),
    (re.compile(r"^xychart(-beta)?\b", re.IGNORECASE), "xychart"),
    (re.compile(r"^block(-beta)?\b", re.IGNORECASE), "block"),
)


def detect_diagram_type(text: str) -> str:
    """Best-effort label from the first meaningful line.

    Skips YAML front matter and ``%%`` directives/comments. This is a
    display hint only; grammar is never validated here.
    """
    lines = text.strip().splitlines()
    idx = 0
    if lines and lines[0].strip() == "---":
        idx = 1
        while idx < len(lines) and lines[idx].strip() != "---":
            idx += 1
        idx += 1
    for line in lines[idx:]:
        stripped = line.strip()
        if not stripped or stripped.startswith("%%"):
            continue
        for pattern, name in _DIAGRAM_TYPES:
            if pattern.match(stripped):
                return name
        return "unknown"
    return "unknown"


def _clean_block(lines: list[str]) -> str:
    return "\n".join(line.rstrip() for line in lines).strip()


def extract_blocks(text: str, path: Path) -> list[DiagramSource]:
    """Return every non-empty fenced ``mermaid`` block in ``text``.

    Indentation relative to the opening fence is preserved, so blocks
    nested in list items render the same as top-level ones. A block
    left open at end of file is dropped.
    """
    sources: list[DiagramSource] = []
    in_block = False
    fence_indent = 0
    start_line = 0
    body: list[str] = []

    for lineno, line in enumerate(text.splitlines()):
        if not in_block:
            match = _FENCE_OPEN_RE.match(line)
            if match:
                in_block = True
                fence_indent = len(match.group(1))
                start_line = lineno + 1
                body = []
            continue

        if line.strip().startswith(_FENCE_CLOSE):
            in_block = False
            content = _clean_block(body)
            if content:
                sources.append(
                    DiagramSource(
                        path=path,
                        raw_text=content,
                        kind=SourceKind.EMBEDDED_BLOCK,
                        block_index=len(sources),
                        start_line=start_line,
                        end_line=lineno - 1,
                        diagram_type=detect_diagram_type(content),
                    )
                )
            continue

        indent = len(line) - len(line.lstrip())
        relative = max(0, indent - fence_indent)
        body.append(" " * relative + line.lstrip())

    if in_block:
        logger.warning(
            "event=unclosed_mermaid_block file=%s line=%d",
            path,
            start_line,
        )
    return sources


def is_standalone(path: Path) -> bool:
    return path.suffix.lower() in STANDALONE_EXTENSIONS


def read_source_text(path: Path) -> str:
    """Read a diagram file as UTF-8, dropping a leading BOM."""
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise InvalidSource(path, f"not valid UTF-8 ({exc.reason})") from exc
    except OSError as exc:
        raise InvalidSource(path, exc.strerror or str(exc)) from exc
    return text.removeprefix("\ufeff")


def parse_document(path: Path | str) -> list[DiagramSource]:
    """All diagrams in one file: the whole .mmd, or each Markdown block."""
    file_path = Path(path)
    text = read_source_text(file_path)

    if not is_standalone(file_path):
        return extract_blocks(text, file_path)

    content = text.strip()
    if not content:
        return []
    return [
        DiagramSource(
            path=file_path,
            raw_text=content,
            kind=SourceKind.STANDALONE,
            start_line=0,
            end_line=max(0, len(text.splitlines()) - 1),
            diagram_type=detect_diagram_type(content),
        )
    ]
