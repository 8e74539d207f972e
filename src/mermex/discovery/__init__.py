"""Find Mermaid diagrams in folders, Markdown documents and .mmd files."""

from mermex.discovery.markdown import (
    detect_diagram_type,
    extract_blocks,
    parse_document,
)
from mermex.discovery.scanner import discover_sources
from mermex.discovery.schemas import (
    DiagramSource,
    DiscoveryResult,
    UnreadableFile,
)

__all__ = [
    "DiagramSource",
    "DiscoveryResult",
    "UnreadableFile",
    "detect_diagram_type",
    "discover_sources",
    "extract_blocks",
    "parse_document",
]
