"""mermex — export Mermaid diagrams from Markdown and .mmd files."""

__version__ = "0.1.0"
