"""Pydantic models for the discovery data flow."""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from mermex.constants import SourceKind


class DiagramSource(BaseModel):
    """One unit of diagram text: a whole .mmd file or one fenced block."""

    model_config = ConfigDict(frozen=True)

    path: Path
    raw_text: str
    kind: SourceKind
    block_index: int | None = None
    start_line: int = 0  # 0-based, first line of the diagram body
    end_line: int = 0
    diagram_type: str = "unknown"

    @property
    def base_name(self) -> str:
        """Unsanitized name the naming engine starts from."""
        stem = self.path.stem
        if self.kind == SourceKind.EMBEDDED_BLOCK and self.block_index is not None:
            return f"{stem}-{self.block_index + 1}"
        return stem

    @property
    def label(self) -> str:
        """Short display form for logs and failure reports."""
        if self.block_index is None:
            return str(self.path)
        return f"{self.path}#{self.block_index + 1}"


class UnreadableFile(BaseModel):
    """A file discovery matched but could not read."""

    path: Path
    reason: str


class DiscoveryResult(BaseModel):
    """Output of discover_sources: everything found under the root."""

    root: Path
    sources: list[DiagramSource] = Field(
        default_factory=lambda: list[DiagramSource]()
    )
    unreadable: list[UnreadableFile] = Field(
        default_factory=lambda: list[UnreadableFile]()
    )
    files_scanned: int = 0
