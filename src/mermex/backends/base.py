"""Render backend contract shared by every adapter."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from mermex.constants import (
    DEFAULT_BACKGROUND,
    DEFAULT_HEIGHT,
    DEFAULT_WIDTH,
    BackendRole,
    ExportFormat,
    Theme,
)


class RenderOptions(BaseModel):
    """What a backend needs besides the diagram text."""

    model_config = ConfigDict(frozen=True)

    format: ExportFormat = ExportFormat.SVG
    theme: Theme = Theme.DEFAULT
    width: int = Field(default=DEFAULT_WIDTH, gt=0)
    height: int = Field(default=DEFAULT_HEIGHT, gt=0)
    background: str = DEFAULT_BACKGROUND

    @property
    def is_transparent(self) -> bool:
        return self.background.strip().lower() == "transparent"


@runtime_checkable
class RenderBackend(Protocol):
    """A renderer the strategy selector can dispatch to.

    ``probe`` must be side-effect-free. ``render`` returns the encoded
    file contents for ``options.format`` or raises.
    """

    name: str
    role: BackendRole

    async def probe(self) -> bool: ...

    async def render(
        self, text: str, options: RenderOptions
    ) -> bytes: ...
