"""In-memory fake backend for testing.

No subprocess, no network. Deterministic bytes derived from the
input text, with scripted availability and failures.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from mermex.backends.base import RenderOptions
from mermex.constants import BackendRole
from mermex.errors import RenderFailure


@dataclass(frozen=True)
class RenderCall:
    """One recorded ``render`` invocation."""

    text: str
    options: RenderOptions


class FakeBackend:
    """Scriptable RenderBackend.

    ``available`` may be flipped at any time to simulate a backend
    degrading mid-run. Any text containing one of ``fail_on`` raises
    RenderFailure; ``error`` (if set) is raised for every render.
    """

    def __init__(
        self,
        name: str = "fake",
        *,
        role: BackendRole = BackendRole.PRIMARY,
        available: bool = True,
        fail_on: tuple[str, ...] = (),
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.name = name
        self.role = role
        self.available = available
        self.fail_on = fail_on
        self.error = error
        self.delay = delay
        self.calls: list[RenderCall] = []
        self.probe_count = 0

    async def probe(self) -> bool:
        self.probe_count += 1
        return self.available

    async def render(
        self, text: str, options: RenderOptions
    ) -> bytes:
        self.calls.append(RenderCall(text=text, options=options))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if any(marker in text for marker in self.fail_on):
            msg = "Parse error: unexpected token"
            raise RenderFailure(msg, backend=self.name)
        return f"<{options.format}:{self.name}>{text}".encode()

    @property
    def render_count(self) -> int:
        return len(self.calls)
