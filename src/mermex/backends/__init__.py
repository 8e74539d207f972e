"""Render backends: the mmdc CLI (primary) and Kroki (fallback)."""

from __future__ import annotations

from typing import TYPE_CHECKING

from mermex.backends.base import RenderBackend, RenderOptions
from mermex.backends.kroki import KrokiBackend
from mermex.backends.mmdc import MmdcBackend

if TYPE_CHECKING:
    from mermex.config import Settings

__all__ = [
    "KrokiBackend",
    "MmdcBackend",
    "RenderBackend",
    "RenderOptions",
    "build_backends",
]


def build_backends(settings: Settings) -> list[RenderBackend]:
    """Return the configured backends in priority order.

    ``settings.preferred_backend`` moves the named backend to the front;
    an unknown name leaves the default order.
    """
    backends: list[RenderBackend] = [
        MmdcBackend(
            settings.mmdc_command,
            timeout=settings.render_timeout_seconds,
        ),
        KrokiBackend(
            settings.kroki_url,
            timeout=settings.render_timeout_seconds,
        ),
    ]
    preferred = settings.preferred_backend.strip()
    if preferred:
        backends.sort(key=lambda b: b.name != preferred)
    return backends
