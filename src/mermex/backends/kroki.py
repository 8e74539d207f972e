"""Fallback backend: a Kroki server renders Mermaid in a headless browser."""

from __future__ import annotations

import logging

import httpx

from mermex.backends.base import RenderOptions
from mermex.backends.raster import convert_png
from mermex.constants import (
    DEFAULT_KROKI_URL,
    ERROR_TRUNCATION_CHARS,
    NATIVE_KROKI_FORMATS,
    PROBE_TIMEOUT_SECONDS,
    RENDER_TIMEOUT_SECONDS,
    BackendRole,
    ExportFormat,
    Theme,
)
from mermex.errors import RenderFailure

logger = logging.getLogger(__name__)


def apply_theme_directive(text: str, theme: Theme) -> str:
    """Prefix a Mermaid init directive unless one is already present."""
    if theme == Theme.DEFAULT or "%%{init" in text:
        return text
    return f'%%{{init: {{"theme": "{theme}"}}}}%%\n{text}'


class KrokiBackend:
    """Renders through Kroki's ``POST /mermaid/{format}`` endpoint.

    Only svg and png come back natively; other formats are converted
    from png locally.
    """

    role = BackendRole.FALLBACK

    def __init__(
        self,
        base_url: str = DEFAULT_KROKI_URL,
        *,
        timeout: float = RENDER_TIMEOUT_SECONDS,
        name: str = "kroki",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.name = name
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout,
            transport=self._transport,
        )

    async def probe(self) -> bool:
        """Return True when the server's health endpoint answers 200."""
        try:
            async with self._client(PROBE_TIMEOUT_SECONDS) as client:
                resp = await client.get("/health")
        except httpx.HTTPError as exc:
            logger.warning("event=kroki_probe_failed error=%s", exc)
            return False
        return resp.status_code == 200

    async def render(
        self, text: str, options: RenderOptions
    ) -> bytes:
        target = options.format
        native = (
            target if target in NATIVE_KROKI_FORMATS else ExportFormat.PNG
        )
        body = apply_theme_directive(text, options.theme)

        async with self._client(self._timeout) as client:
            resp = await client.post(
                f"/mermaid/{native}",
                content=body.encode("utf-8"),
                headers={"Content-Type": "text/plain"},
            )

        if resp.status_code != 200:
            detail = (
                resp.text[:ERROR_TRUNCATION_CHARS]
                if resp.text
                else f"HTTP {resp.status_code}"
            )
            logger.warning(
                "event=kroki_failed status=%d error=%s",
                resp.status_code,
                detail,
            )
            raise RenderFailure(
                detail,
                backend=self.name,
                status_code=resp.status_code,
            )

        if native != target:
            return convert_png(resp.content, target, options.background)
        return resp.content
