"""Mermaid rendering via the mmdc CLI."""

from __future__ import annotations

import asyncio
import logging
import shutil
import tempfile
from pathlib import Path

from mermex.backends.base import RenderOptions
from mermex.backends.raster import convert_png
from mermex.constants import (
    ERROR_TRUNCATION_CHARS,
    NATIVE_MMDC_FORMATS,
    PROBE_TIMEOUT_SECONDS,
    RENDER_TIMEOUT_SECONDS,
    BackendRole,
    ExportFormat,
    Theme,
)
from mermex.errors import RenderFailure

logger = logging.getLogger(__name__)


class MmdcBackend:
    """Primary backend: spawns ``mmdc`` once per render."""

    role = BackendRole.PRIMARY

    def __init__(
        self,
        command: str = "mmdc",
        *,
        timeout: float = RENDER_TIMEOUT_SECONDS,
        name: str = "mmdc",
    ) -> None:
        self.name = name
        self._command = command
        self._timeout = timeout

    async def probe(self) -> bool:
        """Check that mmdc is on PATH and answers ``--version``."""
        executable = shutil.which(self._command)
        if executable is None:
            return False
        try:
            proc = await asyncio.create_subprocess_exec(
                executable,
                "--version",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            logger.warning("event=mmdc_probe_failed error=%s", exc)
            return False
        try:
            await asyncio.wait_for(
                proc.communicate(), timeout=PROBE_TIMEOUT_SECONDS
            )
        except TimeoutError:
            proc.kill()
            await proc.wait()
            logger.warning("event=mmdc_probe_timeout")
            return False
        return proc.returncode == 0

    async def render(
        self, text: str, options: RenderOptions
    ) -> bytes:
        """Render ``text`` to ``options.format``.

        jpg/jpeg/webp are rendered as PNG, then re-encoded.
        """
        target = options.format
        native = (
            target if target in NATIVE_MMDC_FORMATS else ExportFormat.PNG
        )
        with tempfile.TemporaryDirectory() as tmpdir:
            input_file = Path(tmpdir) / "input.mmd"
            output_file = Path(tmpdir) / f"output.{native}"
            input_file.write_text(text, encoding="utf-8")

            args = build_mmdc_args(
                input_file, output_file, options, native
            )
            try:
                proc = await asyncio.create_subprocess_exec(
                    self._command,
                    *args,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except FileNotFoundError as exc:
                msg = f"{self._command} not found on PATH"
                raise RenderFailure(msg, backend=self.name) from exc

            try:
                _, stderr = await asyncio.wait_for(
                    proc.communicate(), timeout=self._timeout
                )
            except TimeoutError:
                proc.kill()
                await proc.wait()
                msg = f"mmdc timed out after {self._timeout}s"
                raise TimeoutError(msg) from None

            if proc.returncode != 0:
                detail = stderr.decode(errors="replace")
                logger.warning(
                    "event=mmdc_failed code=%s error=%s",
                    proc.returncode,
                    detail[:ERROR_TRUNCATION_CHARS],
                )
                raise RenderFailure(
                    detail[:ERROR_TRUNCATION_CHARS]
                    or f"mmdc exited with code {proc.returncode}",
                    backend=self.name,
                )

            if not output_file.exists():
                msg = "mmdc reported success but wrote no output"
                raise RenderFailure(msg, backend=self.name)
            data = output_file.read_bytes()

        if native != target:
            return convert_png(data, target, options.background)
        return data


def build_mmdc_args(
    input_file: Path,
    output_file: Path,
    options: RenderOptions,
    native: ExportFormat,
) -> list[str]:
    """Translate render options into mmdc flags."""
    args = [
        "-i",
        str(input_file),
        "-o",
        str(output_file),
        "-e",
        str(native),
        "-w",
        str(options.width),
        "-H",
        str(options.height),
        "-b",
        options.background,
    ]
    if options.theme != Theme.DEFAULT:
        args.extend(["-t", str(options.theme)])
    if native == ExportFormat.PDF:
        args.append("--pdfFit")
    args.append("--quiet")
    return args
