"""PNG → jpeg/webp/pdf conversion for backends that only emit PNG."""

from __future__ import annotations

import io

from PIL import Image, ImageColor

from mermex.constants import ExportFormat
from mermex.errors import RenderFailure

_PIL_FORMATS: dict[str, str] = {
    ExportFormat.PNG: "PNG",
    ExportFormat.JPG: "JPEG",
    ExportFormat.JPEG: "JPEG",
    ExportFormat.WEBP: "WEBP",
    ExportFormat.PDF: "PDF",
}

# Formats without an alpha channel
_OPAQUE_FORMATS = frozenset({
    ExportFormat.JPG,
    ExportFormat.JPEG,
    ExportFormat.PDF,
})


def _background_rgb(background: str) -> tuple[int, int, int]:
    """Resolve a CSS color to RGB; transparent flattens onto white."""
    value = background.strip().lower()
    if not value or value == "transparent":
        return (255, 255, 255)
    try:
        return ImageColor.getrgb(value)[:3]
    except ValueError:
        return (255, 255, 255)


def convert_png(
    png: bytes,
    fmt: ExportFormat | str,
    background: str = "transparent",
) -> bytes:
    """Re-encode PNG bytes as ``fmt``.

    JPEG and PDF have no alpha channel, so transparent pixels are
    composited onto ``background`` (white when transparent).
    """
    target = ExportFormat(fmt)
    if target == ExportFormat.PNG:
        return png
    pil_format = _PIL_FORMATS.get(target)
    if pil_format is None:
        msg = f"Cannot convert PNG to {target}"
        raise RenderFailure(msg)

    try:
        with Image.open(io.BytesIO(png)) as img:
            img.load()
            if target in _OPAQUE_FORMATS:
                rgba = img.convert("RGBA")
                canvas = Image.new(
                    "RGB", rgba.size, _background_rgb(background)
                )
                canvas.paste(rgba, mask=rgba.getchannel("A"))
                out_img = canvas
            else:
                out_img = img.convert("RGBA")
            buf = io.BytesIO()
            out_img.save(buf, format=pil_format)
    except (OSError, ValueError) as exc:
        msg = f"Raster conversion to {target} failed: {exc}"
        raise RenderFailure(msg) from exc
    return buf.getvalue()
