"""Rasterize layered and vector design files into a bounded JPEG thumbnail.

Each format has exactly one rasterizer: psd-tools for PSD, cairosvg for SVG and
Ghostscript for EPS/AI. A failure yields no thumbnail rather than trying another
renderer.
"""

from __future__ import annotations

import asyncio
import io

from PIL import Image
from psd_tools import PSDImage

from app.core.config import Settings
from app.core.errors import DerivationError
from app.core.logging import get_logger

from .models import DerivedPayload
from .tooling import ToolWorkspace, run_tool

logger = get_logger(component="design_thumbnailer")

GHOSTSCRIPT_RESOLUTION = 150


def _rasterize_psd(data: bytes) -> Image.Image:
    psd = PSDImage.open(io.BytesIO(data))
    image = psd.composite()
    if image is None:
        raise DerivationError("PSD has no composite image")
    return image


def _rasterize_svg(data: bytes) -> Image.Image:
    # cairosvg binds libcairo when imported, so it is loaded only once an SVG arrives.
    from cairosvg import svg2png

    png = svg2png(bytestring=data)
    if not png:
        raise DerivationError("SVG rendered to an empty image", error_code="empty_output")
    with Image.open(io.BytesIO(png)) as image:
        image.load()
        return image.copy()


async def _rasterize_postscript(data: bytes, extension: str, settings: Settings) -> Image.Image:
    with ToolWorkspace(prefix="ingest-gs-") as workspace:
        source = workspace.write(f"source.{extension}", data)
        output = workspace.file("page.png")
        command = [
            settings.ghostscript_path,
            "-dSAFER",
            "-dNOPAUSE",
            "-dBATCH",
            "-dQUIET",
            "-dFirstPage=1",
            "-dLastPage=1",
            "-sDEVICE=png16m",
            f"-r{GHOSTSCRIPT_RESOLUTION}",
            "-dGraphicsAlphaBits=4",
            "-dTextAlphaBits=4",
        ]
        if extension == "eps":
            command.append("-dEPSCrop")
        command += [f"-sOutputFile={output}", str(source)]
        await run_tool(command, timeout=settings.tool_timeout_s, label="ghostscript")
        png = workspace.read_output(output.name)
    with Image.open(io.BytesIO(png)) as image:
        image.load()
        return image.copy()


def encode_bounded_jpeg(image: Image.Image, max_side: int, quality: int) -> bytes:
    """Fit inside ``max_side`` without enlarging, flatten transparency onto white, encode JPEG."""
    image = image.copy()
    image.thumbnail((max_side, max_side), Image.Resampling.LANCZOS)
    if image.mode in ("RGBA", "LA", "PA") or "transparency" in image.info:
        rgba = image.convert("RGBA")
        flattened = Image.new("RGB", rgba.size, (255, 255, 255))
        flattened.paste(rgba, mask=rgba.getchannel("A"))
        image = flattened
    elif image.mode != "RGB":
        image = image.convert("RGB")
    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=quality, optimize=True)
    return buffer.getvalue()


async def render_design_thumbnail(data: bytes, extension: str, settings: Settings) -> DerivedPayload:
    extension = extension.lower()
    if extension == "psd":
        image = await asyncio.to_thread(_rasterize_psd, data)
    elif extension == "svg":
        image = await asyncio.to_thread(_rasterize_svg, data)
    elif extension in {"eps", "ai"}:
        image = await _rasterize_postscript(data, extension, settings)
    else:
        raise DerivationError(f"no rasterizer for .{extension} files", error_code="unsupported_format")

    encoded = await asyncio.to_thread(
        encode_bounded_jpeg,
        image,
        settings.design_thumbnail_size,
        settings.design_thumbnail_quality,
    )
    if not encoded:
        raise DerivationError("design thumbnail is empty", error_code="empty_output")
    logger.info("design_thumbnail_rendered", extension=extension, size_bytes=len(encoded))
    return DerivedPayload(kind="thumbnail", data=encoded, content_type="image/jpeg", extension="jpg")


__all__ = ["encode_bounded_jpeg", "render_design_thumbnail"]
