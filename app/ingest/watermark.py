from __future__ import annotations

import io
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from PIL import Image, ImageDraw, ImageFont, ImageOps

from app.core.config import Settings

from .models import ArtifactKind, DerivedPayload
from .probe import image_has_alpha

GRID_ALPHA = round(0.03 * 255)
TEXT_ALPHA = round(0.05 * 255)
TEXT_ANGLE = 30  # degrees counter-clockwise
GRID_DIVISIONS = 4
FLATTEN_BACKGROUND = (255, 255, 255)
# Largest side libwebp can encode.
WEBP_MAX_DIMENSION = 16383


@dataclass(slots=True, frozen=True)
class WatermarkStyle:
    text: str = "PREVIEW"
    tile_size: int = 1200
    font_path: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "WatermarkStyle":
        return cls(
            text=settings.watermark_text,
            tile_size=settings.watermark_tile_size,
            font_path=str(settings.watermark_font_path) if settings.watermark_font_path else None,
        )


def _load_font(style: WatermarkStyle) -> ImageFont.ImageFont | ImageFont.FreeTypeFont:
    font_size = max(8, int(style.tile_size * 0.15))
    if style.font_path and Path(style.font_path).exists():
        return ImageFont.truetype(style.font_path, font_size)
    return ImageFont.load_default(size=font_size)


@lru_cache(maxsize=16)
def render_tile(style: WatermarkStyle) -> bytes:
    """Render the repeating watermark tile as PNG bytes.

    The tile is a faint grid (quarter-tile spacing) plus the wordmark rotated
    across its centre. Output is a pure function of ``style``.
    """
    size = style.tile_size
    tile = Image.new("RGBA", (size, size), (0, 0, 0, 0))
    draw = ImageDraw.Draw(tile)
    step = max(1, size // GRID_DIVISIONS)
    for offset in range(0, size, step):
        draw.line([(0, offset), (size, offset)], fill=(255, 255, 255, GRID_ALPHA), width=1)
        draw.line([(offset, 0), (offset, size)], fill=(255, 255, 255, GRID_ALPHA), width=1)

    text_layer = Image.new("RGBA", (size, size), (0, 0, 0, 0))
    ImageDraw.Draw(text_layer).text(
        (size / 2, size / 2),
        style.text,
        font=_load_font(style),
        fill=(255, 255, 255, TEXT_ALPHA),
        anchor="mm",
    )
    text_layer = text_layer.rotate(TEXT_ANGLE, resample=Image.Resampling.BICUBIC)
    tile = Image.alpha_composite(tile, text_layer)

    buffer = io.BytesIO()
    tile.save(buffer, format="PNG")
    return buffer.getvalue()


def tile_image(style: WatermarkStyle) -> Image.Image:
    with Image.open(io.BytesIO(render_tile(style))) as tile:
        return tile.convert("RGBA")


def overlay_layer(width: int, height: int, style: WatermarkStyle) -> Image.Image:
    """Repeat the tile from the top-left corner until it covers ``width`` x ``height``."""
    tile = tile_image(style)
    layer = Image.new("RGBA", (width, height), (0, 0, 0, 0))
    for top in range(0, height, tile.height):
        for left in range(0, width, tile.width):
            layer.paste(tile, (left, top))
    return layer


def render_overlay_png(width: int, height: int, style: WatermarkStyle) -> bytes:
    """Frame-sized overlay used when burning the watermark into video."""
    buffer = io.BytesIO()
    overlay_layer(width, height, style).save(buffer, format="PNG")
    return buffer.getvalue()


def apply_watermark(
    data: bytes,
    style: WatermarkStyle,
    *,
    max_dimension: Optional[int] = None,
    quality: int = 75,
    kind: ArtifactKind = "preview",
) -> DerivedPayload:
    """Composite the tiled watermark over an image and encode the result.

    A PNG source that carries alpha stays RGBA and is re-encoded as PNG.
    Anything else is flattened onto white and encoded as lossy WEBP, or as JPEG
    when a side is too long for WEBP. The input
    bytes are never modified; calling this on its own output compounds the mark.
    """
    with Image.open(io.BytesIO(data)) as source:
        keep_alpha = source.format == "PNG" and image_has_alpha(source)
        image = ImageOps.exif_transpose(source)
        image = image.convert("RGBA")

    if max_dimension:
        image.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)

    composed = Image.alpha_composite(image, overlay_layer(image.width, image.height, style))

    buffer = io.BytesIO()
    if keep_alpha:
        composed.save(buffer, format="PNG", optimize=True)
        return DerivedPayload(kind=kind, data=buffer.getvalue(), content_type="image/png", extension="png")

    flattened = Image.new("RGB", composed.size, FLATTEN_BACKGROUND)
    flattened.paste(composed, mask=composed.getchannel("A"))
    if max(flattened.size) > WEBP_MAX_DIMENSION:
        flattened.save(buffer, format="JPEG", quality=quality, optimize=True)
        return DerivedPayload(kind=kind, data=buffer.getvalue(), content_type="image/jpeg", extension="jpg")
    flattened.save(buffer, format="WEBP", quality=quality, method=4)
    return DerivedPayload(kind=kind, data=buffer.getvalue(), content_type="image/webp", extension="webp")


__all__ = [
    "WatermarkStyle",
    "apply_watermark",
    "overlay_layer",
    "render_overlay_png",
    "render_tile",
    "tile_image",
]
