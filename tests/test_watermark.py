from __future__ import annotations

import io

from PIL import Image

from app.ingest.watermark import WatermarkStyle, apply_watermark, overlay_layer, render_overlay_png, render_tile

STYLE = WatermarkStyle(text="PREVIEW", tile_size=256)


def _open(data: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(data))
    image.load()
    return image


def test_tile_is_deterministic_and_square():
    first = render_tile(STYLE)
    render_tile.cache_clear()
    second = render_tile(STYLE)

    assert first == second
    tile = _open(first)
    assert tile.size == (256, 256)
    assert tile.mode == "RGBA"
    # faint, never opaque
    assert 0 < tile.getchannel("A").getextrema()[1] < 64


def test_overlay_covers_non_multiple_dimensions():
    layer = overlay_layer(600, 300, STYLE)
    assert layer.size == (600, 300)
    # the grid line at the origin of every tile carries some alpha
    assert layer.getpixel((0, 0))[3] > 0
    assert layer.getpixel((512, 256))[3] > 0

    png = render_overlay_png(300, 120, STYLE)
    assert _open(png).size == (300, 120)


def test_jpeg_is_flattened_to_webp_at_native_size(image_factory):
    source = image_factory("JPEG", size=(640, 480))
    payload = apply_watermark(source, STYLE)

    assert payload.kind == "preview"
    assert payload.content_type == "image/webp"
    assert payload.extension == "webp"
    result = _open(payload.data)
    assert result.format == "WEBP"
    assert result.size == (640, 480)


def test_png_with_alpha_keeps_alpha(image_factory):
    source = image_factory("PNG", size=(300, 200), mode="RGBA", color=(0, 0, 0, 0))
    payload = apply_watermark(source, STYLE, kind="thumbnail")

    assert payload.content_type == "image/png"
    result = _open(payload.data)
    assert result.mode == "RGBA"
    assert result.getchannel("A").getextrema()[0] == 0


def test_opaque_png_is_treated_like_any_raster(image_factory):
    payload = apply_watermark(image_factory("PNG", mode="RGB"), STYLE)
    assert payload.content_type == "image/webp"


def test_bounding_box_never_enlarges(image_factory):
    source = image_factory("JPEG", size=(2400, 1200))
    assert _open(apply_watermark(source, STYLE, max_dimension=1200).data).size == (1200, 600)

    small = image_factory("JPEG", size=(300, 150))
    assert _open(apply_watermark(small, STYLE, max_dimension=1200).data).size == (300, 150)


def test_watermarking_is_deterministic_and_compounds(image_factory):
    source = image_factory("PNG", size=(256, 256), mode="RGBA", color=(10, 10, 10, 255))
    once = apply_watermark(source, STYLE)
    again = apply_watermark(source, STYLE)
    twice = apply_watermark(once.data, STYLE)

    assert once.data == again.data
    assert twice.data != once.data
    # the mark lightens the grid line a little more on every pass
    assert _open(twice.data).getpixel((0, 0))[0] > _open(once.data).getpixel((0, 0))[0]


def test_panorama_wider_than_webp_allows_falls_back_to_jpeg(image_factory):
    source = image_factory("JPEG", size=(17000, 100))
    payload = apply_watermark(source, STYLE)

    assert payload.content_type == "image/jpeg"
    assert payload.extension == "jpg"
    result = _open(payload.data)
    assert result.format == "JPEG"
    assert result.size == (17000, 100)
