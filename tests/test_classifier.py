from __future__ import annotations

import pytest

from app.ingest.classifier import classify, file_extension


@pytest.mark.parametrize(
    ("filename", "content_type", "category", "expected_type", "extension"),
    [
        ("photo.JPEG", "image/jpeg", "image", "image/jpeg", "jpg"),
        ("logo.png", "application/octet-stream", "png", "image/png", "png"),
        ("clip.mov", None, "video", "video/quicktime", "mov"),
        ("clip.m4v", "video/x-m4v", "video", "video/mp4", "m4v"),
        ("track.mp3", "audio/mpeg", "audio", "audio/mpeg", "mp3"),
        ("layout.psd", "application/octet-stream", "design", "image/vnd.adobe.photoshop", "psd"),
        ("vector.ai", None, "design", "application/postscript", "ai"),
        ("icon.svg", "image/svg+xml", "design", "image/svg+xml", "svg"),
        ("brand.woff2", None, "font", "font/woff2", "woff2"),
        ("bundle.zip", "application/zip", "archive", "application/zip", "zip"),
    ],
)
def test_known_extensions_win(filename, content_type, category, expected_type, extension):
    asset = classify(filename, content_type)
    assert asset.category == category
    assert asset.content_type == expected_type
    assert asset.extension == extension


def test_png_mime_without_extension_is_png_category():
    asset = classify("upload", "image/png")
    assert asset.category == "png"
    assert asset.extension == "png"


def test_mime_prefix_is_used_for_unknown_extensions():
    assert classify("scan.tiff", "image/tiff").category == "image"
    assert classify("take.mxf", "video/mxf").category == "video"
    assert classify("memo.opus", "audio/opus; codecs=opus").content_type == "audio/opus"


def test_unknown_input_degrades_to_other():
    asset = classify("notes.xyz", None)
    assert asset.category == "other"
    assert asset.content_type == "application/octet-stream"
    assert asset.extension == "xyz"

    nameless = classify(None, None)
    assert nameless.category == "other"
    assert nameless.extension == "bin"


def test_file_extension_handles_paths_and_case():
    assert file_extension("C:\\Users\\me\\Clip.MOV") == "mov"
    assert file_extension("archive.tar.gz") == "gz"
    assert file_extension("README") == ""
