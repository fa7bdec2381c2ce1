from __future__ import annotations

import pytest

from app.core.config import DEFAULT_LARGE_ASSET_THRESHOLD_BYTES
from app.ingest.router import decide


def test_threshold_is_four_and_a_half_mebibytes():
    assert DEFAULT_LARGE_ASSET_THRESHOLD_BYTES == 4718592


@pytest.mark.parametrize(
    ("size", "expected"),
    [
        (0, "inline"),
        (DEFAULT_LARGE_ASSET_THRESHOLD_BYTES - 1, "inline"),
        (DEFAULT_LARGE_ASSET_THRESHOLD_BYTES, "inline"),
        (DEFAULT_LARGE_ASSET_THRESHOLD_BYTES + 1, "direct"),
    ],
)
def test_boundary_is_strictly_greater_than(size, expected):
    assert decide(size, DEFAULT_LARGE_ASSET_THRESHOLD_BYTES) == expected


def test_negative_size_is_rejected():
    with pytest.raises(ValueError):
        decide(-1, DEFAULT_LARGE_ASSET_THRESHOLD_BYTES)


def test_threshold_is_configurable(monkeypatch):
    from app.core.config import get_settings

    monkeypatch.setenv("INGEST_LARGE_ASSET_THRESHOLD_BYTES", "1024")
    get_settings.cache_clear()
    threshold = get_settings().large_asset_threshold_bytes

    assert threshold == 1024
    assert decide(1025, threshold) == "direct"
