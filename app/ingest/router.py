from __future__ import annotations

from typing import Literal

UploadStrategy = Literal["inline", "direct"]


def decide(size_bytes: int, threshold_bytes: int) -> UploadStrategy:
    """Inline up to and including the threshold; anything strictly larger uploads directly."""
    if size_bytes < 0:
        raise ValueError("size_bytes must be non-negative")
    return "direct" if size_bytes > threshold_bytes else "inline"


__all__ = ["UploadStrategy", "decide"]
