from __future__ import annotations

import json
import math
from typing import Any, Dict, Iterable, List, Literal, Optional

from .models import AudioMetadata, VideoMetadata

StreamType = Literal["video", "audio", "data", "subtitle", "other"]

_CODEC_LABELS = {
    "h264": "H.264",
    "hevc": "H.265",
    "h265": "H.265",
}

_TIMECODE_TAGS = ("timecode", "com.apple.proapps.timecode.raw")


def ffprobe_command(ffprobe: str, target: str) -> List[str]:
    return [
        ffprobe,
        "-v",
        "error",
        "-show_format",
        "-show_streams",
        "-print_format",
        "json",
        target,
    ]


def parse_video_metadata(raw: Dict[str, Any]) -> VideoMetadata:
    """Normalise ffprobe JSON into video metadata.

    Every field is best-effort: absent or malformed values become ``None``.

    Args:
        raw: The raw ffprobe JSON (``-show_format -show_streams``).

    Returns:
        The video metadata.
    """
    format_info = raw.get("format") or {}
    format_tags = _normalise_tags(format_info.get("tags"))
    streams = list(raw.get("streams") or [])
    video_streams = [stream for stream in streams if _normalise_stream_type(stream.get("codec_type")) == "video"]
    audio_streams = [stream for stream in streams if _normalise_stream_type(stream.get("codec_type")) == "audio"]

    metadata = VideoMetadata(
        duration_seconds=_parse_duration(format_info.get("duration")),
        bitrate=_parse_bitrate(format_info.get("bit_rate")),
        has_timecode=_has_timecode(format_tags, streams),
    )

    if video_streams:
        video = _select_video_stream(video_streams)
        codec_name = video.get("codec_name")
        metadata.width = _int_or_none(video.get("width"))
        metadata.height = _int_or_none(video.get("height"))
        metadata.rotation = _stream_rotation(video)
        if metadata.rotation in (90, 270):
            # ffmpeg auto-rotates on decode, so report the displayed frame size.
            metadata.width, metadata.height = metadata.height, metadata.width
        metadata.frame_rate = _frame_rate_from_stream(video)
        metadata.codec_name = codec_name
        metadata.codec_long_name = video.get("codec_long_name")
        metadata.codec = codec_label(codec_name, video.get("profile"))
        metadata.color_space = video.get("color_space")
        metadata.color_range = video.get("color_range")
        metadata.color_primaries = video.get("color_primaries")
        metadata.color_transfer = video.get("color_transfer")
        metadata.pixel_format = video.get("pix_fmt")
        if metadata.duration_seconds is None:
            metadata.duration_seconds = _parse_duration(video.get("duration"))
        if metadata.bitrate is None:
            metadata.bitrate = _parse_bitrate(video.get("bit_rate"))

    if audio_streams:
        metadata.audio_codec = _select_audio_stream(audio_streams).get("codec_name")

    return metadata


def parse_audio_metadata(raw: Dict[str, Any]) -> AudioMetadata:
    """Normalise ffprobe JSON into audio metadata.

    Args:
        raw: The raw ffprobe JSON.

    Returns:
        The audio metadata; fields missing from the probe stay ``None``.
    """
    format_info = raw.get("format") or {}
    audio_streams = [
        stream
        for stream in raw.get("streams") or []
        if _normalise_stream_type(stream.get("codec_type")) == "audio"
    ]
    metadata = AudioMetadata(
        duration_seconds=_parse_duration(format_info.get("duration")),
        bitrate=_parse_bitrate(format_info.get("bit_rate")),
    )
    if not audio_streams:
        return metadata

    audio = _select_audio_stream(audio_streams)
    metadata.sample_rate = _int_or_none(audio.get("sample_rate"))
    metadata.channels = _int_or_none(audio.get("channels"))
    metadata.codec = audio.get("codec_name")
    if metadata.duration_seconds is None:
        metadata.duration_seconds = _parse_duration(audio.get("duration"))
    if metadata.bitrate is None:
        metadata.bitrate = _parse_bitrate(audio.get("bit_rate"))
    return metadata


def codec_label(codec_name: Optional[str], profile: Optional[str] = None) -> Optional[str]:
    """Return the human readable codec label shown to catalog editors."""
    if not codec_name:
        return None
    lowered = codec_name.lower()
    if lowered in _CODEC_LABELS:
        return _CODEC_LABELS[lowered]
    if lowered == "prores":
        profile_lower = (profile or "").lower()
        if "4444" in profile_lower:
            return "Apple ProRes 4444"
        if "hq" in profile_lower:
            return "Apple ProRes HQ"
        return "Apple ProRes 422"
    return codec_name.upper()


def primary_video_codec(raw: Dict[str, Any]) -> Optional[str]:
    streams = [
        stream
        for stream in raw.get("streams") or []
        if _normalise_stream_type(stream.get("codec_type")) == "video"
    ]
    if not streams:
        return None
    return _select_video_stream(streams).get("codec_name")


def _has_timecode(format_tags: Dict[str, str], streams: Iterable[Dict[str, Any]]) -> bool:
    if "timecode" in format_tags:
        return True
    for stream in streams:
        tags = _normalise_tags(stream.get("tags"))
        if any(key in tags for key in _TIMECODE_TAGS):
            return True
        if stream.get("codec_tag_string") == "tmcd":
            return True
    return False


def _stream_rotation(stream: Dict[str, Any]) -> Optional[int]:
    """Clockwise display rotation in degrees (0, 90, 180 or 270), or None when unknown.

    Newer ffprobe builds report a counter-clockwise Display Matrix angle in
    ``side_data_list``; older ones a clockwise ``rotate`` tag.
    """
    for side_data in stream.get("side_data_list") or []:
        if "rotation" in side_data:
            angle = _int_or_none(side_data.get("rotation"))
            if angle is not None:
                return _quarter_turns(-angle)
    angle = _int_or_none(_normalise_tags(stream.get("tags")).get("rotate"))
    if angle is not None:
        return _quarter_turns(angle)
    return None


def _quarter_turns(angle: int) -> int:
    return (int(round(angle / 90)) * 90) % 360


def _normalise_tags(tags: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """Normalise ffprobe tags.

    Args:
        tags: The ffprobe tags.

    Returns:
        The normalised tags, keys lower-cased.
    """
    if not tags:
        return {}
    normalised: Dict[str, str] = {}
    for key, value in tags.items():
        if value is None:
            continue
        if isinstance(value, str):
            normalised[key.lower()] = value
        else:
            normalised[key.lower()] = json.dumps(value) if isinstance(value, (dict, list)) else str(value)
    return normalised


def _parse_duration(raw_value: Any) -> Optional[float]:
    """Parse a duration in seconds, ``None`` when unavailable."""
    if raw_value in (None, "N/A", ""):
        return None
    try:
        value = float(raw_value)
    except (TypeError, ValueError):
        return None
    if math.isnan(value) or value < 0:
        return None
    return value


def _parse_bitrate(raw_value: Any) -> Optional[int]:
    """Parse a bitrate in bits per second."""
    if raw_value in (None, "N/A", ""):
        return None
    try:
        return int(raw_value)
    except (TypeError, ValueError):
        return None


def _normalise_stream_type(value: Any) -> StreamType:
    if not isinstance(value, str):
        return "other"
    value_lower = value.lower()
    if value_lower in {"video", "audio", "data", "subtitle"}:
        return value_lower  # type: ignore[return-value]
    return "other"


def _int_or_none(value: Any) -> Optional[int]:
    if value in (None, "N/A", ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _disposition_default(disposition: Any) -> Optional[bool]:
    if not isinstance(disposition, dict):
        return None
    default_value = disposition.get("default")
    if default_value is None:
        return None
    return bool(default_value)


def _select_video_stream(streams: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Select the video stream to use.

    Cover art is attached as a single-frame video stream, so it is skipped
    whenever a real stream exists.

    Args:
        streams: The video streams.

    Returns:
        The default stream, else the one with the largest frame area.
    """
    real = [
        stream
        for stream in streams
        if not (isinstance(stream.get("disposition"), dict) and stream["disposition"].get("attached_pic"))
    ]
    candidates = real or streams
    default_streams = [stream for stream in candidates if _disposition_default(stream.get("disposition")) is True]
    if default_streams:
        return default_streams[0]

    def score(item: Dict[str, Any]) -> int:
        return (_int_or_none(item.get("width")) or 0) * (_int_or_none(item.get("height")) or 0)

    return max(candidates, key=score)


def _select_audio_stream(streams: List[Dict[str, Any]]) -> Dict[str, Any]:
    default_streams = [stream for stream in streams if _disposition_default(stream.get("disposition")) is True]
    if default_streams:
        return default_streams[0]

    def score(item: Dict[str, Any]) -> tuple[int, int]:
        return _int_or_none(item.get("channels")) or 0, _int_or_none(item.get("sample_rate")) or 0

    return max(streams, key=score)


def _frame_rate_from_stream(stream: Dict[str, Any]) -> Optional[float]:
    for key in ("avg_frame_rate", "r_frame_rate"):
        rate = _parse_rational(stream.get(key))
        if rate is not None:
            return rate
    return None


def _parse_rational(value: Optional[str]) -> Optional[float]:
    """Parse an ffprobe rational such as ``30000/1001``.

    Args:
        value: The rational number as a string.

    Returns:
        The value rounded to two decimals, or None if it's not valid.
    """
    if not value or value in {"0/0", "N/A"}:
        return None
    if "/" not in value:
        # Already a float string.
        try:
            return round(float(value), 2)
        except ValueError:
            return None
    numerator_str, denominator_str = value.split("/", 1)
    try:
        numerator = float(numerator_str)
        denominator = float(denominator_str)
    except ValueError:
        return None
    if math.isclose(denominator, 0.0):
        return None
    return round(numerator / denominator, 2)


__all__ = [
    "codec_label",
    "ffprobe_command",
    "parse_audio_metadata",
    "parse_video_metadata",
    "primary_video_codec",
]
