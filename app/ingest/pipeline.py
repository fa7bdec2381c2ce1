"""Category-specific derivation: classify, probe, then fan out sub-tasks.

Nothing here touches storage. The service persists the returned payloads.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import List

from app.core.config import Settings
from app.core.errors import IngestError
from app.core.logging import get_logger

from .ai_detector import detect_ai_origin
from .audio import render_audio_preview
from .classifier import classify
from .design import render_design_thumbnail
from .ffprobe_parser import parse_video_metadata
from .models import (
    AccompanyingThumbnail,
    AssetMetadata,
    AudioMetadata,
    ClassifiedAsset,
    DerivedPayload,
    IngestRequest,
    VideoMetadata,
)
from .orchestrator import SubTask, failure_warning, run_subtasks
from .probe import ffprobe_json, probe_audio, probe_image, probe_video
from .thumbnails import render_video_thumbnail
from .tooling import ToolWorkspace, tool_available
from .video import convert_to_mp4, needs_conversion, render_preview_clip, render_watermarked_preview
from .watermark import WatermarkStyle, apply_watermark

logger = get_logger(component="pipeline")


@dataclass(slots=True)
class Derivation:
    asset: ClassifiedAsset
    original: DerivedPayload
    payloads: List[DerivedPayload] = field(default_factory=list)
    metadata: AssetMetadata = None
    ai_generated: bool = False
    warnings: List[str] = field(default_factory=list)
    was_converted: bool = False


def _watermark_task(
    name: str,
    data: bytes,
    style: WatermarkStyle,
    settings: Settings,
    *,
    max_dimension: int | None,
) -> SubTask:
    return SubTask(
        name,
        partial(
            asyncio.to_thread,
            apply_watermark,
            data,
            style,
            max_dimension=max_dimension,
            quality=settings.preview_quality,
            kind=name,
        ),
    )


def _accompanying_thumbnail_tasks(
    thumbnail: AccompanyingThumbnail,
    style: WatermarkStyle,
    settings: Settings,
    *,
    include_preview: bool = True,
) -> List[SubTask]:
    tasks = []
    if include_preview:
        tasks.append(_watermark_task("preview", thumbnail.data, style, settings, max_dimension=settings.preview_max_dimension))
    tasks.append(_watermark_task("thumbnail", thumbnail.data, style, settings, max_dimension=settings.thumbnail_max_dimension))
    return tasks


async def derive(request: IngestRequest, data: bytes, settings: Settings) -> Derivation:
    asset = classify(request.filename, request.content_type)
    style = WatermarkStyle.from_settings(settings)
    derivation = Derivation(
        asset=asset,
        original=DerivedPayload(kind="original", data=data, content_type=asset.content_type, extension=asset.extension),
    )
    log = logger.bind(category=asset.category, extension=asset.extension, upload_kind=request.kind)

    if asset.category in ("image", "png"):
        await _derive_image(request, derivation, data, settings, style)
    elif asset.category == "video":
        # Only resource uploads are transcoded; a video sent as a thumbnail is stored as is.
        if request.kind == "resource":
            await _derive_video(request, derivation, data, settings, style)
    elif asset.category == "audio":
        await _derive_audio(request, derivation, data, settings, style)
    elif asset.category == "design":
        await _derive_design(request, derivation, data, settings, style)
    elif request.thumbnail is not None:
        outcome = await run_subtasks(_accompanying_thumbnail_tasks(request.thumbnail, style, settings))
        derivation.payloads.extend(outcome.values.values())
        derivation.warnings.extend(outcome.warnings)

    log.info(
        "derivation_finished",
        artifacts=[payload.kind for payload in derivation.payloads],
        warnings=derivation.warnings,
        was_converted=derivation.was_converted,
    )
    return derivation


async def _derive_image(
    request: IngestRequest,
    derivation: Derivation,
    data: bytes,
    settings: Settings,
    style: WatermarkStyle,
) -> None:
    derivation.metadata = await asyncio.to_thread(probe_image, data)

    if request.kind == "thumbnail":
        # The stored bytes of a thumbnail upload are the watermarked rendition.
        try:
            watermarked = await asyncio.to_thread(
                apply_watermark,
                data,
                style,
                max_dimension=settings.thumbnail_max_dimension,
                quality=settings.preview_quality,
                kind="original",
            )
        except Exception as exc:  # noqa: BLE001 - fall back to the untouched upload
            logger.warning("thumbnail_watermark_failed", error=str(exc))
            derivation.warnings.append(failure_warning("watermark", exc))
        else:
            derivation.original = watermarked
        return

    derivation.ai_generated = await asyncio.to_thread(detect_ai_origin, data)
    outcome = await run_subtasks(
        [
            _watermark_task("preview", data, style, settings, max_dimension=settings.preview_max_dimension),
            _watermark_task("thumbnail", data, style, settings, max_dimension=settings.thumbnail_max_dimension),
        ]
    )
    derivation.payloads.extend(outcome.values.values())
    derivation.warnings.extend(outcome.warnings)


async def _derive_video(
    request: IngestRequest,
    derivation: Derivation,
    data: bytes,
    settings: Settings,
    style: WatermarkStyle,
) -> None:
    derivation.metadata = VideoMetadata()
    if not tool_available(settings.ffmpeg_path, settings.ffprobe_path):
        logger.warning("video_tools_unavailable", ffmpeg=settings.ffmpeg_path, ffprobe=settings.ffprobe_path)
        derivation.warnings.append("video_tools_unavailable: original stored without preview or thumbnail")
        return

    with ToolWorkspace(prefix="ingest-video-") as workspace:
        source = workspace.write(f"source.{derivation.asset.extension or 'bin'}", data)
        metadata, raw = await probe_video(source, settings)
        derivation.metadata = metadata

        if needs_conversion(derivation.asset.extension, raw):
            try:
                converted = await convert_to_mp4(source, workspace, settings)
            except (IngestError, OSError) as exc:
                logger.warning("video_conversion_failed", error=str(exc))
                derivation.warnings.append(failure_warning("video_conversion", exc))
                return
            source = workspace.file("converted.mp4")
            derivation.original = DerivedPayload(kind="original", data=converted, content_type="video/mp4", extension="mp4")
            derivation.was_converted = True

        tasks: List[SubTask] = []
        if derivation.was_converted:
            tasks.append(SubTask("metadata", partial(ffprobe_json, source, settings)))
        if request.no_watermark:
            derivation.payloads.append(
                DerivedPayload(
                    kind="preview",
                    data=derivation.original.data,
                    content_type=derivation.original.content_type,
                    extension=derivation.original.extension,
                    same_as_original=True,
                )
            )
        else:
            tasks.append(SubTask("preview", partial(render_watermarked_preview, source, workspace, metadata, settings, style)))
        tasks.append(
            SubTask(
                "preview_clip",
                partial(render_preview_clip, source, workspace, metadata, settings, style, watermark=not request.no_watermark),
            )
        )
        tasks.append(SubTask("thumbnail", partial(render_video_thumbnail, source, workspace, settings)))

        outcome = await run_subtasks(tasks)

    raw_converted = outcome.values.pop("metadata", None)
    if raw_converted is not None:
        derivation.metadata = parse_video_metadata(raw_converted)
    derivation.payloads.extend(outcome.values.values())
    derivation.warnings.extend(outcome.warnings)


async def _derive_audio(
    request: IngestRequest,
    derivation: Derivation,
    data: bytes,
    settings: Settings,
    style: WatermarkStyle,
) -> None:
    derivation.metadata = AudioMetadata()
    cover_tasks = (
        _accompanying_thumbnail_tasks(request.thumbnail, style, settings, include_preview=False)
        if request.thumbnail is not None
        else []
    )

    if not tool_available(settings.ffprobe_path):
        logger.warning("audio_tools_unavailable", ffprobe=settings.ffprobe_path)
        derivation.warnings.append("audio_tools_unavailable: metadata not extracted")
        outcome = await run_subtasks(cover_tasks)
        derivation.payloads.extend(outcome.values.values())
        derivation.warnings.extend(outcome.warnings)
        return

    with ToolWorkspace(prefix="ingest-audio-") as workspace:
        source = workspace.write(f"source.{derivation.asset.extension or 'bin'}", data)
        tasks = [SubTask("metadata", partial(probe_audio, source, settings))]
        watermark = settings.audio_watermark_path
        if watermark is not None and Path(watermark).is_file() and tool_available(settings.ffmpeg_path):
            tasks.append(SubTask("preview", partial(render_audio_preview, source, workspace, Path(watermark), settings)))
        outcome = await run_subtasks(tasks + cover_tasks)

    metadata = outcome.values.pop("metadata", None)
    if metadata is not None:
        derivation.metadata = metadata
    derivation.payloads.extend(outcome.values.values())
    derivation.warnings.extend(outcome.warnings)


async def _derive_design(
    request: IngestRequest,
    derivation: Derivation,
    data: bytes,
    settings: Settings,
    style: WatermarkStyle,
) -> None:
    if request.thumbnail is not None:
        outcome = await run_subtasks(_accompanying_thumbnail_tasks(request.thumbnail, style, settings))
        derivation.payloads.extend(outcome.values.values())
        derivation.warnings.extend(outcome.warnings)
        return

    rendered = await run_subtasks(
        [SubTask("thumbnail", partial(render_design_thumbnail, data, derivation.asset.extension, settings))]
    )
    derivation.warnings.extend(rendered.warnings)
    raster = rendered.get("thumbnail")
    if raster is None:
        return

    watermarked = await run_subtasks(
        [_watermark_task("preview", raster.data, style, settings, max_dimension=settings.preview_max_dimension)]
    )
    derivation.payloads.extend(watermarked.values.values())
    derivation.payloads.append(raster)
    derivation.warnings.extend(watermarked.warnings)


__all__ = ["Derivation", "derive"]
