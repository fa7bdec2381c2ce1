from __future__ import annotations

from fastapi import APIRouter

from app.api import deps
from app.ingest.tooling import tool_available

from .schemas import HealthResponse, ToolCheckResponse


router = APIRouter(tags=["system"])


@router.get("/health", response_model=HealthResponse, summary="Liveness probe")
async def health() -> HealthResponse:
    return HealthResponse()


@router.get("/system/tools", response_model=ToolCheckResponse, summary="External tool availability")
async def tools(settings: deps.SettingsDep) -> ToolCheckResponse:
    return ToolCheckResponse(
        ffmpeg=tool_available(settings.ffmpeg_path),
        ffprobe=tool_available(settings.ffprobe_path),
        ghostscript=tool_available(settings.ghostscript_path),
    )


__all__ = ["router"]
