from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile, status

from app.api import deps
from app.core.errors import FileTooLargeError, IngestValidationError
from app.ingest.models import AccompanyingThumbnail, DeferredJob, IngestRequest
from app.schemas import IngestResponse

from . import schemas


router = APIRouter(prefix="/ingest", tags=["ingest"])

_UPLOAD_KINDS = ("resource", "thumbnail")


@router.get("/limits", response_model=schemas.LimitsResponse)
async def limits(settings: deps.SettingsDep) -> schemas.LimitsResponse:
    return schemas.LimitsResponse(large_asset_threshold_bytes=settings.large_asset_threshold_bytes)


@router.post("", response_model=IngestResponse, response_model_exclude_none=True)
async def ingest(
    service: deps.IngestServiceDep,
    file: Optional[UploadFile] = File(default=None),
    upload_type: str = Form(default="resource", alias="type"),
    no_watermark: bool = Form(default=False, alias="noWatermark"),
    thumbnail: Optional[UploadFile] = File(default=None),
) -> IngestResponse:
    """Small-asset path: store the original and every derivative before responding."""
    if file is None or not file.filename:
        raise IngestValidationError("No file was uploaded.", error_code="missing_file")
    if upload_type not in _UPLOAD_KINDS:
        raise IngestValidationError(
            f"Unsupported upload type {upload_type!r}.",
            error_code="invalid_type",
            details="type must be 'resource' or 'thumbnail'",
        )

    threshold = service.settings.large_asset_threshold_bytes
    if file.size is not None and file.size > threshold:
        raise FileTooLargeError(file.size, threshold)

    data = await file.read()
    await file.close()

    accompanying = None
    if thumbnail is not None and thumbnail.filename:
        accompanying = AccompanyingThumbnail(
            data=await thumbnail.read(),
            filename=thumbnail.filename,
            content_type=thumbnail.content_type,
        )
        await thumbnail.close()

    result = await service.ingest_inline(
        IngestRequest(
            filename=file.filename,
            content_type=file.content_type,
            data=data,
            kind=upload_type,
            no_watermark=no_watermark,
            thumbnail=accompanying,
        )
    )
    return IngestResponse.from_result(result)


@router.post("/init", response_model=schemas.IngestInitResponse, response_model_exclude_none=True)
async def init_ingest(
    payload: schemas.IngestInitRequest,
    service: deps.IngestServiceDep,
) -> schemas.IngestInitResponse:
    result = await service.init_upload(
        filename=payload.filename,
        content_type=payload.content_type,
        size_bytes=payload.size,
        kind=payload.type,
    )
    return schemas.IngestInitResponse(**result)


@router.post(
    "/commit",
    response_model=schemas.IngestCommitResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def commit_ingest(
    payload: schemas.IngestCommitRequest,
    response: Response,
    service: deps.IngestServiceDep,
    idempotency_key: Optional[str] = Depends(deps.get_idempotency_key),
) -> schemas.IngestCommitResponse:
    """Large-asset path: the client already wrote the bytes to storage."""
    job = await service.commit_upload(
        DeferredJob(
            storage_key=payload.key,
            filename=payload.filename,
            content_type=payload.content_type,
            kind=payload.type,
            no_watermark=payload.no_watermark,
        ),
        idempotency_key=idempotency_key,
    )
    location = f"/v1/jobs/{job.job_id}"
    response.headers["Location"] = location
    return schemas.IngestCommitResponse(
        job_id=job.job_id,
        location=location,
        key=payload.key,
        url=service.storage.public_url(payload.key),
    )


__all__ = ["router"]
