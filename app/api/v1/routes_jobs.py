from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from app.api import deps

from . import schemas


router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.get("/{job_id}", response_model=schemas.JobResponse, response_model_exclude_none=True)
async def get_job(job_id: str, service: deps.IngestServiceDep) -> schemas.JobResponse:
    job = await service.get_job(job_id)
    if not job:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="job_not_found")

    return schemas.JobResponse(
        job_id=job.job_id,
        status=job.status.value,
        retry_count=job.retry_count,
        started_at=job.started_at,
        finished_at=job.finished_at,
        result=job.result or None,
        error=schemas.JobResponse.error_from_record(job.error),
    )


__all__ = ["router"]
