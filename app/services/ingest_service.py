from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings
from app.core.errors import (
    FileTooLargeError,
    IdempotencyConflictError,
    IngestError,
    IngestValidationError,
    SourceNotFoundError,
    StorageError,
)
from app.core.jobs import RetryableJobError, get_job_backend
from app.core.logging import get_logger
from app.core.storage import Storage
from app.db.models import Job, JobStatus
from app.ingest.classifier import classify
from app.ingest.models import DeferredJob, DerivedArtifact, DerivedPayload, IngestRequest, IngestResult
from app.ingest.pipeline import Derivation, derive
from app.ingest.router import decide
from app.schemas import IngestResponse

_ORIGINAL_PREFIX = {"resource": "resources", "thumbnail": "thumbnails"}
_DERIVED_LAYOUT = {
    "preview": ("previews", ""),
    "preview_clip": ("video-previews", "-clip"),
    "thumbnail": ("thumbnails", "-thumb"),
}


def _new_token() -> str:
    return f"{int(time.time() * 1000)}-{uuid4().hex[:12]}"


def _derived_key(payload: DerivedPayload, token: str) -> str:
    prefix, suffix = _DERIVED_LAYOUT[payload.kind]
    if payload.kind == "preview" and payload.content_type.startswith("video/"):
        prefix = "video-previews"
    return f"{prefix}/{token}{suffix}.{payload.extension}"


class IngestService:
    def __init__(self, settings: Settings, storage: Storage, session: AsyncSession | None = None):
        self.settings = settings
        self.storage = storage
        self.session = session
        self.logger = get_logger(component="ingest_service")

    async def ingest_inline(self, request: IngestRequest) -> IngestResult:
        """Small path: derive everything from in-memory bytes and persist before returning."""
        if request.data is None:
            raise IngestValidationError("No file was uploaded.", error_code="missing_file")
        size = len(request.data)
        if decide(size, self.settings.large_asset_threshold_bytes) == "direct":
            raise FileTooLargeError(size, self.settings.large_asset_threshold_bytes)
        return await self.run_pipeline(request, request.data)

    async def run_pipeline(self, request: IngestRequest, data: bytes) -> IngestResult:
        if not data:
            raise IngestValidationError("The uploaded file is empty.", error_code="empty_file")
        derivation = await derive(request, data, self.settings)
        return await self._persist(request, data, derivation)

    async def _persist(self, request: IngestRequest, source: bytes, derivation: Derivation) -> IngestResult:
        token = _new_token()
        original = derivation.original

        # A directly uploaded source that came through unchanged keeps its key.
        if request.storage_key and original.data is source:
            original_key = request.storage_key
            original_url = await asyncio.to_thread(self.storage.public_url, original_key)
        else:
            original_key = f"{_ORIGINAL_PREFIX[request.kind]}/{token}.{original.extension}"
            original_url = await asyncio.to_thread(
                self.storage.write_bytes, original_key, original.data, content_type=original.content_type
            )
        original_artifact = DerivedArtifact(
            kind="original",
            storage_key=original_key,
            content_type=original.content_type,
            byte_size=len(original.data),
            url=original_url,
        )

        pending = [payload for payload in derivation.payloads if not payload.same_as_original]
        keys = [_derived_key(payload, token) for payload in pending]
        outcomes = await asyncio.gather(
            *(
                asyncio.to_thread(self.storage.write_bytes, key, payload.data, content_type=payload.content_type)
                for key, payload in zip(keys, pending)
            ),
            return_exceptions=True,
        )
        failures = [outcome for outcome in outcomes if isinstance(outcome, BaseException)]
        if failures:
            written_keys = [key for key, outcome in zip(keys, outcomes) if not isinstance(outcome, BaseException)]
            if original_key != request.storage_key:
                written_keys.append(original_key)
            await self._discard(written_keys)
            raise failures[0]
        urls = outcomes
        written = {
            id(payload): DerivedArtifact(
                kind=payload.kind,
                storage_key=key,
                content_type=payload.content_type,
                byte_size=len(payload.data),
                url=url,
            )
            for payload, key, url in zip(pending, keys, urls)
        }

        artifacts = [original_artifact]
        for payload in derivation.payloads:
            if payload.same_as_original:
                artifacts.append(
                    DerivedArtifact(
                        kind=payload.kind,
                        storage_key=original_key,
                        content_type=original.content_type,
                        byte_size=original_artifact.byte_size,
                        url=original_url,
                    )
                )
            else:
                artifacts.append(written[id(payload)])

        self.logger.info(
            "ingest_persisted",
            key=original_key,
            category=derivation.asset.category,
            artifacts=[artifact.kind for artifact in artifacts],
            warnings=len(derivation.warnings),
        )
        return IngestResult(
            asset=derivation.asset,
            artifacts=artifacts,
            metadata=derivation.metadata,
            ai_generated=derivation.ai_generated,
            warnings=list(derivation.warnings),
            was_converted=derivation.was_converted,
        )

    async def _discard(self, keys: list[str]) -> None:
        """Remove objects written by an ingest that failed before it could report them."""
        for key in keys:
            try:
                await asyncio.to_thread(self.storage.delete, key)
            except StorageError as exc:
                self.logger.warning("orphan_cleanup_failed", key=key, error=exc.message)
        self.logger.info("ingest_rolled_back", keys=keys)

    async def init_upload(
        self,
        *,
        filename: str,
        content_type: str | None,
        size_bytes: int,
        kind: str = "resource",
    ) -> dict[str, Any]:
        threshold = self.settings.large_asset_threshold_bytes
        strategy = decide(size_bytes, threshold)
        if strategy == "inline":
            return {"strategy": strategy, "threshold": threshold}

        asset = classify(filename, content_type)
        key = f"{_ORIGINAL_PREFIX.get(kind, 'resources')}/{_new_token()}.{asset.extension}"
        presigned = await asyncio.to_thread(
            self.storage.presign_put,
            key,
            content_type=asset.content_type,
            expires_s=self.settings.presign_expires_s,
        )
        public_url = await asyncio.to_thread(self.storage.public_url, key)
        self.logger.info("direct_upload_issued", key=key, size_bytes=size_bytes, threshold=threshold)
        return {
            "strategy": strategy,
            "threshold": threshold,
            "key": key,
            "url": public_url,
            "upload": {
                "url": presigned.url,
                "method": presigned.method,
                "headers": presigned.headers or {},
                "expires_in": presigned.expires_in or self.settings.presign_expires_s,
            },
        }

    async def commit_upload(self, deferred: DeferredJob, *, idempotency_key: str | None) -> Job:
        """Confirm a direct upload and queue its derivation."""
        exists = await asyncio.to_thread(self.storage.exists, deferred.storage_key)
        if not exists:
            raise SourceNotFoundError("The uploaded file could not be found.", details=deferred.storage_key)

        job = await self._upsert_job(deferred.to_payload(), idempotency_key)
        if job.status == JobStatus.queued and job.retry_count == 0 and job.started_at is None:
            backend = get_job_backend()
            await backend.enqueue(job.job_id)
            await self._session.refresh(job)
        return job

    @property
    def _session(self) -> AsyncSession:
        if self.session is None:
            raise RuntimeError("IngestService was created without a database session")
        return self.session

    async def _upsert_job(self, payload: dict[str, Any], idempotency_key: str | None) -> Job:
        if idempotency_key:
            stmt = select(Job).where(Job.idempotency_key == idempotency_key)
            result = await self._session.execute(stmt)
            existing = result.scalar_one_or_none()
            if existing:
                if existing.payload != payload:
                    raise IdempotencyConflictError("Idempotency-Key was already used for a different upload.")
                return existing

        job = Job(
            job_id=uuid4().hex,
            status=JobStatus.queued,
            payload=payload,
            idempotency_key=idempotency_key,
        )
        self._session.add(job)
        await self._session.commit()
        await self._session.refresh(job)
        return job

    async def get_job(self, job_id: str) -> Job | None:
        return await self._session.get(Job, job_id)

    async def update_job_status(
        self,
        job_id: str,
        *,
        status: JobStatus,
        result: dict[str, Any] | None = None,
        error: dict[str, Any] | None = None,
    ) -> Job:
        job = await self._session.get(Job, job_id)
        if not job:
            raise LookupError(job_id)
        job.status = status
        job.result = result
        job.error = error
        if status == JobStatus.running:
            job.started_at = datetime.now(timezone.utc)
        if status in {JobStatus.succeeded, JobStatus.failed}:
            job.finished_at = datetime.now(timezone.utc)
        await self._session.commit()
        await self._session.refresh(job)
        return job


async def process_deferred_job(job_id: str, session: AsyncSession, settings: Settings, storage: Storage) -> None:
    """Run the inline pipeline for a directly uploaded asset.

    A job that already succeeded is never run again. A failed attempt raises
    RetryableJobError while retries remain and marks the job failed otherwise.
    """
    logger = get_logger(job_id=job_id, job_type="derive")
    job = await session.get(Job, job_id)
    if not job:
        logger.error("job_not_found")
        return
    if job.status in {JobStatus.succeeded, JobStatus.failed}:
        logger.info("job_already_finished", status=job.status.value)
        return

    service = IngestService(settings, storage, session)
    await service.update_job_status(job_id, status=JobStatus.running)
    deferred = DeferredJob.from_payload(job.payload or {})

    try:
        data = await asyncio.to_thread(storage.read_bytes, deferred.storage_key)
        request = IngestRequest(
            filename=deferred.filename,
            content_type=deferred.content_type,
            storage_key=deferred.storage_key,
            kind=deferred.kind,
            no_watermark=deferred.no_watermark,
        )
        result = await service.run_pipeline(request, data)
    except Exception as exc:
        error: dict[str, Any] = {"message": str(exc)}
        if isinstance(exc, IngestError):
            error = exc.to_payload()
        job.retry_count += 1
        retryable = not isinstance(exc, (SourceNotFoundError, IngestValidationError))
        if retryable and job.retry_count <= settings.job_max_retries:
            logger.warning("deferred_job_attempt_failed", attempt=job.retry_count, error=error)
            await service.update_job_status(job_id, status=JobStatus.queued, error=error)
            raise RetryableJobError(str(exc)) from exc
        logger.exception("deferred_job_failed")
        await service.update_job_status(job_id, status=JobStatus.failed, error=error)
        return

    payload = IngestResponse.from_result(result).model_dump(by_alias=True, exclude_none=True)
    await service.update_job_status(job_id, status=JobStatus.succeeded, result=payload)
    logger.info("deferred_job_succeeded", key=payload["key"], warnings=len(result.warnings))


__all__ = ["IngestService", "process_deferred_job"]
