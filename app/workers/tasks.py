from __future__ import annotations

import asyncio

from app.core.config import get_settings
from app.core.db import create_engine, create_session_factory
from app.core.logging import configure_logging, level_from_name
from app.core.storage import get_storage
from app.services.ingest_service import process_deferred_job


def run_job(job_id: str) -> None:
    """Derive artifacts for one committed direct upload.

    Called by the RQ worker or, with the immediate backend, from a thread of the
    API process. Raises RetryableJobError when the attempt should be retried.
    """

    settings = get_settings()
    configure_logging(level=level_from_name(settings.log_level))
    storage = get_storage(settings)

    async def _runner() -> None:
        engine = create_engine(settings)
        session_factory = create_session_factory(engine)
        try:
            async with session_factory() as session:
                await process_deferred_job(job_id, session, settings, storage)
        finally:
            await engine.dispose()

    asyncio.run(_runner())


__all__ = ["run_job"]
