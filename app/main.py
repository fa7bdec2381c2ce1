from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.v1 import get_api_router
from app.core.config import get_settings
from app.core.db import create_engine, create_schema, create_session_factory
from app.core.errors import FileTooLargeError, IngestError
from app.core.logging import configure_logging, get_logger, level_from_name
from app.core.storage import get_storage

logger = get_logger(component="api")

_INLINE_INGEST_PATH = "/v1/ingest"


def _error_response(exc: IngestError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(level=level_from_name(settings.log_level))
    storage = get_storage(settings)
    engine = create_engine(settings)
    session_factory = create_session_factory(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.settings = settings
        app.state.storage = storage
        app.state.engine = engine
        app.state.session_factory = session_factory
        if settings.database_auto_create:
            await create_schema(engine)
        try:
            yield
        finally:
            await engine.dispose()

    app = FastAPI(
        title=settings.app_name,
        version=settings.version,
        lifespan=lifespan,
        openapi_url="/openapi.json",
        docs_url="/docs",
    )

    @app.middleware("http")
    async def reject_oversized_inline_uploads(request: Request, call_next):
        # Oversized bodies are refused before multipart parsing buffers them.
        if request.method == "POST" and request.url.path.rstrip("/") == _INLINE_INGEST_PATH:
            declared = request.headers.get("content-length")
            if declared and declared.isdigit() and int(declared) > settings.large_asset_threshold_bytes:
                exc = FileTooLargeError(int(declared), settings.large_asset_threshold_bytes)
                logger.info("inline_upload_rejected", content_length=int(declared), threshold=exc.threshold)
                return _error_response(exc)
        return await call_next(request)

    @app.exception_handler(IngestError)
    async def handle_ingest_error(request: Request, exc: IngestError) -> JSONResponse:
        log = logger.bind(path=request.url.path, error_code=exc.error_code, status_code=exc.status_code)
        if exc.status_code >= 500:
            log.error("request_failed", error=exc.message, details=exc.details)
        else:
            log.info("request_rejected", error=exc.message)
        return _error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        fields = ", ".join(".".join(str(part) for part in error.get("loc", ())) for error in exc.errors())
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request.", "details": fields or None, "errorCode": "validation_error"},
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        detail = exc.detail if isinstance(exc.detail, str) else "request_failed"
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": detail, "errorCode": detail},
            headers=getattr(exc, "headers", None),
        )

    app.include_router(get_api_router())
    return app


app = create_app()


__all__ = ["app", "create_app"]
