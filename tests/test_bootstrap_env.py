from __future__ import annotations

import asyncio
import os
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import create_async_engine

from app.core.config import get_settings
from app.core.db import Base
from app.core.jobs import get_job_backend
from app.main import create_app


pytestmark = pytest.mark.no_default_env


def _write_env(target_dir: Path, *, environment: str, extra: str = "") -> Path:
    target_dir.mkdir(parents=True, exist_ok=True)
    env_text = f"""
INGEST_ENV={environment}
INGEST_LOG_LEVEL=debug
INGEST_STORAGE_BACKEND=local
INGEST_LOCAL_STORAGE_BASE_PATH=storage
INGEST_DB_URL=sqlite+aiosqlite:///./ingest.db
INGEST_JOB_BACKEND=inline
INGEST_JOB_MAX_RETRIES=1
INGEST_REDIS_URL=redis://localhost:6379/0
{extra}
""".strip()
    env_path = target_dir / ".env"
    env_path.write_text(env_text)
    return env_path


async def _initialise_sqlite(database_url: str) -> None:
    engine = create_async_engine(database_url, echo=False, future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()


def _prepare_app(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, *, environment: str, extra: str = "") -> TestClient:
    _write_env(tmp_path, environment=environment, extra=extra)
    for key in list(os.environ.keys()):
        if key.startswith("INGEST_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    asyncio.run(_initialise_sqlite("sqlite+aiosqlite:///./ingest.db"))
    get_settings.cache_clear()
    get_job_backend.cache_clear()
    app = create_app()
    client = TestClient(app)
    client.__enter__()
    return client


@pytest.fixture(autouse=True)
def isolate_environment():
    # load_dotenv writes straight into os.environ
    snapshot = dict(os.environ)
    get_settings.cache_clear()
    yield
    os.environ.clear()
    os.environ.update(snapshot)
    get_settings.cache_clear()


def test_env_boots_without_shell_exports(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    client = _prepare_app(tmp_path, monkeypatch, environment="development")
    try:
        response = client.get("/v1/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

        settings = get_settings()
        assert settings.environment == "development"
        assert settings.normalized_job_backend == "immediate"
        assert (tmp_path / "storage").is_dir()
    finally:
        client.close()


def test_dotenv_threshold_override_reaches_the_api(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    client = _prepare_app(
        tmp_path,
        monkeypatch,
        environment="development",
        extra="INGEST_LARGE_ASSET_THRESHOLD_BYTES=2048",
    )
    try:
        response = client.get("/v1/ingest/limits")
        assert response.json() == {"largeAssetThresholdBytes": 2048}
    finally:
        client.close()


def test_upload_after_dotenv_boot(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    client = _prepare_app(tmp_path, monkeypatch, environment="development")
    try:
        response = client.post(
            "/v1/ingest",
            files={"file": ("notes.txt", b"plain text notes", "text/plain")},
        )
        assert response.status_code == 200, response.text
        body = response.json()
        assert body["category"] == "other"
        assert body["url"].startswith("file://")
        stored = tmp_path / "storage" / body["key"]
        assert stored.read_bytes() == b"plain text notes"
    finally:
        client.close()


def test_production_with_s3_and_no_bucket_refuses_to_boot(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    _write_env(tmp_path, environment="production", extra="INGEST_STORAGE_BACKEND=s3")
    for key in list(os.environ.keys()):
        if key.startswith("INGEST_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    with pytest.raises(ValueError):
        create_app()
