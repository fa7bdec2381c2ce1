import asyncio
import io
import shutil
import subprocess
from pathlib import Path
from urllib.parse import unquote, urlparse

import pytest
from fastapi.testclient import TestClient
from PIL import Image, PngImagePlugin

from app.core.config import get_settings
from app.core.db import Base, create_engine
from app.core.jobs import get_job_backend
from app.main import create_app

PUBLIC_BASE_URL = "https://cdn.test/assets"


def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "no_default_env: disable the default ingest environment bootstrap fixture for tests that manage their own .env",
    )


@pytest.fixture(autouse=True)
def configure_environment(request, monkeypatch, tmp_path):
    if request.node.get_closest_marker("no_default_env"):
        get_settings.cache_clear()
        get_job_backend.cache_clear()
        yield
        get_job_backend.cache_clear()
        get_settings.cache_clear()
        return
    db_path = tmp_path / "ingest_test.db"
    storage_root = tmp_path / "storage"

    monkeypatch.setenv("INGEST_ENV", "test")
    monkeypatch.setenv("INGEST_LOG_LEVEL", "debug")
    monkeypatch.setenv("INGEST_DB_URL", f"sqlite+aiosqlite:///{db_path}")
    monkeypatch.setenv("INGEST_STORAGE_BACKEND", "local")
    monkeypatch.setenv("INGEST_LOCAL_STORAGE_BASE_PATH", str(storage_root))
    monkeypatch.setenv("INGEST_PUBLIC_BASE_URL", PUBLIC_BASE_URL)
    monkeypatch.setenv("INGEST_JOB_BACKEND", "inline")
    monkeypatch.setenv("INGEST_JOB_MAX_RETRIES", "1")
    monkeypatch.setenv("INGEST_REDIS_URL", "redis://localhost:6379/0")

    get_settings.cache_clear()
    get_job_backend.cache_clear()
    settings = get_settings()
    engine = create_engine(settings)

    async def _setup() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(_setup())

    yield

    async def _teardown() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        await engine.dispose()

    asyncio.run(_teardown())
    get_job_backend.cache_clear()
    get_settings.cache_clear()


@pytest.fixture()
def settings(configure_environment):
    return get_settings()


@pytest.fixture()
def client(configure_environment):
    app = create_app()
    with TestClient(app) as client:
        yield client


def make_image(fmt: str = "JPEG", *, size=(640, 480), mode: str = "RGB", color=(40, 90, 160), text_chunks=None) -> bytes:
    """Encode a solid-colour image; ``text_chunks`` become PNG tEXt entries."""
    image = Image.new(mode, size, color)
    buffer = io.BytesIO()
    if fmt == "PNG" and text_chunks:
        info = PngImagePlugin.PngInfo()
        for key, value in text_chunks.items():
            info.add_text(key, value)
        image.save(buffer, format=fmt, pnginfo=info)
    else:
        image.save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture()
def image_factory():
    return make_image


@pytest.fixture()
def jpeg_bytes() -> bytes:
    return make_image("JPEG")


@pytest.fixture()
def alpha_png_bytes() -> bytes:
    return make_image("PNG", size=(300, 200), mode="RGBA", color=(200, 30, 30, 128))


@pytest.fixture(scope="session")
def generated_video_file(tmp_path_factory) -> Path:
    """
    Generates a small, valid H.264 MP4 in a temporary directory; skipped without ffmpeg.
    """
    if shutil.which("ffmpeg") is None or shutil.which("ffprobe") is None:
        pytest.skip("ffmpeg/ffprobe not installed")
    video_path = tmp_path_factory.mktemp("data") / "test_video.mp4"

    # 2-second 30fps colour bars with a sine tone
    command = [
        "ffmpeg",
        "-f", "lavfi",
        "-i", "testsrc=size=320x180:rate=30",
        "-f", "lavfi",
        "-i", "sine=frequency=440:sample_rate=44100",
        "-t", "2",
        "-c:v", "libx264",
        "-pix_fmt", "yuv420p",
        "-c:a", "aac",
        "-shortest",
        str(video_path),
    ]
    subprocess.run(command, check=True, capture_output=True)
    return video_path


def uri_to_path(uri: str) -> Path:
    parsed = urlparse(uri)
    if parsed.scheme != "file":
        raise ValueError("Unsupported URI in tests")
    return Path(unquote(parsed.path))
