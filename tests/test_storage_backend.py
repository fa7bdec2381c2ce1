from __future__ import annotations

import pytest
from botocore.exceptions import ConnectionClosedError, ReadTimeoutError
from botocore.stub import Stubber

from app.core.config import get_settings
from app.core.errors import SourceNotFoundError, StorageError, TransportError
from app.core.storage import LocalStorage, S3Storage, get_storage


@pytest.fixture()
def s3_settings(monkeypatch):
    monkeypatch.setenv("INGEST_STORAGE_BACKEND", "s3")
    monkeypatch.setenv("INGEST_S3_BUCKET", "test-bucket")
    monkeypatch.setenv("INGEST_S3_REGION", "eu-west-1")
    monkeypatch.setenv("INGEST_AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("INGEST_AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.delenv("INGEST_PUBLIC_BASE_URL", raising=False)
    get_settings.cache_clear()
    return get_settings()


class _FailingClient:
    def __init__(self, exc: Exception):
        self.exc = exc

    def put_object(self, **kwargs):
        raise self.exc

    def get_object(self, **kwargs):
        raise self.exc


def test_default_backend_is_local(settings):
    storage = get_storage(settings)
    assert isinstance(storage, LocalStorage)


def test_local_round_trip_and_public_url(settings):
    storage = get_storage(settings)
    url = storage.write_bytes("previews/a.webp", b"payload", content_type="image/webp")

    assert url == "https://cdn.test/assets/previews/a.webp"
    assert storage.exists("previews/a.webp")
    assert storage.read_bytes("previews/a.webp") == b"payload"
    assert storage.stat("previews/a.webp").size_bytes == 7

    storage.delete("previews/a.webp")
    assert not storage.exists("previews/a.webp")


def test_local_missing_key_is_source_not_found(settings):
    storage = get_storage(settings)
    with pytest.raises(SourceNotFoundError) as excinfo:
        storage.read_bytes("resources/missing.mov")
    assert excinfo.value.status_code == 404
    assert excinfo.value.error_code == "file_not_found"


def test_local_rejects_keys_outside_the_root(settings):
    storage = get_storage(settings)
    with pytest.raises(StorageError) as excinfo:
        storage.write_bytes("../escape.txt", b"x")
    assert excinfo.value.error_code == "invalid_key"


def test_local_presign_points_at_the_target_file(settings):
    presigned = get_storage(settings).presign_put("resources/big.mov", content_type="video/quicktime", expires_s=60)
    assert presigned.method == "PUT"
    assert presigned.url.startswith("file://")
    assert presigned.url.endswith("resources/big.mov")
    assert presigned.headers == {"Content-Type": "video/quicktime"}
    assert presigned.expires_in == 60


def test_selecting_s3_returns_s3_storage(s3_settings):
    storage = get_storage(s3_settings)
    assert isinstance(storage, S3Storage)
    assert storage.public_url("resources/a.mov") == "https://test-bucket.s3.eu-west-1.amazonaws.com/resources/a.mov"


def test_s3_presign_is_generated_offline(s3_settings):
    storage = S3Storage(s3_settings)
    presigned = storage.presign_put("resources/a.mov", content_type="video/quicktime", expires_s=900)

    assert "resources/a.mov" in presigned.url
    assert "X-Amz-Signature=" in presigned.url
    assert "X-Amz-Expires=900" in presigned.url
    assert presigned.headers == {"Content-Type": "video/quicktime"}


def test_s3_missing_object_maps_to_source_not_found(s3_settings):
    storage = S3Storage(s3_settings)
    with Stubber(storage.client) as stubber:
        stubber.add_client_error("head_object", service_error_code="404", http_status_code=404)
        stubber.add_client_error("get_object", service_error_code="NoSuchKey", http_status_code=404)

        assert storage.exists("resources/missing.mov") is False
        with pytest.raises(SourceNotFoundError):
            storage.read_bytes("resources/missing.mov")


def test_s3_other_client_errors_are_storage_errors(s3_settings):
    storage = S3Storage(s3_settings)
    with Stubber(storage.client) as stubber:
        stubber.add_client_error("put_object", service_error_code="AccessDenied", http_status_code=403)
        with pytest.raises(StorageError) as excinfo:
            storage.write_bytes("previews/a.webp", b"x", content_type="image/webp")
    assert excinfo.value.status_code == 502
    assert not isinstance(excinfo.value, SourceNotFoundError)


def test_s3_transport_failures_have_distinct_messages(s3_settings):
    timeout = S3Storage(s3_settings, client=_FailingClient(ReadTimeoutError(endpoint_url="https://s3")))
    with pytest.raises(TransportError) as timed_out:
        timeout.write_bytes("previews/a.webp", b"x")
    assert timed_out.value.error_code == "storage_timeout"
    assert timed_out.value.status_code == 504
    assert "timed out" in timed_out.value.message

    reset = S3Storage(s3_settings, client=_FailingClient(ConnectionClosedError(endpoint_url="https://s3")))
    with pytest.raises(TransportError) as was_reset:
        reset.read_bytes("resources/a.mov")
    assert was_reset.value.error_code == "connection_reset"
    assert "reset" in was_reset.value.message


def test_production_s3_requires_bucket(monkeypatch):
    monkeypatch.setenv("INGEST_ENV", "production")
    monkeypatch.setenv("INGEST_STORAGE_BACKEND", "s3")
    monkeypatch.delenv("INGEST_S3_BUCKET", raising=False)
    get_settings.cache_clear()
    with pytest.raises(ValueError):
        get_settings()
