from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from .config import Settings
from .errors import SourceNotFoundError, StorageError, TransportError


@dataclass(slots=True)
class StorageStat:
    size_bytes: int | None
    etag: str | None = None
    content_type: str | None = None


@dataclass(slots=True)
class PresignedURL:
    url: str
    method: str = "PUT"
    headers: dict[str, str] | None = None
    expires_in: int | None = None


class Storage(ABC):
    """Object store addressed by opaque keys. Implementations hold no per-request state."""

    @abstractmethod
    def exists(self, key: str) -> bool: ...

    @abstractmethod
    def stat(self, key: str) -> StorageStat: ...

    @abstractmethod
    def read_bytes(self, key: str) -> bytes: ...

    @abstractmethod
    def write_bytes(self, key: str, payload: bytes, *, content_type: str | None = None) -> str: ...

    @abstractmethod
    def delete(self, key: str) -> None: ...

    @abstractmethod
    def presign_put(self, key: str, *, content_type: str | None, expires_s: int = 3600) -> PresignedURL: ...

    @abstractmethod
    def public_url(self, key: str) -> str: ...


class LocalStorage(Storage):
    """Filesystem-backed storage abstraction suitable for development."""

    def __init__(self, base_path: Path, *, public_base_url: str | None = None):
        self.base_path = base_path.resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None

    def _resolve(self, key: str) -> Path:
        path = (self.base_path / key.lstrip("/")).resolve()
        if path != self.base_path and self.base_path not in path.parents:
            raise StorageError("Storage key escapes the storage root.", error_code="invalid_key", status_code=400, details=key)
        return path

    def exists(self, key: str) -> bool:
        return self._resolve(key).is_file()

    def stat(self, key: str) -> StorageStat:
        path = self._resolve(key)
        if not path.is_file():
            raise SourceNotFoundError("The uploaded file could not be found.", details=key)
        return StorageStat(size_bytes=path.stat().st_size)

    def read_bytes(self, key: str) -> bytes:
        path = self._resolve(key)
        try:
            return path.read_bytes()
        except FileNotFoundError as exc:
            raise SourceNotFoundError("The uploaded file could not be found.", details=key) from exc
        except OSError as exc:
            raise StorageError("Failed to read from storage.", details=str(exc)) from exc

    def write_bytes(self, key: str, payload: bytes, *, content_type: str | None = None) -> str:
        path = self._resolve(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(payload)
        except OSError as exc:
            raise StorageError("Failed to write to storage.", details=str(exc)) from exc
        return self.public_url(key)

    def delete(self, key: str) -> None:
        self._resolve(key).unlink(missing_ok=True)

    def presign_put(self, key: str, *, content_type: str | None, expires_s: int = 3600) -> PresignedURL:
        target = self._resolve(key)
        target.parent.mkdir(parents=True, exist_ok=True)
        return PresignedURL(
            url=target.as_uri(),
            method="PUT",
            headers={"Content-Type": content_type or "application/octet-stream"},
            expires_in=expires_s,
        )

    def public_url(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{key.lstrip('/')}"
        return self._resolve(key).as_uri()


class S3Storage(Storage):
    """S3 storage backend; botocore failures are translated into the ingest error taxonomy."""

    def __init__(self, settings: Settings, client: Any | None = None):
        if not settings.s3_bucket:
            raise ValueError("S3 storage backend requires INGEST_S3_BUCKET.")
        self.bucket = settings.s3_bucket
        self.region = settings.s3_region
        self.public_base_url = settings.public_base_url.rstrip("/") if settings.public_base_url else None
        self.client = client or boto3.client(
            "s3",
            region_name=settings.s3_region,
            endpoint_url=settings.s3_endpoint_url,
            aws_access_key_id=settings.secrets.aws_access_key_id,
            aws_secret_access_key=settings.secrets.aws_secret_access_key,
            config=BotoConfig(
                signature_version="s3v4",
                connect_timeout=settings.s3_connect_timeout_s,
                read_timeout=settings.s3_read_timeout_s,
                retries={"max_attempts": settings.s3_max_attempts, "mode": "standard"},
            ),
        )

    def _translate(self, exc: Exception, key: str, action: str) -> StorageError:
        if isinstance(exc, (ReadTimeoutError, ConnectTimeoutError)):
            return TransportError.timeout(details=str(exc))
        if isinstance(exc, (ConnectionClosedError, EndpointConnectionError)):
            return TransportError.reset(details=str(exc))
        if isinstance(exc, ClientError):
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in {"404", "NoSuchKey", "NotFound"}:
                return SourceNotFoundError("The uploaded file could not be found.", details=key)
        return StorageError(f"Failed to {action} storage.", details=str(exc))

    def exists(self, key: str) -> bool:
        try:
            self.stat(key)
        except SourceNotFoundError:
            return False
        return True

    def stat(self, key: str) -> StorageStat:
        try:
            head = self.client.head_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise self._translate(exc, key, "read from") from exc
        return StorageStat(
            size_bytes=head.get("ContentLength"),
            etag=(head.get("ETag") or "").strip('"') or None,
            content_type=head.get("ContentType"),
        )

    def read_bytes(self, key: str) -> bytes:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].read()
        except (BotoCoreError, ClientError) as exc:
            raise self._translate(exc, key, "read from") from exc

    def write_bytes(self, key: str, payload: bytes, *, content_type: str | None = None) -> str:
        extra: dict[str, str] = {}
        if content_type:
            extra["ContentType"] = content_type
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=payload, **extra)
        except (BotoCoreError, ClientError) as exc:
            raise self._translate(exc, key, "write to") from exc
        return self.public_url(key)

    def delete(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise self._translate(exc, key, "delete from") from exc

    def presign_put(self, key: str, *, content_type: str | None, expires_s: int = 3600) -> PresignedURL:
        params: dict[str, str] = {"Bucket": self.bucket, "Key": key}
        headers: dict[str, str] = {}
        if content_type:
            params["ContentType"] = content_type
            headers["Content-Type"] = content_type
        try:
            url = self.client.generate_presigned_url("put_object", Params=params, ExpiresIn=expires_s)
        except (BotoCoreError, ClientError) as exc:
            raise self._translate(exc, key, "sign for") from exc
        return PresignedURL(url=url, method="PUT", headers=headers or None, expires_in=expires_s)

    def public_url(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"


def get_storage(settings: Settings) -> Storage:
    if settings.storage_backend == "local":
        return LocalStorage(base_path=Path(settings.local_storage_base_path), public_base_url=settings.public_base_url)
    if settings.storage_backend == "s3":
        return S3Storage(settings)
    raise ValueError(f"Unsupported storage backend: {settings.storage_backend}")


__all__ = [
    "Storage",
    "LocalStorage",
    "S3Storage",
    "StorageStat",
    "PresignedURL",
    "get_storage",
]
