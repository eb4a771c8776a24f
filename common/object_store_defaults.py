"""Default object store implementations and the settings-driven factory."""

from __future__ import annotations

import logging
import os
import re
import threading
import time
from pathlib import Path
from typing import Callable

from common.object_store import (
    ObjectNotFound,
    ObjectStore,
    set_default_object_store_factory,
)

BASE_PATH = Path(".vault_store")

LOGGER = logging.getLogger(__name__)


__all__ = [
    "BASE_PATH",
    "FilesystemObjectStore",
    "InMemoryObjectStore",
    "S3ObjectStore",
    "build_object_store",
    "reset_default_object_store",
    "sanitize_identifier",
]


_SEGMENT_PATTERN = re.compile(r"[^A-Za-z0-9._-]")


def sanitize_identifier(value: str) -> str:
    """Return a filesystem safe path segment for bucket and key parts."""

    value = str(value)
    if ".." in value or os.sep in value:
        raise ValueError("unsafe_identifier")

    sanitized = _SEGMENT_PATTERN.sub("_", value)[:128]
    if not sanitized:
        LOGGER.warning("object_store.unsafe_identifier", extra={"value": value})
        raise ValueError("unsafe_identifier")
    return sanitized


class FilesystemObjectStore:
    """Filesystem-backed object store: ``<base>/<bucket>/<key segments>``."""

    def __init__(self, base_path_supplier: Callable[[], Path] | None = None) -> None:
        self._base_path_supplier = base_path_supplier or (lambda: BASE_PATH)

    @property
    def BASE_PATH(self) -> Path:  # noqa: N802 - match public contract
        return self._base_path_supplier()

    def _path(self, bucket: str, key: str) -> Path:
        segments = [sanitize_identifier(part) for part in key.split("/") if part]
        if not segments:
            raise ValueError("empty_key")
        return self.BASE_PATH.joinpath(sanitize_identifier(bucket), *segments)

    def put_object(self, bucket: str, key: str, data: bytes) -> None:
        start = time.perf_counter()
        target = self._path(bucket, key)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        LOGGER.info(
            "object_store.put_object",
            extra={
                "bucket": bucket,
                "key": key,
                "size_bytes": len(data),
                "duration_ms": (time.perf_counter() - start) * 1000.0,
            },
        )

    def get_object(self, bucket: str, key: str) -> bytes:
        target = self._path(bucket, key)
        try:
            return target.read_bytes()
        except FileNotFoundError as exc:
            raise ObjectNotFound(bucket, key) from exc

    def delete_object(self, bucket: str, key: str) -> None:
        target = self._path(bucket, key)
        target.unlink(missing_ok=True)
        LOGGER.info(
            "object_store.delete_object", extra={"bucket": bucket, "key": key}
        )


class InMemoryObjectStore:
    """Process-local object store used for tests and local development."""

    def __init__(self) -> None:
        self._objects: dict[tuple[str, str], bytes] = {}
        self._lock = threading.Lock()

    def put_object(self, bucket: str, key: str, data: bytes) -> None:
        with self._lock:
            self._objects[(bucket, key)] = bytes(data)

    def get_object(self, bucket: str, key: str) -> bytes:
        with self._lock:
            try:
                return self._objects[(bucket, key)]
            except KeyError as exc:
                raise ObjectNotFound(bucket, key) from exc

    def delete_object(self, bucket: str, key: str) -> None:
        with self._lock:
            self._objects.pop((bucket, key), None)

    def keys(self, bucket: str | None = None) -> list[str]:
        with self._lock:
            return sorted(
                key for (stored_bucket, key) in self._objects
                if bucket is None or stored_bucket == bucket
            )

    def clear(self) -> None:
        with self._lock:
            self._objects.clear()


class S3ObjectStore:
    """Object store using an S3-compatible backend."""

    def __init__(
        self,
        *,
        endpoint_url: str | None = None,
        region_name: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
    ) -> None:
        self._endpoint_url = endpoint_url
        self._region_name = region_name
        self._access_key_id = access_key_id
        self._secret_access_key = secret_access_key
        self._client = None

    def _client_factory(self):  # pragma: no cover - exercised in integration
        import boto3

        return boto3.client(
            "s3",
            endpoint_url=self._endpoint_url,
            region_name=self._region_name,
            aws_access_key_id=self._access_key_id,
            aws_secret_access_key=self._secret_access_key,
        )

    @property
    def _s3(self):  # pragma: no cover - exercised in integration
        if self._client is None:
            self._client = self._client_factory()
        return self._client

    def put_object(self, bucket: str, key: str, data: bytes) -> None:  # pragma: no cover - network
        self._s3.put_object(Bucket=bucket, Key=key, Body=data)

    def get_object(self, bucket: str, key: str) -> bytes:  # pragma: no cover - network
        from botocore.exceptions import ClientError

        try:
            response = self._s3.get_object(Bucket=bucket, Key=key)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                raise ObjectNotFound(bucket, key) from exc
            raise
        body = response.get("Body")
        if body is None:
            raise ValueError("s3_empty_body")
        payload = body.read()
        if not isinstance(payload, (bytes, bytearray)):
            raise TypeError("s3_body_invalid")
        return bytes(payload)

    def delete_object(self, bucket: str, key: str) -> None:  # pragma: no cover - network
        self._s3.delete_object(Bucket=bucket, Key=key)


def build_object_store() -> ObjectStore:
    """Instantiate the backend selected by ``settings.OBJECT_STORE_BACKEND``."""

    from django.conf import settings  # imported lazily

    backend = getattr(settings, "OBJECT_STORE_BACKEND", "filesystem")
    if backend == "memory":
        return InMemoryObjectStore()
    if backend == "s3":
        return S3ObjectStore(
            endpoint_url=getattr(settings, "S3_ENDPOINT_URL", None),
            region_name=getattr(settings, "S3_REGION_NAME", None),
            access_key_id=getattr(settings, "S3_ACCESS_KEY_ID", None),
            secret_access_key=getattr(settings, "S3_SECRET_ACCESS_KEY", None),
        )
    if backend == "filesystem":
        base_path = Path(getattr(settings, "OBJECT_STORE_BASE_PATH", BASE_PATH))
        return FilesystemObjectStore(lambda: base_path)
    raise ValueError(f"unknown object store backend: {backend}")


_DEFAULT_OBJECT_STORE: ObjectStore | None = None
_DEFAULT_LOCK = threading.Lock()


def _default_factory() -> ObjectStore:
    global _DEFAULT_OBJECT_STORE

    with _DEFAULT_LOCK:
        if _DEFAULT_OBJECT_STORE is None:
            _DEFAULT_OBJECT_STORE = build_object_store()
        return _DEFAULT_OBJECT_STORE


def reset_default_object_store() -> None:
    """Drop the cached default store so the next lookup rebuilds it."""

    global _DEFAULT_OBJECT_STORE

    with _DEFAULT_LOCK:
        _DEFAULT_OBJECT_STORE = None


set_default_object_store_factory(_default_factory)
