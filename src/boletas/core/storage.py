from __future__ import annotations

import os
import time
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from boletas.core.config import settings
from boletas.core.logging import get_logger, log_event, log_exception, monotonic_ms

logger = get_logger(__name__)

TEMP_PREFIX = "temp/"
RECEIPTS_PREFIX = "receipts/"
DOCUMENTS_PREFIX = "documents/"


class StorageError(RuntimeError):
    pass


@dataclass(frozen=True)
class StoredObject:
    key: str
    byte_size: int


class ObjectStorage:
    backend = "abstract"

    def put(self, *, key: str, body: bytes) -> StoredObject:  # pragma: no cover
        raise NotImplementedError

    def get(self, *, key: str) -> bytes:  # pragma: no cover
        raise NotImplementedError

    def delete(self, *, key: str) -> None:  # pragma: no cover
        raise NotImplementedError

    def list_keys(self, *, prefix: str) -> list[str]:  # pragma: no cover
        raise NotImplementedError

    def list_older_than(self, *, prefix: str, max_age: timedelta) -> list[str]:  # pragma: no cover
        raise NotImplementedError

    def move(self, *, src_key: str, dst_key: str) -> StoredObject:
        body = self.get(key=src_key)
        stored = self.put(key=dst_key, body=body)
        self.delete(key=src_key)
        return stored


class LocalObjectStorage(ObjectStorage):
    backend = "local"

    def __init__(self, root: Path):
        self._root = root
        self._root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        path = (self._root / key).resolve()
        if not path.is_relative_to(self._root.resolve()):
            raise StorageError(f"Key escapes storage root: {key}")
        return path

    def put(self, *, key: str, body: bytes) -> StoredObject:
        start = time.monotonic()
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(body)
        except OSError:
            log_exception(
                logger, "storage.put.failure", backend=self.backend, storage_key=key
            )
            raise
        log_event(
            logger,
            "storage.put.success",
            backend=self.backend,
            storage_key=key,
            byte_size=len(body),
            duration_ms=monotonic_ms(start),
        )
        return StoredObject(key=key, byte_size=len(body))

    def get(self, *, key: str) -> bytes:
        path = self._path(key)
        if not path.exists():
            log_event(logger, "storage.get.failure", backend=self.backend, storage_key=key)
            raise StorageError(f"Object not found: {key}")
        return path.read_bytes()

    def delete(self, *, key: str) -> None:
        path = self._path(key)
        if path.exists():
            try:
                path.unlink()
            except OSError:
                log_exception(
                    logger, "storage.delete.failure", backend=self.backend, storage_key=key
                )
                raise

    def list_keys(self, *, prefix: str) -> list[str]:
        base = self._path(prefix)
        if not base.exists():
            return []
        root = self._root.resolve()
        return sorted(p.relative_to(root).as_posix() for p in base.rglob("*") if p.is_file())

    def list_older_than(self, *, prefix: str, max_age: timedelta) -> list[str]:
        base = self._path(prefix)
        if not base.exists():
            return []
        cutoff = time.time() - max_age.total_seconds()
        keys: list[str] = []
        for path in base.rglob("*"):
            if path.is_file() and path.stat().st_mtime < cutoff:
                keys.append(path.relative_to(self._root.resolve()).as_posix())
        return sorted(keys)


class S3ObjectStorage(ObjectStorage):
    backend = "s3"

    def __init__(self) -> None:
        self._client = _s3_client(addressing_style="virtual", max_attempts=3)
        self._bucket = settings.s3_bucket
        self._ensure_bucket()

    def _ensure_bucket(self) -> None:
        try:
            self._client.head_bucket(Bucket=self._bucket)
        except ClientError:
            self._client.create_bucket(Bucket=self._bucket)

    def put(self, *, key: str, body: bytes) -> StoredObject:
        start = time.monotonic()
        try:
            self._client.put_object(Bucket=self._bucket, Key=key, Body=body)
        except (BotoCoreError, ClientError) as e:
            log_exception(
                logger,
                "storage.put.failure",
                backend=self.backend,
                storage_key=key,
                byte_size=len(body),
            )
            raise StorageError(f"Could not store object: {key}") from e
        log_event(
            logger,
            "storage.put.success",
            backend=self.backend,
            storage_key=key,
            byte_size=len(body),
            duration_ms=monotonic_ms(start),
        )
        return StoredObject(key=key, byte_size=len(body))

    def get(self, *, key: str) -> bytes:
        try:
            resp = self._client.get_object(Bucket=self._bucket, Key=key)
            return resp["Body"].read()
        except (BotoCoreError, ClientError) as e:
            log_exception(logger, "storage.get.failure", backend=self.backend, storage_key=key)
            raise StorageError(f"Object not found: {key}") from e

    def delete(self, *, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self._bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            log_exception(logger, "storage.delete.failure", backend=self.backend, storage_key=key)
            raise StorageError(f"Could not delete object: {key}") from e

    def list_keys(self, *, prefix: str) -> list[str]:
        keys: list[str] = []
        paginator = self._client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self._bucket, Prefix=prefix):
            keys.extend(obj["Key"] for obj in page.get("Contents") or [])
        return sorted(keys)

    def list_older_than(self, *, prefix: str, max_age: timedelta) -> list[str]:
        cutoff = datetime.now(UTC) - max_age
        keys: list[str] = []
        paginator = self._client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self._bucket, Prefix=prefix):
            for obj in page.get("Contents") or []:
                if obj["LastModified"] < cutoff:
                    keys.append(obj["Key"])
        return sorted(keys)


def _s3_client(*, addressing_style: str, max_attempts: int):
    region = settings.s3_region
    if not region or region.lower() == "auto":
        region = "us-east-1"
    session = boto3.session.Session(
        aws_access_key_id=settings.s3_access_key_id,
        aws_secret_access_key=settings.s3_secret_access_key,
        region_name=region,
    )
    config = Config(
        s3={"addressing_style": addressing_style},
        retries={"max_attempts": max_attempts, "mode": "adaptive"},
        connect_timeout=10,
        read_timeout=30,
    )
    return session.client("s3", endpoint_url=settings.s3_endpoint_url or None, config=config)


def _local_root() -> Path:
    root = settings.local_storage_path
    if not root.is_absolute():
        root = Path(os.getcwd()) / root
    return root


_storage: ObjectStorage | None = None


def get_storage() -> ObjectStorage:
    global _storage  # noqa: PLW0603
    if _storage is not None:
        return _storage

    if settings.storage_backend == "s3":
        _storage = S3ObjectStorage()
    else:
        _storage = LocalObjectStorage(_local_root())
    return _storage


def cleanup_temp_uploads(*, max_age: timedelta | None = None) -> int:
    """Delete analyzed uploads that were never saved as a receipt."""
    age = max_age or timedelta(hours=settings.temp_upload_max_age_hours)
    storage = get_storage()
    removed = 0
    for key in storage.list_older_than(prefix=TEMP_PREFIX, max_age=age):
        storage.delete(key=key)
        removed += 1
    log_event(logger, "storage.temp_cleanup", backend=storage.backend, removed=removed)
    return removed


def diagnose_storage(*, write_test: bool = False) -> dict[str, Any]:
    """
    Connectivity check for the configured backend. Never returns credentials.

    With write_test=True a small object is written, read back and deleted.
    """
    result: dict[str, Any] = {"ok": True, "backend": settings.storage_backend}
    if settings.storage_backend == "local":
        result["root"] = str(_local_root())
    else:
        result["bucket"] = settings.s3_bucket
        if not settings.s3_access_key_id or not settings.s3_secret_access_key:
            return {"ok": False, "backend": "s3", "error": "missing_s3_credentials"}

    start = time.monotonic()
    try:
        storage = get_storage()
        if write_test:
            key = f"diagnostics/healthz-{time.time_ns()}.txt"
            storage.put(key=key, body=b"ok")
            result["write_test"] = {"ok": storage.get(key=key) == b"ok", "key": key}
            storage.delete(key=key)
            result["ok"] = result["write_test"]["ok"]
    except (StorageError, OSError, BotoCoreError, ClientError) as e:
        result["ok"] = False
        result["error_type"] = type(e).__name__
        result["error"] = str(e)
    result["duration_ms"] = monotonic_ms(start)
    return result


def sanitize_filename(name: str | None, *, default: str = "upload.bin") -> str:
    # Strip any path components and normalize whitespace.
    name = (name or "").replace("\\", "/").split("/")[-1].strip()
    return " ".join(name.split()) or default
