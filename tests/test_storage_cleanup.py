from __future__ import annotations

import os
import time
from datetime import timedelta
from pathlib import Path

import pytest

from boletas.core.storage import StorageError, cleanup_temp_uploads, get_storage, sanitize_filename


def _age(key: str, *, hours: float) -> None:
    path = Path(os.environ["LOCAL_STORAGE_PATH"]).resolve() / key
    old = time.time() - hours * 3600
    os.utime(path, (old, old))


def test_cleanup_removes_only_stale_temp_uploads():
    storage = get_storage()
    storage.put(key="temp/aaa/old.png", body=b"old")
    storage.put(key="temp/bbb/new.png", body=b"new")
    storage.put(key="receipts/ccc/kept.png", body=b"kept")
    _age("temp/aaa/old.png", hours=48)
    _age("receipts/ccc/kept.png", hours=48)

    removed = cleanup_temp_uploads(max_age=timedelta(hours=24))

    assert removed == 1
    assert storage.list_keys(prefix="temp/") == ["temp/bbb/new.png"]
    assert storage.list_keys(prefix="receipts/") == ["receipts/ccc/kept.png"]


def test_cleanup_task_runs_eagerly():
    from boletas.worker.tasks import cleanup_temp_uploads_task

    storage = get_storage()
    storage.put(key="temp/aaa/old.png", body=b"old")
    _age("temp/aaa/old.png", hours=48)

    assert cleanup_temp_uploads_task.delay().get() == 1
    assert storage.list_keys(prefix="temp/") == []


def test_move_and_missing_keys():
    storage = get_storage()
    storage.put(key="temp/x/a.png", body=b"img")
    stored = storage.move(src_key="temp/x/a.png", dst_key="receipts/1/a.png")

    assert stored.byte_size == 3
    assert storage.get(key="receipts/1/a.png") == b"img"
    with pytest.raises(StorageError):
        storage.get(key="temp/x/a.png")


def test_keys_cannot_escape_root():
    with pytest.raises(StorageError):
        get_storage().put(key="../fuera.txt", body=b"x")


def test_sanitize_filename():
    assert sanitize_filename("C:\\fotos\\boleta  marzo.png") == "boleta marzo.png"
    assert sanitize_filename("../../etc/passwd") == "passwd"
    assert sanitize_filename(None) == "upload.bin"


def test_storage_health_endpoint(client):
    body = client.get("/healthz/storage", params={"write_test": True}).json()
    assert body["ok"] is True
    assert body["backend"] == "local"
