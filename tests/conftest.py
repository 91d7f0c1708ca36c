from __future__ import annotations

import os
import shutil
from pathlib import Path

import pytest

# Set env before any boletas imports (settings/engine are created at import time).
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///./.boletas_test.db")
os.environ.setdefault("STORAGE_BACKEND", "local")
os.environ.setdefault("LOCAL_STORAGE_PATH", ".tmp_storage_test")
os.environ.setdefault("OCR_PROVIDER", "none")

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


@pytest.fixture(autouse=True)
def _reset_db_and_storage() -> None:
    import boletas.models  # noqa: F401
    from boletas.core.db import engine
    from boletas.core.models import Base

    # Reset storage cache and directory
    import boletas.core.storage as storage_mod

    storage_mod._storage = None

    storage_path = Path(os.environ["LOCAL_STORAGE_PATH"])
    if storage_path.exists():
        shutil.rmtree(storage_path)

    # Reset DB schema
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)

    yield


@pytest.fixture()
def make_user():
    from boletas.core.db import SessionLocal
    from boletas.modules.identity.models import UserRole
    from boletas.modules.identity.service import create_user

    def _make(email: str = "user@example.com", role: UserRole = UserRole.USER):
        with SessionLocal() as session:
            user = create_user(
                session, email=email, password="password", role=role, full_name=email.split("@")[0]
            )
            return user.id

    return _make


@pytest.fixture()
def auth_headers():
    from boletas.core.security import create_access_token

    def _headers(user_id) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(subject=str(user_id))}"}

    return _headers


@pytest.fixture()
def client():
    from fastapi.testclient import TestClient

    from boletas.main import create_app

    app = create_app()
    with TestClient(app) as c:
        c.app_ref = app
        yield c
