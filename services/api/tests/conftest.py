from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session


@pytest.fixture()
def db_url(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> str:
    url = f"sqlite+pysqlite:///{tmp_path / 'mesa_test.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    monkeypatch.setenv("MESA_DB_AUTO_CREATE", "true")
    monkeypatch.setenv("MESA_PAYMENTS_MODE", "mock")
    monkeypatch.setenv("MESA_MOCK_WEBHOOK_SECRET", "test-secret")
    monkeypatch.delenv("MESA_BUSINESS_TZ", raising=False)
    monkeypatch.delenv("MESA_TX_MAX_ATTEMPTS", raising=False)
    monkeypatch.delenv("PAY_CURRENCY", raising=False)
    return url


@pytest.fixture()
def db(db_url: str) -> Generator[Session, None, None]:
    from services.api.app.db.database import db_session
    from services.api.app.db.init_db import init_db

    init_db()
    session = db_session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(db_url: str) -> Generator[TestClient, None, None]:
    from services.api.app.main import app

    with TestClient(app) as c:
        yield c
