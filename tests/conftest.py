from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Keep a developer's local `.env` (real API keys, production database) out of
# the test run. The settings module consults this variable for its source.
os.environ.setdefault("DIABETES_ASSISTANT_ENV_FILE", ".env.test")

from diabetes_assistant.config import settings  # noqa: E402
from diabetes_assistant.diabetes.services import db  # noqa: E402
from diabetes_assistant.diabetes.services.storage import InMemoryStorage, SqlStorage  # noqa: E402


@pytest.fixture
def session_local() -> Iterator[sessionmaker[Session]]:
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, class_=Session)
    db.Base.metadata.create_all(bind=engine)
    yield SessionLocal
    engine.dispose()


@pytest.fixture
def sql_storage(session_local: sessionmaker[Session]) -> SqlStorage:
    return SqlStorage(sessionmaker=session_local)


@pytest.fixture
def memory_storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def app_settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[object]:
    """Point the application at in-memory storage and a temporary uploads dir."""

    monkeypatch.setattr(settings, "storage_backend", "memory")
    monkeypatch.setattr(settings, "uploads_dir", str(tmp_path / "uploads"))
    monkeypatch.setattr(settings, "timezone", "UTC")
    monkeypatch.setattr(settings, "openai_api_key", None)
    monkeypatch.setattr(settings, "gemini_api_key", None)
    monkeypatch.setattr(settings, "grok_api_key", None)
    yield settings
