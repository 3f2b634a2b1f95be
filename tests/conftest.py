from __future__ import annotations

from collections.abc import Callable, Generator
from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from constructrs.auth.security import create_access_token, get_password_hash
from constructrs.config import Settings
from constructrs.db import Database
from constructrs.main import create_app
from constructrs.models.models import User, new_object_id
from constructrs.reports.lifecycle import ReportLifecycle
from constructrs.reports.pdf_renderer import PdfRenderer
from constructrs.storage.artifacts import ArtifactStore


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        DATABASE_URL=f"sqlite:///{tmp_path / 'constructrs_test.db'}",
        AUTO_CREATE_DB=False,
        JWT_SECRET="constructrs-test-secret-0123456789abcdef",
        REPORTS_DIR=str(tmp_path / "generated-reports"),
        DELETED_REPORTS_DIR=str(tmp_path / "deleted-reports"),
        ARTIFACT_SEARCH_ROOTS=[str(tmp_path / "alt-root")],
        RATE_LIMIT="10000/minute",
        METRICS_ENABLED=False,
    )


@pytest.fixture()
def database(settings: Settings) -> Generator[Database, None, None]:
    database = Database(settings.database_url)
    database.create_all()
    yield database
    database.close()


@pytest.fixture()
def app(settings: Settings, database: Database) -> FastAPI:
    return create_app(settings=settings, database=database)


@pytest.fixture()
def client(app: FastAPI) -> Generator[TestClient, None, None]:
    client = TestClient(app)
    yield client
    client.close()


@pytest.fixture()
def session(database: Database) -> Generator[Session, None, None]:
    session = database.session()
    yield session
    session.close()


@pytest.fixture()
def store(settings: Settings) -> ArtifactStore:
    return ArtifactStore.from_settings(settings)


@pytest.fixture()
def renderer(settings: Settings, store: ArtifactStore) -> PdfRenderer:
    return PdfRenderer.from_settings(settings, store)


@pytest.fixture()
def lifecycle(session: Session, renderer: PdfRenderer, store: ArtifactStore) -> ReportLifecycle:
    return ReportLifecycle(session, renderer, store)


@pytest.fixture()
def make_user(database: Database, settings: Settings) -> Callable[..., tuple[str, str]]:
    """Insert a user directly and return ``(user_id, bearer_token)``."""

    def _make(
        role: str = "employee",
        name: str = "Test User",
        email: str | None = None,
        password: str = "secret123",
        permissions: list[str] | None = None,
    ) -> tuple[str, str]:
        session = database.session()
        try:
            user = User(
                name=name,
                email=email or f"{role}-{new_object_id()}@example.com",
                password_hash=get_password_hash(password),
                job_name="Field Inspector",
                role=role,
                permissions=permissions or [],
            )
            session.add(user)
            session.commit()
            session.refresh(user)
            return user.id, create_access_token(user, settings)
        finally:
            session.close()

    return _make

