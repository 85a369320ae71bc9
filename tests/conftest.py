from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from datastore.readings import ReadingStore, build_engine
from services.ingestion import IngestionService
from settings import get_settings


def make_store(path: Path) -> ReadingStore:
    settings = replace(get_settings(), database_url=f"sqlite:///{path}")
    store = ReadingStore(engine=build_engine(settings))
    store.create_schema()
    return store


@pytest.fixture
def store(tmp_path) -> Iterator[ReadingStore]:
    reading_store = make_store(tmp_path / "readings.db")
    yield reading_store
    reading_store.dispose()


@pytest.fixture
def service(store: ReadingStore) -> Iterator[IngestionService]:
    ingestion = IngestionService(store=store, workers=1, send_timeout=1.0)
    yield ingestion
    ingestion.shutdown()


@pytest.fixture
def api_client(service: IngestionService, monkeypatch) -> Iterator[TestClient]:
    def build_test_ingestion(workers: int | None = None) -> IngestionService:
        return service

    build_test_ingestion.cache_clear = lambda: None  # type: ignore[attr-defined]

    monkeypatch.setattr("app.main.build_default_ingestion", build_test_ingestion)
    monkeypatch.setattr("app.api.build_default_ingestion", build_test_ingestion)

    app = create_app()
    with TestClient(app) as client:
        yield client
