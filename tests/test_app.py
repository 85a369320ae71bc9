from __future__ import annotations

from datetime import datetime

from fastapi.testclient import TestClient

from app.main import create_app
from datastore.readings import build_default_store
from services.errors import PersistenceFailed, StoreQueryFailed
from services.ingestion import IngestionService, build_default_ingestion
from settings import get_settings


def test_lifespan_shuts_down_service_and_clears_cache(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'lifespan.db'}")
    get_settings.cache_clear()
    build_default_store.cache_clear()
    build_default_ingestion.cache_clear()
    app = create_app()

    try:
        with TestClient(app):
            service_during = build_default_ingestion()
            assert service_during.executor._shutdown is False

        assert service_during.executor._shutdown is True
        service_after = build_default_ingestion()
        try:
            assert service_after is not service_during
        finally:
            service_after.shutdown()
    finally:
        build_default_ingestion.cache_clear()
        build_default_store.cache_clear()
        get_settings.cache_clear()


def test_post_partial_reading_fills_missing_fields_with_zero(api_client: TestClient) -> None:
    response = api_client.post("/data", json={"heartRate": 72})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "success"
    assert body["persisted"] is True
    assert isinstance(body["id"], int)
    assert body["error"] is None
    data = body["data"]
    assert data["heartRate"] == 72
    assert data["temperature"] == 0
    assert data["sugarLevel"] == 0
    assert datetime.fromisoformat(data["timestamp"].replace("Z", "+00:00")).tzinfo is not None

    latest = api_client.get("/data")
    assert latest.status_code == 200
    assert latest.json() == data


def test_post_ignores_producer_supplied_timestamp(api_client: TestClient) -> None:
    response = api_client.post(
        "/data", json={"heartRate": 80, "timestamp": "1999-01-01T00:00:00Z"}
    )

    assert response.status_code == 200
    assert not response.json()["data"]["timestamp"].startswith("1999")


def test_post_coerces_non_numeric_values(api_client: TestClient) -> None:
    response = api_client.post(
        "/data",
        json={"heartRate": "fast", "temperature": None, "sugarLevel": "5.5"},
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["heartRate"] == 0
    assert data["temperature"] == 0
    assert data["sugarLevel"] == 5.5


def test_post_empty_body_stores_zero_reading(api_client: TestClient) -> None:
    response = api_client.post("/data")

    assert response.status_code == 200
    data = response.json()["data"]
    assert (data["heartRate"], data["temperature"], data["sugarLevel"]) == (0, 0, 0)


def test_post_non_object_payload_is_rejected(api_client: TestClient) -> None:
    before = api_client.get("/data").json()

    response = api_client.post("/data", json=[1, 2, 3])

    assert response.status_code == 400
    body = response.json()
    assert body["status"] == "error"
    assert "JSON object" in body["error"]
    assert api_client.get("/data").json() == before


def test_post_invalid_json_is_rejected(api_client: TestClient) -> None:
    response = api_client.post(
        "/data",
        content=b"{heartRate: 72",
        headers={"content-type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json()["status"] == "error"


def test_post_out_of_range_integer_is_coerced_to_zero(api_client: TestClient) -> None:
    response = api_client.post(
        "/data",
        content=b'{"heartRate": ' + b"9" * 400 + b', "temperature": 36.6}',
        headers={"content-type": "application/json"},
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["heartRate"] == 0
    assert data["temperature"] == 36.6


def test_post_deeply_nested_body_is_rejected(api_client: TestClient) -> None:
    before = api_client.get("/data").json()

    response = api_client.post(
        "/data",
        content=b'{"x": ' + b"[" * 100_000 + b"]" * 100_000 + b"}",
        headers={"content-type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json()["status"] == "error"
    assert api_client.get("/data").json() == before


def test_persistence_failure_still_updates_latest(
    api_client: TestClient, service: IngestionService, monkeypatch
) -> None:
    def fail_append(_reading):
        raise PersistenceFailed("database is down")

    monkeypatch.setattr(service.store, "append", fail_append)

    response = api_client.post("/data", json={"heartRate": 90, "temperature": 37.2})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "success"
    assert body["persisted"] is False
    assert body["id"] is None
    assert "database is down" in body["error"]
    assert api_client.get("/data").json() == body["data"]


def test_get_latest_before_any_ingestion_returns_zero_reading(api_client: TestClient) -> None:
    response = api_client.get("/data")

    assert response.status_code == 200
    payload = response.json()
    assert payload["heartRate"] == 0
    assert payload["temperature"] == 0
    assert payload["sugarLevel"] == 0
    assert payload["timestamp"]


def test_reports_return_newest_first_and_cap_at_fifty(api_client: TestClient) -> None:
    for value in range(55):
        assert api_client.post("/data", json={"heartRate": value}).status_code == 200

    response = api_client.get("/reports")

    assert response.status_code == 200
    rows = response.json()
    assert len(rows) == 50
    assert rows[0]["heartRate"] == 54
    assert rows[-1]["heartRate"] == 5
    timestamps = [row["timestamp"] for row in rows]
    parsed = [datetime.fromisoformat(ts.replace("Z", "+00:00")) for ts in timestamps]
    assert parsed == sorted(parsed, reverse=True)
    assert {"id", "heartRate", "temperature", "sugarLevel", "timestamp"} <= rows[0].keys()


def test_reports_query_failure_returns_server_error(
    api_client: TestClient, service: IngestionService, monkeypatch
) -> None:
    def fail_recent(_limit):
        raise StoreQueryFailed("connection lost")

    monkeypatch.setattr(service.store, "recent", fail_recent)

    response = api_client.get("/reports")

    assert response.status_code == 500
    assert response.json() == {"status": "error", "error": "connection lost"}


def test_dashboard_renders_latest_and_history(api_client: TestClient) -> None:
    api_client.post("/data", json={"heartRate": 64, "temperature": 36.6, "sugarLevel": 98})

    response = api_client.get("/ui")

    assert response.status_code == 200
    assert "64.0" in response.text
    assert "<table id=\"reports\">" in response.text


def test_health_endpoints(api_client: TestClient) -> None:
    assert api_client.get("/health").json() == {"status": "ok"}
    assert api_client.get("/").json()["status"] == "ok"
