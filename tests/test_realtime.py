from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient

from app.realtime import stream_readings
from models.records import Reading
from services.broadcaster import SubscriberState
from services.errors import PersistenceFailed
from services.ingestion import IngestionService


def test_new_subscriber_is_greeted_with_latest_reading(api_client: TestClient) -> None:
    api_client.post("/data", json={"heartRate": 65, "sugarLevel": 101})
    latest = api_client.get("/data").json()

    with api_client.websocket_connect("/ws") as websocket:
        greeting = websocket.receive_json()

    assert greeting == latest


def test_subscriber_receives_each_ingested_reading_in_order(api_client: TestClient) -> None:
    with api_client.websocket_connect("/ws") as websocket:
        websocket.receive_json()

        first = api_client.post("/data", json={"heartRate": 72}).json()["data"]
        second = api_client.post("/data", json={"heartRate": 73}).json()["data"]

        assert websocket.receive_json() == first
        assert websocket.receive_json() == second
        assert first["temperature"] == 0
        assert first["sugarLevel"] == 0
        assert api_client.get("/data").json() == second


def test_every_open_subscriber_gets_the_broadcast(api_client: TestClient) -> None:
    with api_client.websocket_connect("/ws") as first_socket:
        with api_client.websocket_connect("/") as second_socket:
            first_socket.receive_json()
            second_socket.receive_json()

            reading = api_client.post("/data", json={"temperature": 36.9}).json()["data"]

            assert first_socket.receive_json() == reading
            assert second_socket.receive_json() == reading


def test_disconnect_removes_subscriber(
    api_client: TestClient, service: IngestionService
) -> None:
    with api_client.websocket_connect("/ws") as websocket:
        websocket.receive_json()
        assert len(service.registry) == 1

    assert len(service.registry) == 0
    response = api_client.post("/data", json={"heartRate": 70})
    assert response.status_code == 200


def test_broadcast_survives_persistence_failure(
    api_client: TestClient, service: IngestionService, monkeypatch
) -> None:
    def fail_append(_reading):
        raise PersistenceFailed("disk full")

    monkeypatch.setattr(service.store, "append", fail_append)

    with api_client.websocket_connect("/ws") as websocket:
        websocket.receive_json()
        body = api_client.post("/data", json={"heartRate": 88}).json()

        assert body["persisted"] is False
        assert websocket.receive_json() == body["data"]


@pytest.mark.parametrize("failure", ["raises", "stalls"])
def test_failed_send_drops_only_that_subscriber(
    service: IngestionService, failure: str
) -> None:
    survivor_seen: list[Reading] = []
    failing_seen: list[Reading] = []

    async def survivor_send(reading: Reading) -> None:
        survivor_seen.append(reading)

    async def failing_send(reading: Reading) -> None:
        failing_seen.append(reading)
        if len(failing_seen) == 1:
            return
        if failure == "raises":
            raise ConnectionResetError("peer went away")
        await asyncio.sleep(5)

    async def wait_for_survivor(count: int) -> None:
        while len(survivor_seen) < count:
            await asyncio.sleep(0.01)

    async def scenario():
        registry = service.registry
        snapshot = service.latest()
        survivor = registry.add()
        survivor.open()
        failing = registry.add()
        failing.open()
        survivor_task = asyncio.create_task(
            stream_readings(registry, survivor, survivor_send, snapshot, 0.05)
        )
        failing_task = asyncio.create_task(
            stream_readings(registry, failing, failing_send, snapshot, 0.05)
        )

        first = await service.ingest({"heartRate": 60})
        await asyncio.wait_for(failing_task, 1.0)
        dropped = (len(registry), failing.state)

        second = await service.ingest({"heartRate": 61})
        await asyncio.wait_for(wait_for_survivor(3), 1.0)

        registry.remove(survivor)
        await asyncio.wait_for(survivor_task, 1.0)
        return snapshot, first, second, dropped

    snapshot, first, second, dropped = asyncio.run(scenario())

    assert dropped == (1, SubscriberState.closed)
    assert survivor_seen == [snapshot, first.reading, second.reading]
    assert failing_seen == [snapshot, first.reading]
    assert len(service.registry) == 0
