"""WebSocket feed pushing every ingested reading to connected dashboards."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from app.api import get_ingestion
from app.schemas import ReadingSchema
from models.records import Reading
from services.broadcaster import SendCallable, Subscriber, SubscriberRegistry
from services.errors import SubscriberSendFailed
from services.ingestion import IngestionService

logger = logging.getLogger(__name__)

router = APIRouter()


async def _watch_for_disconnect(
    websocket: WebSocket, registry: SubscriberRegistry, subscriber: Subscriber
) -> None:
    # Client messages are not part of the protocol and are discarded.
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                return
    finally:
        registry.remove(subscriber)


async def stream_readings(
    registry: SubscriberRegistry,
    subscriber: Subscriber,
    send: SendCallable,
    snapshot: Reading,
    timeout: float,
) -> None:
    """Greet ``subscriber`` with ``snapshot`` then forward broadcasts until it closes.

    A failed or timed-out send drops the subscriber from ``registry``.
    """
    try:
        await subscriber.greet(send, snapshot, timeout)
        await subscriber.pump(send, timeout)
    except SubscriberSendFailed as exc:
        logger.warning(
            "Dropped subscriber after failed send",
            extra={"subscriber_id": subscriber.id, "reason": str(exc)},
        )
    finally:
        registry.remove(subscriber)


@router.websocket("/ws")
@router.websocket("/")
async def reading_feed(
    websocket: WebSocket,
    service: IngestionService = Depends(get_ingestion),
) -> None:
    await websocket.accept()

    async def send(reading: Reading) -> None:
        payload = ReadingSchema.from_reading(reading).model_dump(mode="json", by_alias=True)
        await websocket.send_json(payload)

    # No await between reading the snapshot and registering, so no
    # broadcast can slip in between the two.
    snapshot = service.latest()
    subscriber = service.registry.add()
    subscriber.open()
    logger.info(
        "Subscriber connected",
        extra={"subscriber_id": subscriber.id, "subscriber_count": len(service.registry)},
    )

    watcher = asyncio.create_task(
        _watch_for_disconnect(websocket, service.registry, subscriber)
    )
    try:
        await stream_readings(
            service.registry, subscriber, send, snapshot, service.send_timeout
        )
    finally:
        watcher.cancel()
        try:
            with suppress(asyncio.CancelledError):
                await watcher
        except Exception as exc:
            logger.debug("Disconnect watcher ended with %r", exc)
        if (
            websocket.client_state is WebSocketState.CONNECTED
            and websocket.application_state is WebSocketState.CONNECTED
        ):
            try:
                await websocket.close()
            except (RuntimeError, OSError, WebSocketDisconnect) as exc:
                logger.debug("Close after failed send did not complete: %r", exc)
        logger.info(
            "Subscriber disconnected",
            extra={"subscriber_id": subscriber.id, "subscriber_count": len(service.registry)},
        )
