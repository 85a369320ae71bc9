"""Ingestion pipeline: coerce, publish, persist and fan out readings."""

from __future__ import annotations

import asyncio
import json
import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Mapping, Optional, Union

from app.schemas import ReportRow
from datastore.readings import ReadingStore, build_default_store
from models.records import Reading
from services.broadcaster import Broadcaster, SubscriberRegistry
from services.errors import MalformedPayload, PersistenceFailed
from services.latest import LatestStateHolder
from settings import REPORTS_LIMIT, get_settings

logger = logging.getLogger(__name__)

RawPayload = Union[bytes, str, Mapping[str, Any], None]


@dataclass(frozen=True)
class IngestResult:
    """Outcome of one ingestion; the reading is live even when not persisted."""

    reading: Reading
    reading_id: Optional[int] = None
    error: Optional[PersistenceFailed] = None

    @property
    def persisted(self) -> bool:
        return self.error is None and self.reading_id is not None


def parse_payload(raw: RawPayload) -> Mapping[str, Any]:
    """Decode a request body into a mapping, treating an empty body as ``{}``."""
    if raw is None:
        return {}
    if isinstance(raw, Mapping):
        return raw
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedPayload("Request body is not valid UTF-8.") from exc
    if not raw.strip():
        return {}
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise MalformedPayload(f"Request body is not valid JSON: {exc.msg}.") from exc
    except (ValueError, RecursionError) as exc:
        # Integer digit limit or nesting too deep for the decoder.
        raise MalformedPayload(f"Request body could not be decoded: {exc}") from exc
    if not isinstance(decoded, dict):
        raise MalformedPayload("Request body must be a JSON object.")
    return decoded


def coerce_metric(value: Any) -> float:
    """Return ``value`` as a float, or 0.0 when it is missing or not numeric."""
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return 0.0
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return 0.0
    else:
        return 0.0
    return number if math.isfinite(number) else 0.0


class IngestionService:
    """Owns the latest reading, the subscriber set and the store handle."""

    def __init__(
        self,
        store: ReadingStore,
        latest: Optional[LatestStateHolder] = None,
        registry: Optional[SubscriberRegistry] = None,
        workers: int = 4,
        send_timeout: float = 5.0,
    ) -> None:
        self.store = store
        self.latest_state = latest if latest is not None else LatestStateHolder()
        self.registry = registry if registry is not None else SubscriberRegistry()
        self.broadcaster = Broadcaster(self.registry)
        self.send_timeout = send_timeout
        self.executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="persist")

    def build_reading(self, raw: RawPayload) -> Reading:
        payload = parse_payload(raw)
        return Reading(
            timestamp=datetime.now(timezone.utc),
            heart_rate=coerce_metric(payload.get("heartRate")),
            temperature=coerce_metric(payload.get("temperature")),
            sugar_level=coerce_metric(payload.get("sugarLevel")),
        )

    async def ingest(self, raw: RawPayload) -> IngestResult:
        """Accept one reading.

        The reading becomes the latest state and is queued to every open
        subscriber before the store write is awaited, so a slow or failing
        store never delays or suppresses live delivery. Concurrent calls are
        last-write-wins on the latest state.
        """
        reading = self.build_reading(raw)
        logger.info(
            "Reading received",
            extra={
                "heart_rate": reading.heart_rate,
                "temperature": reading.temperature,
                "sugar_level": reading.sugar_level,
            },
        )

        self.latest_state.set(reading)
        loop = asyncio.get_running_loop()
        pending = loop.run_in_executor(self.executor, self.store.append, reading)
        delivered = self.broadcaster.broadcast(reading)
        logger.debug("Reading broadcast", extra={"subscriber_count": delivered})

        try:
            reading_id = await pending
        except PersistenceFailed as exc:
            logger.error(
                "Failed to persist reading",
                extra={"persisted": False, "reason": str(exc)},
            )
            return IngestResult(reading=reading, error=exc)

        logger.info("Reading persisted", extra={"reading_id": reading_id, "persisted": True})
        return IngestResult(reading=reading, reading_id=reading_id)

    def latest(self) -> Reading:
        return self.latest_state.get()

    async def recent_reports(self, limit: int = REPORTS_LIMIT) -> list[ReportRow]:
        """Load recent history without blocking the event loop."""
        loop = asyncio.get_running_loop()
        rows = await loop.run_in_executor(self.executor, self.store.recent, limit)
        logger.debug("Loaded recent readings", extra={"row_count": len(rows)})
        return rows

    def shutdown(self) -> None:
        """Close live subscribers and release executor and engine resources."""
        self.registry.close_all()
        self.executor.shutdown(wait=False, cancel_futures=True)
        self.store.dispose()


@lru_cache
def build_default_ingestion(
    workers: Optional[int] = None,
) -> IngestionService:
    """Factory that wires the ingestion service from settings."""
    settings = get_settings()
    store = build_default_store()
    registry = SubscriberRegistry(max_pending=settings.subscriber_queue_size)
    return IngestionService(
        store=store,
        registry=registry,
        workers=workers or settings.persistence_workers,
        send_timeout=settings.subscriber_send_timeout,
    )
