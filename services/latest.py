"""Process-wide cell holding the most recently ingested reading."""

from __future__ import annotations

from threading import Lock
from typing import Optional

from models.records import Reading


class LatestStateHolder:
    """Last-write-wins slot shared by the ingestion and read paths.

    Readings are immutable, so swapping the reference under the lock is
    enough for readers to never observe a half-updated value.
    """

    def __init__(self, initial: Optional[Reading] = None) -> None:
        self._reading = initial if initial is not None else Reading.zero()
        self._lock = Lock()

    def get(self) -> Reading:
        with self._lock:
            return self._reading

    def set(self, reading: Reading) -> None:
        with self._lock:
            self._reading = reading
