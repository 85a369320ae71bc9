"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone


@dataclass(frozen=True, slots=True)
class Reading:
    """A single sensor sample stamped by the server at ingestion time."""

    timestamp: datetime
    heart_rate: float = 0.0
    temperature: float = 0.0
    sugar_level: float = 0.0

    @classmethod
    def zero(cls) -> "Reading":
        return cls(timestamp=datetime.now(timezone.utc))
