"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from models.records import Reading


class ReadingSchema(BaseModel):
    """Sensor reading as exposed over HTTP and the real-time channel."""

    model_config = ConfigDict(populate_by_name=True)

    timestamp: datetime
    heart_rate: float = Field(0.0, alias="heartRate")
    temperature: float = 0.0
    sugar_level: float = Field(0.0, alias="sugarLevel")

    @classmethod
    def from_reading(cls, reading: Reading) -> "ReadingSchema":
        return cls(
            timestamp=reading.timestamp,
            heart_rate=reading.heart_rate,
            temperature=reading.temperature,
            sugar_level=reading.sugar_level,
        )


class ReportRow(ReadingSchema):
    """Persisted reading with its store-assigned identifier."""

    id: int = Field(..., ge=1)

    @classmethod
    def from_columns(
        cls,
        row_id: int,
        heart_rate: Optional[float],
        temperature: Optional[float],
        sugar_level: Optional[float],
        timestamp: datetime,
    ) -> "ReportRow":
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return cls(
            id=row_id,
            heart_rate=heart_rate or 0.0,
            temperature=temperature or 0.0,
            sugar_level=sugar_level or 0.0,
            timestamp=timestamp,
        )


class IngestResponse(BaseModel):
    """Response to a producer after a reading was accepted."""

    status: Literal["success"] = "success"
    data: ReadingSchema
    id: Optional[int] = Field(
        default=None, description="Store-assigned row id when the reading was persisted."
    )
    persisted: bool
    error: Optional[str] = Field(
        default=None, description="Persistence failure details, if any."
    )


class ErrorResponse(BaseModel):
    """Envelope used for rejected requests and failed queries."""

    status: Literal["error"] = "error"
    error: str
