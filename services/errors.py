"""Error types raised along the ingestion, query and fan-out paths."""

from __future__ import annotations


class IngestError(Exception):
    """Base class for failures while ingesting a reading."""


class MalformedPayload(IngestError, ValueError):
    """The request body could not be read as a JSON object."""


class PersistenceFailed(IngestError):
    """The reading could not be appended to the store."""


class StoreQueryFailed(Exception):
    """Recent history could not be loaded from the store."""


class SubscriberSendFailed(Exception):
    """A reading could not be handed to a real-time subscriber."""
