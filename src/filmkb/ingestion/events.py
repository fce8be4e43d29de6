"""Progress events emitted while a film is ingested, and pipeline states."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel
from pydantic import Field

from filmkb.knowledge.schemas import SourceName


class IngestionState(str, Enum):
    """Lifecycle of one ingestion invocation. ``complete`` is terminal."""

    not_started = "not_started"
    metadata_loading = "metadata_loading"
    metadata_loaded = "metadata_loaded"
    sources_in_flight = "sources_in_flight"
    settling = "settling"
    derivation_running = "derivation_running"
    persist_scheduled = "persist_scheduled"
    complete = "complete"


class EventStatus(str, Enum):
    loading = "loading"
    done = "done"
    empty = "empty"
    error = "error"


class ProgressEvent(BaseModel):
    """One progress notification.

    Per-source events carry ``source`` and ``status``; the terminal event
    carries ``type='complete'`` (plus ``cached`` or ``error`` when relevant).
    """

    model_config = {"frozen": True}

    source: SourceName | None = None
    status: EventStatus | None = None
    count: int | None = Field(default=None, ge=0)
    excerpt: str | None = None
    rating: str | None = None
    error: str | None = None
    type: str | None = None
    cached: bool | None = None

    @property
    def is_complete(self) -> bool:
        return self.type == "complete"

    @classmethod
    def completion(
        cls, *, cached: bool = False, error: str | None = None
    ) -> ProgressEvent:
        return cls(type="complete", cached=cached or None, error=error)

    def to_wire(self) -> dict:
        """JSON-ready dict without unset fields."""
        return self.model_dump(mode="json", exclude_none=True)
