"""Durable (L2) tier protocol.

Adapters persist one record per film together with that film's chunk
batch in a single atomic write, so a failed save never leaves the record
without the chunks it describes.  They raise
``DurableStoreError`` for any backend failure so the knowledge store can
treat persistence as best-effort.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol
from typing import runtime_checkable

from filmkb.knowledge.schemas import Chunk
from filmkb.knowledge.schemas import KnowledgeRecord


@runtime_checkable
class DurableStore(Protocol):
    """Key-value-ish persistence keyed by film id."""

    async def load_record(self, film_id: int) -> KnowledgeRecord | None:
        """Return the stored record with its chunks, or ``None``."""

    async def save_record(
        self, record: KnowledgeRecord, *, batch_size: int = 500
    ) -> None:
        """Overwrite the record and replace all of its chunks atomically.

        Prior chunks are deleted and the new ones inserted in batches of
        *batch_size*; either the whole write lands or none of it does.
        """

    async def close(self) -> None:
        """Release backend connections."""


def record_fields(record: KnowledgeRecord) -> dict:
    """Return the record as a JSON-compatible dict without its chunks."""
    return record.model_dump(mode="json", exclude={"chunks"})


def batched(chunks: Sequence[Chunk], batch_size: int) -> list[Sequence[Chunk]]:
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")
    return [chunks[i : i + batch_size] for i in range(0, len(chunks), batch_size)]
