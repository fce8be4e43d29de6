"""Tiered knowledge store keyed by film id.

L1 is an in-process arena of ``KnowledgeRecord`` objects.  Every mutation
runs under that film's own lock, so concurrent source fetches for one film
serialize while other films proceed untouched.  A global registry lock is
held only while a film's slot (record plus lock) is created.

L2 is an optional ``DurableStore``.  Durable I/O is best-effort: failures
are logged and reported as ``False``, never raised, because the in-memory
record is always usable on its own.  L1 stays authoritative for the
lifetime of the process.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from time import perf_counter
from typing import TYPE_CHECKING

from filmkb.errors import DurableStoreError
from filmkb.knowledge.schemas import Chunk
from filmkb.knowledge.schemas import FilmMetadata
from filmkb.knowledge.schemas import KnowledgeRecord
from filmkb.knowledge.schemas import SentimentSummary
from filmkb.knowledge.schemas import SourceName
from filmkb.observability import record_latency

if TYPE_CHECKING:
    from filmkb.durable.base import DurableStore

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_BATCH_SIZE = 500

# Content sources whose fetch may carry an aggregate rating, and the
# sentiment field that rating lands in.
_RATING_FIELDS = {
    SourceName.letterboxd: "letterboxd_rating",
    SourceName.rottentomatoes: "tomatometer",
}


class _Slot:
    __slots__ = ("record", "lock")

    def __init__(self, record: KnowledgeRecord) -> None:
        self.record = record
        self.lock = threading.Lock()


class KnowledgeStore:
    """In-process record arena with per-film locking and a durable tier."""

    def __init__(
        self,
        durable: DurableStore | None = None,
        *,
        chunk_batch_size: int = DEFAULT_CHUNK_BATCH_SIZE,
    ) -> None:
        self._slots: dict[int, _Slot] = {}
        self._registry_lock = threading.Lock()
        self._durable = durable
        self._chunk_batch_size = chunk_batch_size

    @property
    def durable_enabled(self) -> bool:
        return self._durable is not None

    # -- L1 reads --

    def has_film(self, film_id: int) -> bool:
        return film_id in self._slots

    def get_film(self, film_id: int) -> KnowledgeRecord | None:
        """Return a snapshot of the record, or ``None`` when absent."""
        slot = self._slots.get(film_id)
        if slot is None:
            return None
        with slot.lock:
            return slot.record.model_copy(deep=True)

    def get_loaded_sources(self, film_id: int) -> list[SourceName]:
        slot = self._slots.get(film_id)
        if slot is None:
            return []
        with slot.lock:
            return list(slot.record.loaded_sources)

    def is_ready(self, film_id: int) -> bool:
        """Primary source plus at least two content sources have loaded."""
        slot = self._slots.get(film_id)
        if slot is None:
            return False
        with slot.lock:
            return slot.record.is_ready

    # -- L1 writes --

    def init_film(self, film_id: int, metadata: FilmMetadata) -> bool:
        """Create an empty record unless one already exists.

        Returns ``True`` when a record was created.  An existing record,
        including one still being ingested, is left untouched.
        """
        with self._registry_lock:
            if film_id in self._slots:
                return False
            self._slots[film_id] = _Slot(
                KnowledgeRecord(film_id=film_id, metadata=metadata)
            )
        logger.debug("Initialized knowledge record for film %d", film_id)
        return True

    def add_chunks(self, film_id: int, chunks: Iterable[Chunk]) -> int:
        """Append *chunks* as the current batch of each source they carry.

        Chunks previously stored for any of those sources are dropped first,
        so a re-fetched source never leaves stale chunks behind and re-adding
        the same batch is idempotent.  Chunks of other sources are kept.
        Returns the number of chunks written.
        """
        batch = {
            chunk.id: chunk for chunk in chunks if chunk.film_id == film_id
        }
        slot = self._slots.get(film_id)
        if slot is None:
            logger.debug("add_chunks ignored: film %d not initialized", film_id)
            return 0
        if not batch:
            return 0
        replaced = {chunk.source for chunk in batch.values()}
        with slot.lock:
            kept = [c for c in slot.record.chunks if c.source not in replaced]
            slot.record.chunks = kept + list(batch.values())
        return len(batch)

    def mark_source_loaded(self, film_id: int, source: SourceName) -> None:
        slot = self._slots.get(film_id)
        if slot is None:
            logger.debug("mark_source_loaded ignored: film %d not initialized", film_id)
            return
        with slot.lock:
            if source not in slot.record.loaded_sources:
                slot.record.loaded_sources.append(source)

    def set_sentiment(self, film_id: int, sentiment: SentimentSummary) -> None:
        slot = self._slots.get(film_id)
        if slot is None:
            logger.debug("set_sentiment ignored: film %d not initialized", film_id)
            return
        with slot.lock:
            slot.record.sentiment = sentiment.model_copy()

    def set_external_rating(
        self, film_id: int, source: SourceName, rating: str
    ) -> bool:
        """Record a source's aggregate rating without touching other fields."""
        field_name = _RATING_FIELDS.get(source)
        slot = self._slots.get(film_id)
        if field_name is None or slot is None:
            return False
        with slot.lock:
            slot.record.sentiment = slot.record.sentiment.model_copy(
                update={field_name: rating}
            )
        return True

    def set_starter_prompts(self, film_id: int, prompts: Iterable[str]) -> None:
        slot = self._slots.get(film_id)
        if slot is None:
            logger.debug("set_starter_prompts ignored: film %d not initialized", film_id)
            return
        with slot.lock:
            slot.record.starter_prompts = [p for p in prompts if p]

    # -- L2 --

    async def load_from_durable(self, film_id: int) -> bool:
        """Populate L1 from the durable tier. Return whether a record was found.

        An L1 record that already exists is kept as-is.
        """
        if self._durable is None:
            return False

        start = perf_counter()
        ok = False
        try:
            record = await self._durable.load_record(film_id)
            ok = True
        except DurableStoreError:
            logger.exception("Durable load failed for film %d", film_id)
            return False
        finally:
            record_latency(
                operation="durable.load",
                duration_ms=(perf_counter() - start) * 1000,
                ok=ok,
            )

        if record is None:
            return False
        if record.is_ready and not record.chunks:
            logger.warning(
                "Ignoring durable record for film %d: ready but holds no chunks",
                film_id,
            )
            return False

        with self._registry_lock:
            if film_id not in self._slots:
                self._slots[film_id] = _Slot(record)
                logger.info(
                    "Loaded film %d from durable store (%d chunks)",
                    film_id,
                    len(record.chunks),
                )
        return True

    async def save_to_durable(self, film_id: int) -> bool:
        """Write the current L1 record to the durable tier.

        The record and its chunks go down in one atomic backend write; the
        prior chunk batch is replaced wholesale in bounded insert batches.
        """
        if self._durable is None:
            return False
        record = self.get_film(film_id)
        if record is None:
            logger.debug("save_to_durable skipped: film %d not in memory", film_id)
            return False

        start = perf_counter()
        ok = False
        try:
            await self._durable.save_record(
                record, batch_size=self._chunk_batch_size
            )
            ok = True
        except DurableStoreError:
            logger.exception("Durable save failed for film %d", film_id)
            return False
        finally:
            record_latency(
                operation="durable.save",
                duration_ms=(perf_counter() - start) * 1000,
                ok=ok,
            )

        logger.info(
            "Persisted film %d to durable store (%d chunks)",
            film_id,
            len(record.chunks),
        )
        return True

    def clear(self) -> None:
        """Drop every L1 record (test helper)."""
        with self._registry_lock:
            self._slots.clear()
