"""Source ingestion orchestrator.

One pipeline per film: fetch primary metadata, fan out every content source
concurrently, merge each result into the store as soon as it resolves, wait
for all of them to settle, derive the summary, then persist in the
background.  Progress is published as ``ProgressEvent`` objects to every
listener attached to the film's in-flight run.

Only a metadata failure is fatal.  A content source that raises, times out,
or returns nothing affects its own event and nothing else.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from collections.abc import Sequence
from dataclasses import dataclass
from time import perf_counter

from filmkb.config import ChunkerConfig
from filmkb.config import IngestionConfig
from filmkb.engine.derivation import SummaryDeriver
from filmkb.errors import IngestionError
from filmkb.errors import SourceError
from filmkb.ingestion.events import EventStatus
from filmkb.ingestion.events import IngestionState
from filmkb.ingestion.events import ProgressEvent
from filmkb.ingestion.sources import ContentSource
from filmkb.ingestion.sources import MetadataSource
from filmkb.ingestion.sources import SourceResult
from filmkb.knowledge.chunker import chunk_text
from filmkb.knowledge.schemas import PRIMARY_SOURCE
from filmkb.knowledge.schemas import FilmMetadata
from filmkb.knowledge.schemas import SentimentSummary
from filmkb.knowledge.schemas import SourceName
from filmkb.knowledge.store import KnowledgeStore
from filmkb.observability import record_latency
from filmkb.observability import record_source_outcome

logger = logging.getLogger(__name__)

# Raw texts from one source are joined into a single chunking batch.
TEXT_SEPARATOR = "\n\n---\n\n"

NO_CONTENT_MESSAGE = "no content found"


@dataclass(frozen=True)
class SourceOutcome:
    """Settled result of one content-source task."""

    source: SourceName
    status: EventStatus
    count: int = 0
    error: str | None = None


class _IngestionRun:
    """In-flight pipeline for one film and the listeners attached to it."""

    def __init__(self, film_id: int) -> None:
        self.film_id = film_id
        self.state = IngestionState.not_started
        self.task: asyncio.Task | None = None
        self._listeners: list[asyncio.Queue[ProgressEvent]] = []

    def subscribe(self) -> asyncio.Queue[ProgressEvent]:
        queue: asyncio.Queue[ProgressEvent] = asyncio.Queue()
        self._listeners.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[ProgressEvent]) -> None:
        if queue in self._listeners:
            self._listeners.remove(queue)

    def publish(self, event: ProgressEvent) -> None:
        for queue in list(self._listeners):
            queue.put_nowait(event)


class IngestionOrchestrator:
    """Drives concurrent multi-source ingestion into a ``KnowledgeStore``."""

    def __init__(
        self,
        store: KnowledgeStore,
        metadata_source: MetadataSource,
        content_sources: Sequence[ContentSource] = (),
        *,
        deriver: SummaryDeriver | None = None,
        chunker_config: ChunkerConfig | None = None,
        ingestion_config: IngestionConfig | None = None,
    ) -> None:
        names = [source.name for source in content_sources]
        if PRIMARY_SOURCE in names:
            raise ValueError("content sources must not include the primary source")
        if len(set(names)) != len(names):
            raise ValueError(f"duplicate content source names: {names}")

        self._store = store
        self._metadata_source = metadata_source
        self._content_sources = list(content_sources)
        self._deriver = deriver
        self._chunker_config = chunker_config or ChunkerConfig()
        self._config = ingestion_config or IngestionConfig()
        self._runs: dict[int, _IngestionRun] = {}
        self._background: set[asyncio.Task] = set()

    @property
    def store(self) -> KnowledgeStore:
        return self._store

    @property
    def source_names(self) -> list[SourceName]:
        return [source.name for source in self._content_sources]

    def is_running(self, film_id: int) -> bool:
        return film_id in self._runs

    def state(self, film_id: int) -> IngestionState | None:
        run = self._runs.get(film_id)
        return run.state if run is not None else None

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    async def stream(self, film_id: int) -> AsyncIterator[ProgressEvent]:
        """Yield progress events for *film_id* until the completion event.

        A second caller for a film that is already being ingested joins the
        running pipeline instead of starting another one.  Closing the
        iterator early only detaches this listener; the pipeline keeps
        running and keeps updating the store.
        """
        run = self._runs.get(film_id)
        if run is None:
            run = _IngestionRun(film_id)
            self._runs[film_id] = run
            queue = run.subscribe()
            run.task = self._track(
                asyncio.create_task(
                    self._execute(run), name=f"filmkb-ingest-{film_id}"
                )
            )
        else:
            logger.debug("Joining in-flight ingestion for film %d", film_id)
            queue = run.subscribe()

        try:
            while True:
                event = await queue.get()
                yield event
                if event.is_complete:
                    return
        finally:
            run.unsubscribe(queue)

    async def ingest(self, film_id: int) -> list[ProgressEvent]:
        """Run (or join) ingestion for *film_id* and return every event."""
        return [event async for event in self.stream(film_id)]

    async def drain(self) -> None:
        """Wait for every pipeline and background write to finish."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _execute(self, run: _IngestionRun) -> None:
        film_id = run.film_id
        start = perf_counter()
        ok = False
        try:
            if await self._is_cached(film_id):
                logger.info("Film %d already ingested; serving cached record", film_id)
                run.publish(ProgressEvent.completion(cached=True))
                ok = True
                return
            await self._run_pipeline(run)
            ok = True
        except IngestionError as exc:
            logger.warning("Ingestion failed for film %d: %s", film_id, exc)
            run.publish(ProgressEvent.completion(error=str(exc)))
        except asyncio.CancelledError:
            run.publish(ProgressEvent.completion(error="ingestion cancelled"))
            raise
        except Exception as exc:
            logger.exception("Ingestion pipeline error for film %d", film_id)
            run.publish(ProgressEvent.completion(error=str(exc) or type(exc).__name__))
        finally:
            run.state = IngestionState.complete
            if self._runs.get(film_id) is run:
                del self._runs[film_id]
            record_latency(
                operation="ingestion.total",
                duration_ms=(perf_counter() - start) * 1000,
                ok=ok,
            )

    async def _is_cached(self, film_id: int) -> bool:
        if self._store.is_ready(film_id):
            return True
        if await self._store.load_from_durable(film_id):
            return self._store.is_ready(film_id)
        return False

    async def _run_pipeline(self, run: _IngestionRun) -> None:
        film_id = run.film_id

        run.state = IngestionState.metadata_loading
        run.publish(ProgressEvent(source=PRIMARY_SOURCE, status=EventStatus.loading))
        metadata = await self._fetch_metadata(film_id)

        run.state = IngestionState.metadata_loaded
        self._store.init_film(film_id, metadata)
        overview_chunks = chunk_text(
            metadata.overview, film_id, PRIMARY_SOURCE, config=self._chunker_config
        )
        self._store.add_chunks(film_id, overview_chunks)
        self._store.mark_source_loaded(film_id, PRIMARY_SOURCE)
        run.publish(
            ProgressEvent(source=PRIMARY_SOURCE, status=EventStatus.done, count=1)
        )

        run.state = IngestionState.sources_in_flight
        tasks = []
        for source in self._content_sources:
            run.publish(ProgressEvent(source=source.name, status=EventStatus.loading))
            tasks.append(
                asyncio.create_task(
                    self._run_source(run, source, metadata),
                    name=f"filmkb-source-{source.name.value}-{film_id}",
                )
            )

        run.state = IngestionState.settling
        results = await asyncio.gather(*tasks, return_exceptions=True)
        outcomes = [r for r in results if isinstance(r, SourceOutcome)]
        for source, result in zip(self._content_sources, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Source task %s crashed for film %d",
                    source.name.value,
                    film_id,
                    exc_info=result,
                )
        logger.info(
            "Sources settled for film %d: %s",
            film_id,
            ", ".join(f"{o.source.value}={o.status.value}" for o in outcomes) or "none",
        )

        run.state = IngestionState.derivation_running
        await self._derive(film_id)

        run.state = IngestionState.persist_scheduled
        if self._store.durable_enabled:
            self._track(
                asyncio.create_task(
                    self._persist(film_id), name=f"filmkb-persist-{film_id}"
                )
            )

        run.publish(ProgressEvent.completion())

    async def _fetch_metadata(self, film_id: int) -> FilmMetadata:
        timeout = self._config.metadata_timeout_seconds
        try:
            return await asyncio.wait_for(
                self._metadata_source.fetch_metadata(film_id), timeout=timeout
            )
        except asyncio.TimeoutError as exc:
            raise IngestionError(
                f"metadata fetch for film {film_id} timed out after {timeout:g}s"
            ) from exc
        except SourceError as exc:
            raise IngestionError(
                f"metadata fetch for film {film_id} failed: {exc}"
            ) from exc

    async def _run_source(
        self, run: _IngestionRun, source: ContentSource, metadata: FilmMetadata
    ) -> SourceOutcome:
        film_id = run.film_id
        name = source.name
        timeout = self._config.source_timeout_seconds
        start = perf_counter()

        try:
            result = await asyncio.wait_for(
                source.fetch(film_id, metadata), timeout=timeout
            )
            outcome = self._merge(run, name, result)
        except asyncio.TimeoutError:
            reason = f"timed out after {timeout:g}s"
            logger.warning("Source %s %s for film %d", name.value, reason, film_id)
            outcome = SourceOutcome(source=name, status=EventStatus.error, error=reason)
        except Exception as exc:
            reason = str(exc) or type(exc).__name__
            logger.warning(
                "Source %s failed for film %d: %s", name.value, film_id, reason
            )
            outcome = SourceOutcome(source=name, status=EventStatus.error, error=reason)

        if outcome.status is EventStatus.error:
            run.publish(
                ProgressEvent(source=name, status=EventStatus.error, error=outcome.error)
            )

        record_source_outcome(source=name.value, status=outcome.status.value)
        record_latency(
            operation=f"source.{name.value}",
            duration_ms=(perf_counter() - start) * 1000,
            ok=outcome.status is EventStatus.done,
        )
        return outcome

    def _merge(
        self, run: _IngestionRun, name: SourceName, result: SourceResult
    ) -> SourceOutcome:
        film_id = run.film_id
        text = TEXT_SEPARATOR.join(t for t in result.texts if t and t.strip())
        chunks = chunk_text(
            text, film_id, name, result.metadata, config=self._chunker_config
        )
        if result.max_chunks is not None:
            chunks = chunks[: result.max_chunks]
        if not chunks:
            logger.info("Source %s returned no content for film %d", name.value, film_id)
            run.publish(
                ProgressEvent(
                    source=name, status=EventStatus.empty, count=0, error=NO_CONTENT_MESSAGE
                )
            )
            return SourceOutcome(source=name, status=EventStatus.empty)

        self._store.add_chunks(film_id, chunks)
        self._store.mark_source_loaded(film_id, name)
        if result.rating:
            self._store.set_external_rating(film_id, name, result.rating)
        run.publish(
            ProgressEvent(
                source=name,
                status=EventStatus.done,
                count=len(chunks),
                excerpt=chunks[0].text[: self._config.excerpt_chars],
                rating=result.rating,
            )
        )
        return SourceOutcome(source=name, status=EventStatus.done, count=len(chunks))

    async def _derive(self, film_id: int) -> None:
        if self._deriver is None:
            return
        record = self._store.get_film(film_id)
        if record is None:
            return

        start = perf_counter()
        try:
            summary = await self._deriver.derive(record)
        except Exception:
            logger.exception("Summary derivation failed for film %d", film_id)
            record_latency(
                operation="ingestion.derive",
                duration_ms=(perf_counter() - start) * 1000,
                ok=False,
            )
            return
        record_latency(
            operation="ingestion.derive",
            duration_ms=(perf_counter() - start) * 1000,
        )

        # Ratings may have landed while derivation was running.
        current = self._store.get_film(film_id)
        previous = current.sentiment if current is not None else record.sentiment
        self._store.set_sentiment(
            film_id,
            SentimentSummary(
                critics=summary.critics,
                audiences=summary.audiences,
                tension=summary.tension,
                letterboxd_rating=previous.letterboxd_rating,
                tomatometer=previous.tomatometer,
            ),
        )
        self._store.set_starter_prompts(film_id, summary.chips)

    async def _persist(self, film_id: int) -> None:
        if not await self._store.save_to_durable(film_id):
            logger.warning("Film %d was not persisted to the durable store", film_id)

    # ------------------------------------------------------------------
    # Background tasks
    # ------------------------------------------------------------------

    def _track(self, task: asyncio.Task) -> asyncio.Task:
        self._background.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Background task %s failed", task.get_name(), exc_info=exc
            )
