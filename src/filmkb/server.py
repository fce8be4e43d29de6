"""filmkb: FastMCP v2 server with four MCP tools.

Tools delegate to a shared ``KnowledgeStore`` (L1 in process, optional L2
durable tier) filled by an ``IngestionOrchestrator``.  Call
``configure(...)`` before using the server.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Sequence
from time import perf_counter

from dotenv import load_dotenv
from fastmcp import FastMCP
from pydantic import ValidationError

from filmkb.config import ChunkerConfig
from filmkb.config import DurableStoreConfig
from filmkb.config import IngestionConfig
from filmkb.config import LLMConfig
from filmkb.config import RetrievalConfig
from filmkb.config import TMDBConfig
from filmkb.durable import build_durable_store
from filmkb.durable.base import DurableStore
from filmkb.engine import LLMAdapter
from filmkb.engine import RetrievalService
from filmkb.engine import SummaryDeriver
from filmkb.engine import build_llm_adapter
from filmkb.engine.prompt_builder import build_chat_turn
from filmkb.engine.prompt_builder import build_system_prompt
from filmkb.engine.prompt_builder import format_chunks_for_context
from filmkb.errors import SourceError
from filmkb.ingestion import ContentSource
from filmkb.ingestion import FilmSearchSource
from filmkb.ingestion import IngestionOrchestrator
from filmkb.ingestion import LetterboxdSource
from filmkb.ingestion import MetadataSource
from filmkb.ingestion import RedditSource
from filmkb.ingestion import RottenTomatoesSource
from filmkb.ingestion import TMDBClient
from filmkb.ingestion import YouTubeSource
from filmkb.ingestion.tmdb import poster_url
from filmkb.knowledge import KnowledgeRecord
from filmkb.knowledge import KnowledgeStore
from filmkb.models.schemas import ContextChunk
from filmkb.models.schemas import FilmHit
from filmkb.models.schemas import FilmSummaryResult
from filmkb.models.schemas import GetFilmInput
from filmkb.models.schemas import IngestFilmInput
from filmkb.models.schemas import IngestFilmResult
from filmkb.models.schemas import RetrieveContextInput
from filmkb.models.schemas import RetrieveContextResult
from filmkb.models.schemas import SearchFilmsInput
from filmkb.models.schemas import SearchFilmsResult
from filmkb.models.schemas import SentimentView
from filmkb.observability import record_latency

logger = logging.getLogger(__name__)

mcp = FastMCP("filmkb")

MIN_SEARCH_QUERY_CHARS = 2
MAX_SEARCH_RESULTS = 8

# ---------------------------------------------------------------------------
# Server state (set via configure())
# ---------------------------------------------------------------------------

_store: KnowledgeStore | None = None
_durable: DurableStore | None = None
_orchestrator: IngestionOrchestrator | None = None
_metadata_source: MetadataSource | None = None
_retrieval: RetrievalService | None = None


async def configure(
    *,
    tmdb_config: TMDBConfig | None = None,
    llm_config: LLMConfig | None = None,
    durable_config: DurableStoreConfig | None = None,
    chunker_config: ChunkerConfig | None = None,
    retrieval_config: RetrievalConfig | None = None,
    ingestion_config: IngestionConfig | None = None,
    metadata_source: MetadataSource | None = None,
    content_sources: Sequence[ContentSource] | None = None,
    llm_adapter: LLMAdapter | None = None,
    durable_store: DurableStore | None = None,
) -> None:
    """Wire the store, sources and orchestrator.

    Injected collaborators win over the matching config.  Without an
    ``llm_adapter`` or ``llm_config`` no summary is derived and the
    sentiment fields stay empty.  Must be called before the MCP tools can
    function.
    """
    global _store, _durable, _orchestrator, _metadata_source, _retrieval
    await shutdown()

    durable_cfg = durable_config or DurableStoreConfig()
    _durable = (
        durable_store
        if durable_store is not None
        else await build_durable_store(durable_cfg)
    )
    _store = KnowledgeStore(_durable, chunk_batch_size=durable_cfg.chunk_batch_size)

    _metadata_source = metadata_source or TMDBClient(tmdb_config or TMDBConfig())
    sources = (
        list(content_sources)
        if content_sources is not None
        else default_content_sources()
    )

    ingestion_cfg = ingestion_config or IngestionConfig()
    deriver = None
    if llm_adapter is not None or llm_config is not None:
        llm_cfg = llm_config or LLMConfig()
        deriver = SummaryDeriver(
            llm_adapter or build_llm_adapter(llm_cfg),
            llm_config=llm_cfg,
            ingestion_config=ingestion_cfg,
        )

    _orchestrator = IngestionOrchestrator(
        _store,
        _metadata_source,
        sources,
        deriver=deriver,
        chunker_config=chunker_config,
        ingestion_config=ingestion_cfg,
    )
    _retrieval = RetrievalService(retrieval_config)
    logger.info(
        "filmkb configured: sources=%s durable=%s derivation=%s",
        ",".join(s.value for s in _orchestrator.source_names) or "none",
        type(_durable).__name__ if _durable is not None else "none",
        "on" if deriver is not None else "off",
    )


async def shutdown() -> None:
    """Finish background work and release server resources."""
    global _store, _durable, _orchestrator, _metadata_source, _retrieval
    if _orchestrator is not None:
        try:
            await _orchestrator.drain()
        except RuntimeError:
            # Tests may reconfigure across event loops.
            pass
        _orchestrator = None
    if _durable is not None:
        try:
            await _durable.close()
        except RuntimeError:
            pass
        _durable = None
    _store = None
    _metadata_source = None
    _retrieval = None


def default_content_sources() -> list[ContentSource]:
    """Built-in scrapers used when no content sources are injected."""
    return [
        LetterboxdSource(),
        RedditSource(),
        RottenTomatoesSource(),
        YouTubeSource(),
    ]


def _reset_store() -> None:
    """Drop every in-memory record (test helper)."""
    if _store is not None:
        _store.clear()


def _get_store() -> KnowledgeStore:
    if _store is None:
        raise RuntimeError("filmkb not configured. Call configure() first.")
    return _store


def _get_orchestrator() -> IngestionOrchestrator:
    if _orchestrator is None:
        raise RuntimeError("filmkb not configured. Call configure() first.")
    return _orchestrator


async def _lookup_record(film_id: int) -> KnowledgeRecord | None:
    """Return the film from L1, falling back to the durable tier."""
    store = _get_store()
    record = store.get_film(film_id)
    if record is None and await store.load_from_durable(film_id):
        record = store.get_film(film_id)
    return record


def _validation_message(exc: ValidationError) -> str:
    err = exc.errors()[0] if exc.errors() else {}
    return str(err.get("msg", "Invalid input"))


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@mcp.tool
async def search_films(query: str) -> SearchFilmsResult:
    """Search TMDB for films matching a title.

    Args:
        query: Film title or part of one (at least two characters).
    """
    start = perf_counter()
    ok = False
    try:
        try:
            validated = SearchFilmsInput.model_validate({"query": query.strip()})
        except ValidationError as exc:
            return SearchFilmsResult(
                status="rejected",
                error_code="validation_error",
                message=_validation_message(exc),
            )
        if len(validated.query) < MIN_SEARCH_QUERY_CHARS:
            ok = True
            return SearchFilmsResult()

        source = _metadata_source
        if not isinstance(source, FilmSearchSource):
            return SearchFilmsResult(
                status="error",
                error_code="search_not_supported",
                message="The configured metadata source cannot search.",
            )
        try:
            hits = await source.search_films(validated.query)
        except SourceError as exc:
            logger.warning("Film search failed for %r: %s", validated.query, exc)
            return SearchFilmsResult(
                status="error", error_code="source_error", message=str(exc)
            )

        ok = True
        return SearchFilmsResult(
            results=[
                FilmHit(
                    id=hit.id,
                    title=hit.title,
                    year=hit.release_date[:4] if hit.release_date else "N/A",
                    poster_url=poster_url(hit.poster_path, "w185"),
                    vote_average=hit.vote_average,
                )
                for hit in hits[:MAX_SEARCH_RESULTS]
            ]
        )
    finally:
        record_latency(
            operation="mcp.search_films",
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )


@mcp.tool
async def ingest_film(film_id: int) -> IngestFilmResult:
    """Ingest a film from every configured source (or serve it from cache).

    Args:
        film_id: TMDB film id.
    """
    start = perf_counter()
    ok = False
    try:
        orchestrator = _get_orchestrator()
        try:
            validated = IngestFilmInput.model_validate({"film_id": film_id})
        except ValidationError as exc:
            return IngestFilmResult(
                film_id=film_id,
                status="rejected",
                error_code="validation_error",
                message=_validation_message(exc),
            )

        events = await orchestrator.ingest(validated.film_id)
        final = events[-1]
        store = orchestrator.store
        result = IngestFilmResult(
            film_id=validated.film_id,
            events=[event.to_wire() for event in events],
            ready=store.is_ready(validated.film_id),
            cached=bool(final.cached),
            loaded_sources=store.get_loaded_sources(validated.film_id),
        )
        if final.error:
            result.status = "failed"
            result.error_code = "ingestion_failed"
            result.message = final.error
        else:
            ok = True
        return result
    finally:
        record_latency(
            operation="mcp.ingest_film",
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )


@mcp.tool
async def get_film(film_id: int) -> FilmSummaryResult:
    """Return the knowledge summary for an ingested film.

    Args:
        film_id: TMDB film id.
    """
    try:
        validated = GetFilmInput.model_validate({"film_id": film_id})
    except ValidationError as exc:
        return FilmSummaryResult(
            film_id=film_id,
            status="rejected",
            error_code="validation_error",
            message=_validation_message(exc),
        )

    record = await _lookup_record(validated.film_id)
    if record is None:
        return FilmSummaryResult(
            film_id=validated.film_id,
            status="not_found",
            error_code="film_not_ingested",
            message="Film not ingested yet. Call ingest_film first.",
        )

    meta = record.metadata
    return FilmSummaryResult(
        film_id=record.film_id,
        title=meta.title,
        year=meta.year,
        director=meta.director,
        runtime=meta.runtime,
        genres=[genre.name for genre in meta.genres],
        poster_url=poster_url(meta.poster_path),
        sentiment=SentimentView.model_validate(record.sentiment.model_dump()),
        starter_prompts=record.starter_prompts,
        loaded_sources=record.loaded_sources,
        ready=record.is_ready,
        chunk_count=len(record.chunks),
    )


@mcp.tool
async def retrieve_context(
    film_id: int,
    query: str,
    top_n: int = 7,
    messages: list[dict] | None = None,
) -> RetrieveContextResult:
    """Rank an ingested film's chunks against a question.

    Also returns a system prompt for the film and, when chat history is
    given, that history trimmed with the ranked context folded into its
    last message.

    Args:
        film_id: TMDB film id.
        query: Free-text question about the film.
        top_n: Maximum number of chunks to return (1-50).
        messages: Optional chat history as {role, content} objects, role
            being user or assistant.
    """
    start = perf_counter()
    ok = False
    try:
        try:
            validated = RetrieveContextInput.model_validate(
                {
                    "film_id": film_id,
                    "query": query,
                    "top_n": top_n,
                    "messages": messages or [],
                }
            )
        except ValidationError as exc:
            return RetrieveContextResult(
                film_id=film_id,
                query=query,
                status="rejected",
                error_code="validation_error",
                message=_validation_message(exc),
            )

        record = await _lookup_record(validated.film_id)
        if record is None:
            return RetrieveContextResult(
                film_id=validated.film_id,
                query=validated.query,
                status="not_found",
                error_code="film_not_ingested",
                message="Film not ingested yet. Call ingest_film first.",
            )

        retrieval = _retrieval or RetrievalService()
        found = retrieval.retrieve(record, validated.query, top_n=validated.top_n)
        ok = True
        return RetrieveContextResult(
            film_id=found.film_id,
            query=found.query,
            chunks=[
                ContextChunk(id=chunk.id, source=chunk.source, text=chunk.text)
                for chunk in found.chunks
            ],
            sources=found.sources,
            context=format_chunks_for_context(found.chunks),
            system_prompt=build_system_prompt(record),
            messages=build_chat_turn(validated.messages, found.chunks),
            retrieval_ms=found.retrieval_ms,
        )
    finally:
        record_latency(
            operation="mcp.retrieve_context",
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def load_configs_from_env() -> dict:
    """Build ``configure()`` keyword arguments from environment variables."""
    kwargs: dict = {
        "tmdb_config": TMDBConfig(api_key=os.getenv("TMDB_API_KEY")),
        "durable_config": DurableStoreConfig(
            backend=os.getenv("FILMKB_DURABLE_BACKEND", "none"),
            url=os.getenv("FILMKB_DURABLE_URL"),
            key_prefix=os.getenv("FILMKB_KEY_PREFIX", "filmkb"),
        ),
        "ingestion_config": IngestionConfig(
            source_timeout_seconds=_env_float("FILMKB_SOURCE_TIMEOUT_SECONDS", 45.0),
        ),
    }
    llm_provider = os.getenv("LLM_PROVIDER")
    llm_api_key = os.getenv("LLM_API_KEY")
    if llm_provider or llm_api_key:
        defaults = LLMConfig()
        kwargs["llm_config"] = LLMConfig(
            provider=llm_provider or defaults.provider,
            model=os.getenv("LLM_MODEL", defaults.model),
            api_key=llm_api_key,
            base_url=os.getenv("LLM_BASE_URL", defaults.base_url),
        )
    return kwargs


async def _serve() -> None:
    await configure(**load_configs_from_env())
    try:
        await mcp.run_async()
    finally:
        await shutdown()


def main() -> None:
    """Console entry point: configure from the environment and serve over stdio."""
    load_dotenv(override=False)
    logging.basicConfig(
        level=os.getenv("FILMKB_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    asyncio.run(_serve())
