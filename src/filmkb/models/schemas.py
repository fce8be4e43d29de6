"""Pydantic models for the MCP interface.

Input models validate tool arguments; output models shape responses.
Every result carries ``status`` plus optional ``error_code`` / ``message``
so callers can tell a rejection apart from an empty answer.
"""

from __future__ import annotations

from pydantic import BaseModel
from pydantic import Field

from filmkb.engine.schemas import ChatMessage
from filmkb.knowledge.schemas import SourceName

# ---------------------------------------------------------------------------
# Input models
# ---------------------------------------------------------------------------


class SearchFilmsInput(BaseModel):
    """Input for search_films tool."""

    query: str = Field(
        min_length=1,
        description="Film title (or part of one) to look up on TMDB.",
    )


class IngestFilmInput(BaseModel):
    """Input for ingest_film tool."""

    film_id: int = Field(
        gt=0,
        description="TMDB film id.",
    )


class GetFilmInput(BaseModel):
    """Input for get_film tool."""

    film_id: int = Field(
        gt=0,
        description="TMDB film id.",
    )


class RetrieveContextInput(BaseModel):
    """Input for retrieve_context tool."""

    film_id: int = Field(
        gt=0,
        description="TMDB film id of an ingested film.",
    )
    query: str = Field(
        description="Free-text question about the film.",
    )
    top_n: int = Field(
        default=7,
        ge=1,
        le=50,
        description="Maximum number of chunks to return.",
    )
    messages: list[ChatMessage] = Field(
        default_factory=list,
        description="Optional chat history; the last message is the question being asked.",
    )


# ---------------------------------------------------------------------------
# Output models: search_films
# ---------------------------------------------------------------------------


class FilmHit(BaseModel):
    """A single search hit."""

    id: int = Field(description="TMDB film id.")
    title: str = Field(description="Film title.")
    year: str = Field(description="Release year, or N/A.")
    poster_url: str | None = Field(default=None, description="Poster image URL.")
    vote_average: float = Field(default=0.0, description="TMDB vote average.")


class SearchFilmsResult(BaseModel):
    """Response from search_films."""

    status: str = Field(default="ok", description="Outcome status (ok, error).")
    error_code: str | None = Field(default=None)
    message: str | None = Field(default=None)
    results: list[FilmHit] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Output models: ingest_film
# ---------------------------------------------------------------------------


class IngestFilmResult(BaseModel):
    """Response from ingest_film."""

    film_id: int = Field(description="TMDB film id.")
    status: str = Field(
        default="ok",
        description="Outcome status (ok, failed, rejected).",
    )
    error_code: str | None = Field(default=None)
    message: str | None = Field(default=None)
    events: list[dict] = Field(
        default_factory=list,
        description="Progress events in the order they were produced.",
    )
    ready: bool = Field(
        default=False,
        description="Whether enough sources loaded for the film to be served.",
    )
    cached: bool = Field(
        default=False,
        description="Whether the record was served from an existing cache tier.",
    )
    loaded_sources: list[SourceName] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Output models: get_film
# ---------------------------------------------------------------------------


class SentimentView(BaseModel):
    critics: str = ""
    audiences: str = ""
    tension: str = ""
    letterboxd_rating: str | None = None
    tomatometer: str | None = None


class FilmSummaryResult(BaseModel):
    """Response from get_film."""

    film_id: int = Field(description="TMDB film id.")
    status: str = Field(
        default="ok",
        description="Outcome status (ok, not_found, rejected).",
    )
    error_code: str | None = Field(default=None)
    message: str | None = Field(default=None)
    title: str | None = Field(default=None)
    year: str | None = Field(default=None)
    director: str | None = Field(default=None)
    runtime: int | None = Field(default=None)
    genres: list[str] = Field(default_factory=list)
    poster_url: str | None = Field(default=None)
    sentiment: SentimentView | None = Field(default=None)
    starter_prompts: list[str] = Field(default_factory=list)
    loaded_sources: list[SourceName] = Field(default_factory=list)
    ready: bool = Field(default=False)
    chunk_count: int = Field(default=0)


# ---------------------------------------------------------------------------
# Output models: retrieve_context
# ---------------------------------------------------------------------------


class ContextChunk(BaseModel):
    """A ranked chunk returned by retrieve_context."""

    id: str = Field(description="Deterministic chunk id.")
    source: SourceName = Field(description="Source the chunk came from.")
    text: str = Field(description="Chunk text.")


class RetrieveContextResult(BaseModel):
    """Response from retrieve_context."""

    film_id: int = Field(description="TMDB film id.")
    query: str = Field(description="Query as submitted.")
    status: str = Field(
        default="ok",
        description="Outcome status (ok, not_found, rejected).",
    )
    error_code: str | None = Field(default=None)
    message: str | None = Field(default=None)
    chunks: list[ContextChunk] = Field(default_factory=list)
    sources: list[SourceName] = Field(
        default_factory=list,
        description="Distinct sources of the returned chunks, in rank order.",
    )
    context: str = Field(
        default="",
        description="Source-labelled context block for a downstream prompt.",
    )
    system_prompt: str = Field(
        default="",
        description="Film companion system prompt for a downstream chat model.",
    )
    messages: list[ChatMessage] = Field(
        default_factory=list,
        description="Trimmed history with the context folded into the last message.",
    )
    retrieval_ms: int | None = Field(default=None)
