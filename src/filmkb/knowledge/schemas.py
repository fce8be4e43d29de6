"""Knowledge domain data models: film metadata, chunks and per-film records."""

from __future__ import annotations

import time
from enum import Enum

from pydantic import BaseModel
from pydantic import Field

# Sources that must be loaded, in total, for a record to be usable.
READY_SOURCE_THRESHOLD = 3


class SourceName(str, Enum):
    """Named knowledge providers. ``tmdb`` is the primary metadata source."""

    tmdb = "tmdb"
    letterboxd = "letterboxd"
    reddit = "reddit"
    rottentomatoes = "rottentomatoes"
    youtube = "youtube"


PRIMARY_SOURCE = SourceName.tmdb


# ---------------------------------------------------------------------------
# Primary metadata
# ---------------------------------------------------------------------------


class Genre(BaseModel):
    model_config = {"frozen": True}

    id: int
    name: str


class CastMember(BaseModel):
    model_config = {"frozen": True, "extra": "ignore"}

    name: str
    character: str = ""
    order: int = 0


class CrewMember(BaseModel):
    model_config = {"frozen": True, "extra": "ignore"}

    name: str
    job: str = ""
    department: str = ""


class Credits(BaseModel):
    model_config = {"frozen": True, "extra": "ignore"}

    cast: list[CastMember] = Field(default_factory=list)
    crew: list[CrewMember] = Field(default_factory=list)


class FilmMetadata(BaseModel):
    """Structured payload from the primary source. Immutable once fetched."""

    model_config = {"frozen": True, "extra": "ignore"}

    id: int
    title: str
    release_date: str = ""
    overview: str = ""
    poster_path: str | None = None
    backdrop_path: str | None = None
    vote_average: float = 0.0
    runtime: int | None = None
    genres: list[Genre] = Field(default_factory=list)
    credits: Credits | None = None

    @property
    def year(self) -> str:
        return self.release_date[:4] if self.release_date else "N/A"

    @property
    def director(self) -> str | None:
        if self.credits is None:
            return None
        for member in self.credits.crew:
            if member.job == "Director":
                return member.name
        return None


class FilmSearchHit(BaseModel):
    """One row of a primary-source title search."""

    model_config = {"extra": "ignore"}

    id: int
    title: str
    release_date: str = ""
    poster_path: str | None = None
    vote_average: float = 0.0


# ---------------------------------------------------------------------------
# Chunks and records
# ---------------------------------------------------------------------------


class Chunk(BaseModel):
    """A bounded fragment of source text, owned by exactly one record."""

    model_config = {"frozen": True}

    id: str = Field(description="Deterministic id: {film_id}-{source}-{index}.")
    film_id: int
    source: SourceName
    text: str = Field(min_length=1)
    metadata: dict[str, str | int | float] | None = None


class SentimentSummary(BaseModel):
    """Derived critics/audiences framing plus scraped external ratings."""

    critics: str = ""
    audiences: str = ""
    tension: str = ""
    letterboxd_rating: str | None = None
    tomatometer: str | None = None


class KnowledgeRecord(BaseModel):
    """Everything known about one film."""

    film_id: int
    metadata: FilmMetadata
    chunks: list[Chunk] = Field(default_factory=list)
    sentiment: SentimentSummary = Field(default_factory=SentimentSummary)
    starter_prompts: list[str] = Field(default_factory=list)
    loaded_sources: list[SourceName] = Field(default_factory=list)
    created_at: float = Field(default_factory=time.time)

    @property
    def is_ready(self) -> bool:
        """Primary source plus at least two content sources have loaded."""
        return (
            PRIMARY_SOURCE in self.loaded_sources
            and len(self.loaded_sources) >= READY_SOURCE_THRESHOLD
        )
