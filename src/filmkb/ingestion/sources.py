"""Source collaborator protocols and shared result types.

The orchestrator only ever sees these shapes.  Site-specific fetching lives
in the concrete source modules (or in caller-supplied implementations).
"""

from __future__ import annotations

from collections.abc import Awaitable
from collections.abc import Callable
from collections.abc import Sequence
from dataclasses import dataclass
from dataclasses import field
from typing import Protocol
from typing import runtime_checkable

from filmkb.knowledge.schemas import FilmMetadata
from filmkb.knowledge.schemas import FilmSearchHit
from filmkb.knowledge.schemas import SourceName


@dataclass(frozen=True)
class SourceResult:
    """Raw output of one content-source fetch.

    ``texts`` are chunked by the orchestrator as a single batch; ``metadata``
    is attached to every resulting chunk.  ``max_chunks`` caps how many of
    the resulting chunks are kept.
    """

    texts: Sequence[str] = ()
    rating: str | None = None
    metadata: dict[str, str | int | float] | None = None
    max_chunks: int | None = None


EMPTY_RESULT = SourceResult()


@runtime_checkable
class MetadataSource(Protocol):
    """Primary metadata provider."""

    async def fetch_metadata(self, film_id: int) -> FilmMetadata:
        """Return metadata for *film_id* or raise ``SourceError``."""


@runtime_checkable
class ContentSource(Protocol):
    """One named content provider, fetched concurrently with its siblings."""

    @property
    def name(self) -> SourceName: ...

    async def fetch(self, film_id: int, metadata: FilmMetadata) -> SourceResult:
        """Return raw text for the film; an empty result means nothing found."""


@dataclass
class StaticContentSource:
    """Content source that serves fixed texts (fixtures, offline corpora)."""

    source_name: SourceName
    texts: Sequence[str] = ()
    rating: str | None = None
    by_film: dict[int, Sequence[str]] = field(default_factory=dict)

    @property
    def name(self) -> SourceName:
        return self.source_name

    async def fetch(self, film_id: int, metadata: FilmMetadata) -> SourceResult:
        texts = self.by_film.get(film_id, self.texts)
        return SourceResult(texts=tuple(texts), rating=self.rating)


@dataclass
class CallableContentSource:
    """Adapts an async callable into a ``ContentSource``."""

    source_name: SourceName
    func: Callable[[int, FilmMetadata], Awaitable[SourceResult]]

    @property
    def name(self) -> SourceName:
        return self.source_name

    async def fetch(self, film_id: int, metadata: FilmMetadata) -> SourceResult:
        return await self.func(film_id, metadata)


@runtime_checkable
class FilmSearchSource(Protocol):
    """Metadata provider that can also look films up by title."""

    async def search_films(self, query: str) -> list[FilmSearchHit]:
        """Return search hits in provider relevance order."""
