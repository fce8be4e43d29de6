"""Models domain: MCP tool input and result shapes."""

from __future__ import annotations

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

__all__ = [
    "ContextChunk",
    "FilmHit",
    "FilmSummaryResult",
    "GetFilmInput",
    "IngestFilmInput",
    "IngestFilmResult",
    "RetrieveContextInput",
    "RetrieveContextResult",
    "SearchFilmsInput",
    "SearchFilmsResult",
    "SentimentView",
]
