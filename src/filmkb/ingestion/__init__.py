"""Ingestion domain: source collaborators, progress events and the orchestrator."""

from __future__ import annotations

from filmkb.ingestion.events import EventStatus
from filmkb.ingestion.events import IngestionState
from filmkb.ingestion.events import ProgressEvent
from filmkb.ingestion.letterboxd import LetterboxdSource
from filmkb.ingestion.orchestrator import IngestionOrchestrator
from filmkb.ingestion.orchestrator import SourceOutcome
from filmkb.ingestion.reddit import RedditSource
from filmkb.ingestion.rottentomatoes import RottenTomatoesSource
from filmkb.ingestion.sources import CallableContentSource
from filmkb.ingestion.sources import ContentSource
from filmkb.ingestion.sources import FilmSearchSource
from filmkb.ingestion.sources import MetadataSource
from filmkb.ingestion.sources import SourceResult
from filmkb.ingestion.sources import StaticContentSource
from filmkb.ingestion.tmdb import TMDBClient
from filmkb.ingestion.youtube import YouTubeSource

__all__ = [
    "CallableContentSource",
    "ContentSource",
    "EventStatus",
    "FilmSearchSource",
    "IngestionOrchestrator",
    "IngestionState",
    "LetterboxdSource",
    "MetadataSource",
    "ProgressEvent",
    "RedditSource",
    "RottenTomatoesSource",
    "SourceOutcome",
    "SourceResult",
    "StaticContentSource",
    "TMDBClient",
    "YouTubeSource",
]
