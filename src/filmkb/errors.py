"""Exception hierarchy shared across filmkb subsystems."""

from __future__ import annotations


class FilmKBError(Exception):
    """Base class for all filmkb errors."""


class SourceError(FilmKBError):
    """Raised when a metadata or content source cannot produce a result."""


class IngestionError(FilmKBError):
    """Raised when ingestion cannot proceed at all (metadata fetch failed)."""


class LLMError(FilmKBError):
    """Raised by LLM adapters when a call fails."""


class DurableStoreError(FilmKBError):
    """Raised by durable-tier adapters on storage I/O failure."""
