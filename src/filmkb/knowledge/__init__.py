"""Knowledge domain: chunking, per-film records and the tiered store."""

from __future__ import annotations

from filmkb.knowledge.schemas import Chunk
from filmkb.knowledge.schemas import FilmMetadata
from filmkb.knowledge.schemas import FilmSearchHit
from filmkb.knowledge.schemas import KnowledgeRecord
from filmkb.knowledge.schemas import PRIMARY_SOURCE
from filmkb.knowledge.schemas import SentimentSummary
from filmkb.knowledge.schemas import SourceName
from filmkb.knowledge.chunker import chunk_text
from filmkb.knowledge.store import KnowledgeStore

__all__ = [
    "Chunk",
    "FilmMetadata",
    "FilmSearchHit",
    "KnowledgeRecord",
    "KnowledgeStore",
    "PRIMARY_SOURCE",
    "SentimentSummary",
    "SourceName",
    "chunk_text",
]
