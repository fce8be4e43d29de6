"""Lexical retrieval over a film's chunks.

Scoring is token-set overlap normalized by query size, plus a flat bonus
when the chunk contains the whole meaningful query as a phrase.  Queries
with no meaningful tokens fall back to storage order so a vague question
still gets context.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from time import perf_counter

from filmkb.config import RetrievalConfig
from filmkb.knowledge.schemas import Chunk
from filmkb.knowledge.schemas import KnowledgeRecord
from filmkb.knowledge.schemas import SourceName
from filmkb.observability import record_latency

# "film" and "movie" appear in nearly every chunk and carry no signal.
STOPWORDS = frozenset(
    {
        "the", "a", "an", "is", "was", "are", "were", "be", "been", "being",
        "have", "has", "had", "do", "does", "did", "will", "would", "could",
        "should", "may", "might", "shall", "can", "that", "this", "these",
        "those", "it", "its", "of", "in", "on", "at", "to", "for", "with",
        "by", "from", "up", "about", "into", "through", "and", "or", "but",
        "if", "as", "not", "what", "which", "who", "how", "why", "when",
        "where", "all", "just", "so", "very", "film", "movie",
    }
)  # fmt: skip

_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")

_DEFAULT_CONFIG = RetrievalConfig()


def tokenize(text: str) -> list[str]:
    """Return meaningful tokens of *text*, deduplicated in first-seen order."""
    cleaned = _NON_ALNUM_RE.sub(" ", text.lower())
    tokens = (t for t in cleaned.split() if len(t) > 2 and t not in STOPWORDS)
    return list(dict.fromkeys(tokens))


def score_chunk(
    query_tokens: Sequence[str],
    chunk: Chunk,
    *,
    phrase_bonus: float = _DEFAULT_CONFIG.phrase_bonus,
) -> float:
    chunk_tokens = set(tokenize(chunk.text))
    overlap = sum(1 for token in query_tokens if token in chunk_tokens)
    score = overlap / max(len(query_tokens), 1)

    phrase = " ".join(query_tokens)
    if len(phrase) > 3 and phrase in chunk.text.lower():
        score += phrase_bonus
    return score


def retrieve_chunks(
    query: str,
    chunks: Sequence[Chunk],
    top_n: int = _DEFAULT_CONFIG.top_n,
    *,
    phrase_bonus: float = _DEFAULT_CONFIG.phrase_bonus,
) -> list[Chunk]:
    """Return up to *top_n* chunks ordered by descending relevance.

    Ties keep their input order (``sorted`` is stable).
    """
    if not chunks or top_n <= 0:
        return []

    query_tokens = tokenize(query)
    if not query_tokens:
        return list(chunks[:top_n])

    scored = [
        (score_chunk(query_tokens, chunk, phrase_bonus=phrase_bonus), chunk)
        for chunk in chunks
    ]
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [chunk for _, chunk in scored[:top_n]]


# ---------------------------------------------------------------------------
# Retrieval consumer
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RetrievedContext:
    """Ranked chunks for one query plus the sources they came from."""

    film_id: int
    query: str
    chunks: list[Chunk]
    sources: list[SourceName]
    retrieval_ms: int


class RetrievalService:
    """Ranks a record's chunks for a downstream generation prompt."""

    def __init__(self, config: RetrievalConfig | None = None) -> None:
        self._config = config or RetrievalConfig()

    def retrieve(
        self,
        record: KnowledgeRecord,
        query: str,
        *,
        top_n: int | None = None,
    ) -> RetrievedContext:
        start = perf_counter()
        ranked = retrieve_chunks(
            query,
            record.chunks,
            top_n if top_n is not None else self._config.top_n,
            phrase_bonus=self._config.phrase_bonus,
        )
        sources = list(dict.fromkeys(chunk.source for chunk in ranked))
        elapsed_ms = (perf_counter() - start) * 1000
        record_latency(operation="retrieval.retrieve", duration_ms=elapsed_ms)
        return RetrievedContext(
            film_id=record.film_id,
            query=query,
            chunks=ranked,
            sources=sources,
            retrieval_ms=int(elapsed_ms),
        )
