"""Application configuration dataclasses.

Frozen dataclasses with sensible defaults for each subsystem.
No env-var loading here; ``filmkb.server.main`` reads the environment
and overrides these defaults at construction time.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class LLMConfig:
    """LLM provider settings used by the summary derivation step."""

    provider: str = "openai"
    model: str = "gpt-4o-mini"
    api_key: str | None = None
    base_url: str = "https://api.openai.com/v1"
    temperature: float = 0.2
    max_tokens: int = 512
    timeout_seconds: float = 30.0
    # Ask the provider for a bare JSON object (response_format=json_object)
    json_mode: bool = True


@dataclass(frozen=True)
class ChunkerConfig:
    """Chunk size budget and noise threshold for the paragraph chunker."""

    # ~450 tokens
    max_chars: int = 1800
    # Paragraphs (and trailing buffers) at or under this length are dropped
    min_length: int = 20


@dataclass(frozen=True)
class RetrievalConfig:
    """Lexical ranker tuning."""

    top_n: int = 7
    phrase_bonus: float = 0.5


@dataclass(frozen=True)
class IngestionConfig:
    """Tuneable parameters for the ingestion orchestrator."""

    metadata_timeout_seconds: float = 20.0
    source_timeout_seconds: float = 45.0
    excerpt_chars: int = 160
    derivation_sample_size: int = 8
    starter_prompt_count: int = 3


@dataclass(frozen=True)
class TMDBConfig:
    """Primary metadata provider settings."""

    api_key: str | None = None
    base_url: str = "https://api.themoviedb.org/3"
    timeout_seconds: float = 15.0


@dataclass(frozen=True)
class DurableStoreConfig:
    """Durable (L2) tier settings.

    ``backend`` is one of ``none``, ``redis`` or ``neo4j``.
    """

    backend: str = "none"
    url: str | None = None
    key_prefix: str = "filmkb"
    chunk_batch_size: int = 500
