"""Unit tests for configuration dataclasses."""

from dataclasses import FrozenInstanceError

import pytest

from filmkb.config import ChunkerConfig
from filmkb.config import DurableStoreConfig
from filmkb.config import IngestionConfig
from filmkb.config import LLMConfig
from filmkb.config import RetrievalConfig
from filmkb.config import TMDBConfig


# ---------------------------------------------------------------------------
# LLMConfig
# ---------------------------------------------------------------------------


class TestLLMConfig:
    def test_defaults(self):
        cfg = LLMConfig()
        assert cfg.provider == "openai"
        assert cfg.model == "gpt-4o-mini"
        assert cfg.api_key is None
        assert cfg.base_url == "https://api.openai.com/v1"
        assert cfg.temperature == 0.2
        assert cfg.max_tokens == 512
        assert cfg.timeout_seconds == 30.0
        assert cfg.json_mode is True


# ---------------------------------------------------------------------------
# Chunking and retrieval
# ---------------------------------------------------------------------------


class TestChunkerConfig:
    def test_defaults(self):
        cfg = ChunkerConfig()
        assert cfg.max_chars == 1800
        assert cfg.min_length == 20


class TestRetrievalConfig:
    def test_defaults(self):
        cfg = RetrievalConfig()
        assert cfg.top_n == 7
        assert cfg.phrase_bonus == 0.5


# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------


class TestIngestionConfig:
    def test_defaults(self):
        cfg = IngestionConfig()
        assert cfg.metadata_timeout_seconds == 20.0
        assert cfg.source_timeout_seconds == 45.0
        assert cfg.excerpt_chars == 160
        assert cfg.derivation_sample_size == 8
        assert cfg.starter_prompt_count == 3

    def test_frozen(self):
        cfg = IngestionConfig()
        with pytest.raises(FrozenInstanceError):
            cfg.excerpt_chars = 10  # type: ignore[misc]


class TestTMDBConfig:
    def test_defaults(self):
        cfg = TMDBConfig()
        assert cfg.api_key is None
        assert cfg.base_url == "https://api.themoviedb.org/3"
        assert cfg.timeout_seconds == 15.0


# ---------------------------------------------------------------------------
# DurableStoreConfig
# ---------------------------------------------------------------------------


class TestDurableStoreConfig:
    def test_defaults(self):
        cfg = DurableStoreConfig()
        assert cfg.backend == "none"
        assert cfg.url is None
        assert cfg.key_prefix == "filmkb"
        assert cfg.chunk_batch_size == 500

    def test_frozen(self):
        cfg = DurableStoreConfig()
        with pytest.raises(FrozenInstanceError):
            cfg.backend = "redis"  # type: ignore[misc]
