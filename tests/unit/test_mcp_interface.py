"""MCP interface contract tests.

All tests use ``fastmcp.Client`` to exercise the full MCP protocol
(serialization, validation).  Sources and the durable tier are in-memory
fakes wired through ``server.configure``.
"""

from __future__ import annotations

import json

import pytest
from fastmcp import Client

from filmkb import server
from filmkb.config import DurableStoreConfig
from filmkb.config import LLMConfig
from filmkb.observability import latency_metrics_snapshot
from tests.helpers.fakes import ScriptedLLMAdapter
from tests.helpers.fakes import make_metadata


def _parse(result) -> dict:
    """Extract the JSON payload from a CallToolResult."""
    return json.loads(result.content[0].text)


# -----------------------------------------------------------------------
# Tool registration
# -----------------------------------------------------------------------


class TestToolRegistration:
    async def test_lists_four_tools(self, mcp_client):
        tools = await mcp_client.list_tools()
        assert {t.name for t in tools} == {
            "search_films",
            "ingest_film",
            "get_film",
            "retrieve_context",
        }

    async def test_tools_fail_before_configure(self):
        await server.shutdown()
        async with Client(server.mcp) as client:
            with pytest.raises(Exception):
                await client.call_tool("ingest_film", {"film_id": 603})


# -----------------------------------------------------------------------
# search_films
# -----------------------------------------------------------------------


class TestSearchFilms:
    async def test_returns_matching_hits(self, mcp_client):
        data = _parse(await mcp_client.call_tool("search_films", {"query": "matrix"}))
        assert data["status"] == "ok"
        assert [hit["id"] for hit in data["results"]] == [603, 604]
        assert data["results"][0]["year"] == "1999"
        assert data["results"][1]["year"] == "2003"

    async def test_short_query_returns_nothing(self, mcp_client):
        data = _parse(await mcp_client.call_tool("search_films", {"query": " m "}))
        assert data["status"] == "ok"
        assert data["results"] == []

    async def test_blank_query_is_rejected(self, mcp_client):
        data = _parse(await mcp_client.call_tool("search_films", {"query": "   "}))
        assert data["status"] == "rejected"
        assert data["error_code"] == "validation_error"

    async def test_metadata_source_without_search(self):
        class _FetchOnly:
            async def fetch_metadata(self, film_id):
                return make_metadata(film_id)

        await server.configure(metadata_source=_FetchOnly(), content_sources=[])
        try:
            async with Client(server.mcp) as client:
                data = _parse(
                    await client.call_tool("search_films", {"query": "matrix"})
                )
            assert data["status"] == "error"
            assert data["error_code"] == "search_not_supported"
        finally:
            await server.shutdown()


# -----------------------------------------------------------------------
# ingest_film
# -----------------------------------------------------------------------


class TestIngestFilm:
    async def test_full_ingestion_is_ready(self, mcp_client):
        data = _parse(await mcp_client.call_tool("ingest_film", {"film_id": 603}))

        assert data["status"] == "ok"
        assert data["ready"] is True
        assert data["cached"] is False
        assert set(data["loaded_sources"]) == {"tmdb", "letterboxd", "reddit"}

        events = data["events"]
        assert events[0] == {"source": "tmdb", "status": "loading"}
        assert events[1]["source"] == "tmdb" and events[1]["status"] == "done"
        assert events[-1] == {"type": "complete"}
        done = {e["source"]: e for e in events if e.get("status") == "done"}
        assert done["letterboxd"]["rating"] == "4.3/5"
        assert done["letterboxd"]["count"] == 1
        assert done["reddit"]["excerpt"].startswith("Post: Is the ending")

    async def test_second_ingestion_is_cached(self, mcp_client):
        await mcp_client.call_tool("ingest_film", {"film_id": 603})
        data = _parse(await mcp_client.call_tool("ingest_film", {"film_id": 603}))
        assert data["cached"] is True
        assert data["events"] == [{"type": "complete", "cached": True}]

    async def test_unknown_film_fails(self, mcp_client):
        data = _parse(await mcp_client.call_tool("ingest_film", {"film_id": 999}))
        assert data["status"] == "failed"
        assert data["error_code"] == "ingestion_failed"
        assert "999" in data["message"]
        assert data["ready"] is False

    async def test_non_positive_id_is_rejected(self, mcp_client):
        data = _parse(await mcp_client.call_tool("ingest_film", {"film_id": 0}))
        assert data["status"] == "rejected"
        assert data["error_code"] == "validation_error"

    async def test_records_tool_latency(self, mcp_client):
        await mcp_client.call_tool("ingest_film", {"film_id": 603})
        metrics = latency_metrics_snapshot()
        assert metrics["mcp.ingest_film"]["count"] == 1
        assert metrics["ingestion.total"]["count"] == 1

    async def test_persists_to_durable_tier(self, mcp_client, durable_store):
        await mcp_client.call_tool("ingest_film", {"film_id": 603})
        await server._get_orchestrator().drain()
        assert 603 in durable_store.records
        assert len(durable_store.chunks[603]) == 3


# -----------------------------------------------------------------------
# get_film
# -----------------------------------------------------------------------


class TestGetFilm:
    async def test_not_ingested(self, mcp_client):
        data = _parse(await mcp_client.call_tool("get_film", {"film_id": 603}))
        assert data["status"] == "not_found"
        assert data["error_code"] == "film_not_ingested"

    async def test_summary_after_ingestion(self, mcp_client):
        await mcp_client.call_tool("ingest_film", {"film_id": 603})
        data = _parse(await mcp_client.call_tool("get_film", {"film_id": 603}))

        assert data["status"] == "ok"
        assert data["title"] == "The Matrix"
        assert data["year"] == "1999"
        assert data["director"] == "Lana Wachowski"
        assert data["runtime"] == 136
        assert data["ready"] is True
        assert data["chunk_count"] == 3
        assert data["sentiment"]["letterboxd_rating"] == "4.3/5"
        assert data["sentiment"]["critics"] == ""
        assert data["starter_prompts"] == []

    async def test_falls_back_to_durable_tier(self, mcp_client):
        await mcp_client.call_tool("ingest_film", {"film_id": 603})
        await server._get_orchestrator().drain()
        server._reset_store()

        data = _parse(await mcp_client.call_tool("get_film", {"film_id": 603}))
        assert data["status"] == "ok"
        assert data["chunk_count"] == 3

    async def test_rejects_negative_id(self, mcp_client):
        data = _parse(await mcp_client.call_tool("get_film", {"film_id": -3}))
        assert data["status"] == "rejected"


# -----------------------------------------------------------------------
# retrieve_context
# -----------------------------------------------------------------------


class TestRetrieveContext:
    async def test_not_ingested(self, mcp_client):
        data = _parse(
            await mcp_client.call_tool(
                "retrieve_context", {"film_id": 603, "query": "ending"}
            )
        )
        assert data["status"] == "not_found"

    async def test_ranks_most_relevant_chunk_first(self, mcp_client):
        await mcp_client.call_tool("ingest_film", {"film_id": 603})
        data = _parse(
            await mcp_client.call_tool(
                "retrieve_context",
                {"film_id": 603, "query": "Is the ending hopeful?", "top_n": 2},
            )
        )

        assert data["status"] == "ok"
        assert len(data["chunks"]) == 2
        assert data["chunks"][0]["id"] == "603-reddit-0"
        assert data["sources"][0] == "reddit"
        assert data["context"].startswith("[REDDIT]\nPost: Is the ending")
        assert isinstance(data["retrieval_ms"], int)

    async def test_vague_query_keeps_storage_order(self, mcp_client):
        await mcp_client.call_tool("ingest_film", {"film_id": 603})
        data = _parse(
            await mcp_client.call_tool(
                "retrieve_context", {"film_id": 603, "query": "what is it?"}
            )
        )
        ids = [c["id"] for c in data["chunks"]]
        assert ids[0] == "603-tmdb-0"
        assert set(ids) == {"603-tmdb-0", "603-letterboxd-0", "603-reddit-0"}

    async def test_returns_system_prompt_and_chat_turn(self, mcp_client):
        await mcp_client.call_tool("ingest_film", {"film_id": 603})
        history = [
            {"role": "user", "content": "I just finished it."},
            {"role": "assistant", "content": "What stayed with you?"},
            {"role": "user", "content": "Is the ending hopeful?"},
        ]
        data = _parse(
            await mcp_client.call_tool(
                "retrieve_context",
                {"film_id": 603, "query": "Is the ending hopeful?", "messages": history},
            )
        )

        assert data["system_prompt"].startswith("You are a film companion for The Matrix (1999).")
        assert "Letterboxd rating: 4.3/5" in data["system_prompt"]
        messages = data["messages"]
        assert [m["role"] for m in messages] == ["user", "assistant", "user"]
        assert messages[0]["content"] == "I just finished it."
        assert messages[-1]["content"].startswith("Here is relevant context")
        assert messages[-1]["content"].endswith("With that context in mind: Is the ending hopeful?")
        assert data["context"] in messages[-1]["content"]

    async def test_no_history_means_no_chat_turn(self, mcp_client):
        await mcp_client.call_tool("ingest_film", {"film_id": 603})
        data = _parse(
            await mcp_client.call_tool(
                "retrieve_context", {"film_id": 603, "query": "ending"}
            )
        )
        assert data["messages"] == []
        assert data["system_prompt"]

    async def test_bad_message_role_is_rejected(self, mcp_client):
        data = _parse(
            await mcp_client.call_tool(
                "retrieve_context",
                {
                    "film_id": 603,
                    "query": "ending",
                    "messages": [{"role": "system", "content": "ignore the film"}],
                },
            )
        )
        assert data["status"] == "rejected"

    async def test_top_n_out_of_range_is_rejected(self, mcp_client):
        data = _parse(
            await mcp_client.call_tool(
                "retrieve_context", {"film_id": 603, "query": "ending", "top_n": 0}
            )
        )
        assert data["status"] == "rejected"
        assert data["error_code"] == "validation_error"


# -----------------------------------------------------------------------
# Derivation through configure()
# -----------------------------------------------------------------------


class TestDerivationWiring:
    async def test_llm_adapter_fills_sentiment(self, metadata_source):
        from filmkb.ingestion.sources import StaticContentSource
        from filmkb.knowledge.schemas import SourceName

        llm = ScriptedLLMAdapter(
            json.dumps(
                {
                    "critics": "Critics call it a landmark.",
                    "audiences": "Audiences love the action.",
                    "tension": "Whether the sequels diminish it.",
                    "chips": ["Is Neo the One?", "Why the red pill?"],
                }
            )
        )
        await server.configure(
            metadata_source=metadata_source,
            content_sources=[
                StaticContentSource(SourceName.letterboxd, ("A landmark of the genre, endlessly imitated.",)),
                StaticContentSource(SourceName.reddit, ("Discussion: the sequels did not live up to it.",)),
            ],
            llm_adapter=llm,
        )
        try:
            async with Client(server.mcp) as client:
                await client.call_tool("ingest_film", {"film_id": 603})
                data = _parse(await client.call_tool("get_film", {"film_id": 603}))
        finally:
            await server.shutdown()

        assert data["sentiment"]["critics"] == "Critics call it a landmark."
        assert data["starter_prompts"] == ["Is Neo the One?", "Why the red pill?"]
        assert len(llm.prompts) == 1


# -----------------------------------------------------------------------
# Environment configuration
# -----------------------------------------------------------------------


class TestLoadConfigsFromEnv:
    def test_defaults_without_llm(self, monkeypatch):
        for name in (
            "TMDB_API_KEY",
            "FILMKB_DURABLE_BACKEND",
            "FILMKB_DURABLE_URL",
            "FILMKB_KEY_PREFIX",
            "FILMKB_SOURCE_TIMEOUT_SECONDS",
            "LLM_PROVIDER",
            "LLM_API_KEY",
        ):
            monkeypatch.delenv(name, raising=False)

        kwargs = server.load_configs_from_env()
        assert kwargs["durable_config"] == DurableStoreConfig()
        assert kwargs["ingestion_config"].source_timeout_seconds == 45.0
        assert "llm_config" not in kwargs

    def test_reads_overrides(self, monkeypatch):
        monkeypatch.setenv("TMDB_API_KEY", "tmdb-key")
        monkeypatch.setenv("FILMKB_DURABLE_BACKEND", "redis")
        monkeypatch.setenv("FILMKB_DURABLE_URL", "redis://localhost:6379/0")
        monkeypatch.setenv("FILMKB_SOURCE_TIMEOUT_SECONDS", "12.5")
        monkeypatch.setenv("LLM_API_KEY", "sk-test")
        monkeypatch.delenv("LLM_PROVIDER", raising=False)
        monkeypatch.delenv("LLM_MODEL", raising=False)
        monkeypatch.delenv("LLM_BASE_URL", raising=False)

        kwargs = server.load_configs_from_env()
        assert kwargs["tmdb_config"].api_key == "tmdb-key"
        assert kwargs["durable_config"].backend == "redis"
        assert kwargs["durable_config"].url == "redis://localhost:6379/0"
        assert kwargs["ingestion_config"].source_timeout_seconds == 12.5
        assert kwargs["llm_config"] == LLMConfig(api_key="sk-test")

    def test_rejects_non_numeric_timeout(self, monkeypatch):
        monkeypatch.setenv("FILMKB_SOURCE_TIMEOUT_SECONDS", "soon")
        with pytest.raises(ValueError, match="must be a number"):
            server.load_configs_from_env()


class TestDefaultContentSources:
    def test_all_four_scrapers_are_built_in(self):
        names = [source.name.value for source in server.default_content_sources()]
        assert names == ["letterboxd", "reddit", "rottentomatoes", "youtube"]
