"""Neo4j-backed durable tier.

Graph shape::

    (:Film {film_id, metadata_json, sentiment_json, starter_prompts,
            loaded_sources, created_at})
    (:Chunk {id, film_id, source, text, metadata_json, position})
        -[:CHUNK_OF]->(:Film)

Nested payloads are stored as JSON strings because Neo4j properties cannot
hold maps.  A save is one write transaction covering the film node and all
of its chunks.
"""

from __future__ import annotations

import json

from neo4j import AsyncDriver
from neo4j import AsyncGraphDatabase
from neo4j.exceptions import DriverError
from neo4j.exceptions import Neo4jError
from pydantic import ValidationError

from filmkb.durable.base import batched
from filmkb.errors import DurableStoreError
from filmkb.knowledge.schemas import Chunk
from filmkb.knowledge.schemas import KnowledgeRecord

# ---------------------------------------------------------------------------
# Schema (idempotent)
# ---------------------------------------------------------------------------

_SCHEMA_STATEMENTS = [
    "CREATE CONSTRAINT film_unique_id IF NOT EXISTS FOR (f:Film) REQUIRE f.film_id IS UNIQUE",
    "CREATE CONSTRAINT chunk_unique_id IF NOT EXISTS FOR (c:Chunk) REQUIRE c.id IS UNIQUE",
    "CREATE INDEX chunk_film IF NOT EXISTS FOR (c:Chunk) ON (c.film_id)",
]


async def init_schema(driver: AsyncDriver) -> None:
    """Create constraints and indexes, one statement per transaction."""
    async with driver.session() as session:
        for stmt in _SCHEMA_STATEMENTS:
            await session.run(stmt)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

_LOAD_FILM = "MATCH (f:Film {film_id: $film_id}) RETURN properties(f) AS props"

_LOAD_CHUNKS = (
    "MATCH (c:Chunk {film_id: $film_id}) "
    "RETURN properties(c) AS props ORDER BY c.position"
)

_UPSERT_FILM = "MERGE (f:Film {film_id: $film_id}) SET f += $props"

_DELETE_CHUNKS = "MATCH (c:Chunk {film_id: $film_id}) DETACH DELETE c"

_INSERT_CHUNKS = (
    "MATCH (f:Film {film_id: $film_id}) "
    "UNWIND $rows AS row "
    "CREATE (c:Chunk) SET c = row "
    "CREATE (c)-[:CHUNK_OF]->(f)"
)


def _film_props(record: KnowledgeRecord) -> dict:
    return {
        "metadata_json": record.metadata.model_dump_json(),
        "sentiment_json": record.sentiment.model_dump_json(),
        "starter_prompts": list(record.starter_prompts),
        "loaded_sources": [s.value for s in record.loaded_sources],
        "created_at": record.created_at,
    }


def _chunk_row(chunk: Chunk, position: int) -> dict:
    row: dict = {
        "id": chunk.id,
        "film_id": chunk.film_id,
        "source": chunk.source.value,
        "text": chunk.text,
        "position": position,
    }
    if chunk.metadata is not None:
        row["metadata_json"] = json.dumps(chunk.metadata)
    return row


def _chunk_from_props(props: dict) -> Chunk:
    metadata_json = props.get("metadata_json")
    return Chunk(
        id=props["id"],
        film_id=props["film_id"],
        source=props["source"],
        text=props["text"],
        metadata=json.loads(metadata_json) if metadata_json else None,
    )


# ---------------------------------------------------------------------------
# Neo4jDurableStore
# ---------------------------------------------------------------------------


class Neo4jDurableStore:
    """``DurableStore`` implementation on a Neo4j graph."""

    def __init__(self, driver: AsyncDriver) -> None:
        self._driver = driver

    @classmethod
    async def from_url(cls, url: str) -> Neo4jDurableStore:
        driver = AsyncGraphDatabase.driver(url)
        await init_schema(driver)
        return cls(driver)

    async def load_record(self, film_id: int) -> KnowledgeRecord | None:
        try:
            async with self._driver.session() as session:
                result = await session.run(_LOAD_FILM, film_id=film_id)
                film = await result.single()
                if film is None:
                    return None
                result = await session.run(_LOAD_CHUNKS, film_id=film_id)
                chunk_props = [record["props"] async for record in result]
        except (Neo4jError, DriverError) as exc:
            raise DurableStoreError(f"neo4j load failed: {exc}") from exc

        props = film["props"]
        try:
            return KnowledgeRecord(
                film_id=film_id,
                metadata=json.loads(props["metadata_json"]),
                sentiment=json.loads(props.get("sentiment_json") or "{}"),
                starter_prompts=list(props.get("starter_prompts") or []),
                loaded_sources=list(props.get("loaded_sources") or []),
                created_at=props.get("created_at", 0.0),
                chunks=[_chunk_from_props(p) for p in chunk_props],
            )
        except (KeyError, ValueError, ValidationError) as exc:
            raise DurableStoreError(
                f"stored record for film {film_id} is malformed: {exc}"
            ) from exc

    async def save_record(
        self, record: KnowledgeRecord, *, batch_size: int = 500
    ) -> None:
        film_id = record.film_id
        props = _film_props(record)
        batches = batched(record.chunks, batch_size)

        async def _write(tx) -> None:
            result = await tx.run(_UPSERT_FILM, film_id=film_id, props=props)
            await result.consume()
            result = await tx.run(_DELETE_CHUNKS, film_id=film_id)
            await result.consume()
            offset = 0
            for batch in batches:
                rows = [_chunk_row(chunk, offset + idx) for idx, chunk in enumerate(batch)]
                result = await tx.run(_INSERT_CHUNKS, film_id=film_id, rows=rows)
                await result.consume()
                offset += len(batch)

        try:
            async with self._driver.session() as session:
                await session.execute_write(_write)
        except (Neo4jError, DriverError) as exc:
            raise DurableStoreError(f"neo4j save failed: {exc}") from exc

    async def close(self) -> None:
        await self._driver.close()
