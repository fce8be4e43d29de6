"""Unit tests for durable-tier write atomicity.

Recording fakes stand in for the Redis and Neo4j clients; the real
backends are covered by the integration suite.
"""

from __future__ import annotations

import pytest
from neo4j.exceptions import ServiceUnavailable
from redis.exceptions import ConnectionError as RedisConnectionError

from filmkb.durable.neo4j_store import Neo4jDurableStore
from filmkb.durable.redis_store import RedisDurableStore
from filmkb.errors import DurableStoreError
from filmkb.knowledge.schemas import Chunk
from filmkb.knowledge.schemas import KnowledgeRecord
from filmkb.knowledge.schemas import SourceName
from tests.helpers.fakes import make_metadata


def _record(chunk_count: int) -> KnowledgeRecord:
    return KnowledgeRecord(
        film_id=603,
        metadata=make_metadata(603),
        loaded_sources=[SourceName.tmdb, SourceName.reddit, SourceName.youtube],
        chunks=[
            Chunk(
                id=f"603-reddit-{i}",
                film_id=603,
                source=SourceName.reddit,
                text=f"Thread {i} about the lobby scene.",
            )
            for i in range(chunk_count)
        ],
    )


# ---------------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------------


class _RecordingPipeline:
    def __init__(self, client: _RecordingRedis, transaction: bool) -> None:
        self.client = client
        self.transaction = transaction
        self.ops: list[tuple] = []

    def delete(self, *keys):
        self.ops.append(("delete", *keys))

    def rpush(self, key, *values):
        self.ops.append(("rpush", key, len(values)))

    def set(self, key, value):
        self.ops.append(("set", key))

    async def execute(self):
        self.client.executed.append(self)
        if self.client.fail:
            raise RedisConnectionError("Connection reset by peer")
        return [True] * len(self.ops)


class _RecordingRedis:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.executed: list[_RecordingPipeline] = []

    def pipeline(self, transaction: bool = True) -> _RecordingPipeline:
        return _RecordingPipeline(self, transaction)


class TestRedisSave:
    async def test_record_and_chunks_share_one_transaction(self):
        client = _RecordingRedis()
        await RedisDurableStore(client, key_prefix="t").save_record(_record(5), batch_size=2)

        (pipe,) = client.executed
        assert pipe.transaction is True
        assert pipe.ops == [
            ("delete", "t:chunks:603"),
            ("rpush", "t:chunks:603", 2),
            ("rpush", "t:chunks:603", 2),
            ("rpush", "t:chunks:603", 1),
            ("set", "t:film:603"),
        ]

    async def test_execute_failure_is_durable_store_error(self):
        client = _RecordingRedis(fail=True)
        with pytest.raises(DurableStoreError, match="redis save failed"):
            await RedisDurableStore(client).save_record(_record(2))
        assert len(client.executed) == 1


# ---------------------------------------------------------------------------
# Neo4j
# ---------------------------------------------------------------------------


class _Result:
    async def consume(self):
        return None


class _RecordingTx:
    def __init__(self, fail_on: str | None) -> None:
        self.fail_on = fail_on
        self.queries: list[tuple[str, dict]] = []

    async def run(self, query, **params):
        if self.fail_on and self.fail_on in query:
            raise ServiceUnavailable("connection lost mid-transaction")
        self.queries.append((query, params))
        return _Result()


class _RecordingSession:
    def __init__(self, driver: _RecordingDriver) -> None:
        self.driver = driver

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def run(self, query, **params):
        raise AssertionError("writes must go through execute_write")

    async def execute_write(self, work):
        tx = _RecordingTx(self.driver.fail_on)
        self.driver.transactions.append(tx)
        return await work(tx)


class _RecordingDriver:
    def __init__(self, *, fail_on: str | None = None) -> None:
        self.fail_on = fail_on
        self.transactions: list[_RecordingTx] = []

    def session(self):
        return _RecordingSession(self)


class TestNeo4jSave:
    async def test_film_and_chunks_share_one_write_transaction(self):
        driver = _RecordingDriver()
        await Neo4jDurableStore(driver).save_record(_record(5), batch_size=2)

        (tx,) = driver.transactions
        queries = [query for query, _ in tx.queries]
        assert queries[0].startswith("MERGE (f:Film")
        assert "DETACH DELETE" in queries[1]
        assert len(queries) == 5
        positions = [row["position"] for _, params in tx.queries[2:] for row in params["rows"]]
        assert positions == [0, 1, 2, 3, 4]

    async def test_failed_insert_is_durable_store_error(self):
        driver = _RecordingDriver(fail_on="UNWIND")
        with pytest.raises(DurableStoreError, match="neo4j save failed"):
            await Neo4jDurableStore(driver).save_record(_record(3))
        assert len(driver.transactions) == 1
