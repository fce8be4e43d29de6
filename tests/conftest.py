"""Shared fixtures for the durable-tier suites.

``tests/unit`` runs without Docker.  ``tests/integration`` asks for a Redis
or Neo4j backend; each container is started on first use and reused for
the rest of the session.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from pathlib import Path

import pytest
from dotenv import load_dotenv
from neo4j import AsyncGraphDatabase
from redis import Redis as SyncRedis
from redis.asyncio import Redis
from testcontainers.core.container import DockerContainer

from filmkb.durable.neo4j_store import Neo4jDurableStore
from filmkb.durable.neo4j_store import init_schema
from filmkb.durable.redis_store import RedisDurableStore

logger = logging.getLogger(__name__)

ROOT = Path(__file__).resolve().parents[1]
REDIS_IMAGE = "redis:7-alpine"
NEO4J_IMAGE = "neo4j:5-community"
TEST_KEY_PREFIX = "test"

load_dotenv(ROOT / ".env", override=False)


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    """Mark each test ``unit`` or ``integration`` by its directory."""
    for item in items:
        suite = Path(str(item.fspath)).resolve().parent.name
        if suite in ("unit", "integration"):
            item.add_marker(getattr(pytest.mark, suite))


def _wait_until_ready(probe: Callable[[], None], label: str, attempts: int = 30) -> None:
    for attempt in range(1, attempts + 1):
        try:
            probe()
            return
        except Exception as exc:
            if attempt == attempts:
                raise
            logger.debug("%s not ready (%d/%d): %s", label, attempt, attempts, exc)
            time.sleep(1)


# ---------------------------------------------------------------------------
# Redis backend
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def redis_container():
    """Yield the URL of a session-wide Redis container."""
    with DockerContainer(REDIS_IMAGE).with_exposed_ports(6379) as container:
        host = container.get_container_host_ip()
        port = int(container.get_exposed_port(6379))

        def _ping() -> None:
            client = SyncRedis(host=host, port=port)
            try:
                client.ping()
            finally:
                client.close()

        _wait_until_ready(_ping, "Redis")
        yield f"redis://{host}:{port}"


@pytest.fixture()
async def clean_redis(redis_container):
    """Async client on an empty database."""
    client = Redis.from_url(redis_container)
    await client.flushdb()
    yield client
    await client.aclose()


@pytest.fixture()
def redis_durable(clean_redis) -> RedisDurableStore:
    return RedisDurableStore(clean_redis, key_prefix=TEST_KEY_PREFIX)


# ---------------------------------------------------------------------------
# Neo4j backend
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def neo4j_container():
    """Yield the bolt URI of a session-wide Neo4j container (auth disabled)."""
    container = (
        DockerContainer(NEO4J_IMAGE)
        .with_exposed_ports(7687)
        .with_env("NEO4J_AUTH", "none")
    )
    with container:
        uri = (
            f"bolt://{container.get_container_host_ip()}:"
            f"{container.get_exposed_port(7687)}"
        )

        async def _verify() -> None:
            driver = AsyncGraphDatabase.driver(uri)
            try:
                await driver.verify_connectivity()
            finally:
                await driver.close()

        _wait_until_ready(lambda: asyncio.run(_verify()), "Neo4j")
        yield uri


@pytest.fixture()
async def clean_neo4j(neo4j_container):
    """Async driver on an empty graph with the filmkb schema in place."""
    driver = AsyncGraphDatabase.driver(neo4j_container)
    async with driver.session() as session:
        result = await session.run("MATCH (n) DETACH DELETE n")
        await result.consume()
    await init_schema(driver)
    yield driver
    await driver.close()


@pytest.fixture()
def neo4j_durable(clean_neo4j) -> Neo4jDurableStore:
    return Neo4jDurableStore(clean_neo4j)
