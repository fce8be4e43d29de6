"""Unit test fixtures: FastMCP client wired to in-memory collaborators."""

from __future__ import annotations

import pytest
from fastmcp import Client

from filmkb.ingestion.sources import StaticContentSource
from filmkb.knowledge.schemas import SourceName
from filmkb.observability import reset_latency_metrics
from tests.helpers.fakes import FakeMetadataSource
from tests.helpers.fakes import InMemoryDurableStore
from tests.helpers.fakes import make_metadata

MATRIX_OVERVIEW = (
    "Set in the 22nd century, The Matrix tells the story of a computer hacker "
    "who joins a group of underground insurgents fighting the vast and "
    "powerful computers who now rule the earth."
)

LETTERBOXD_REVIEWS = (
    "The lobby shootout is still the most kinetic action sequence of the decade, "
    "choreographed like a ballet and shot with total clarity.",
    "A philosophy seminar disguised as a kung fu picture. The red pill scene "
    "alone justifies its reputation.",
)

REDDIT_THREADS = (
    "Post: Is the ending of The Matrix hopeful?\n\nNeo's final phone call reads "
    "as a promise that the machines will lose their grip on humanity.",
)


@pytest.fixture()
def metadata_source():
    return FakeMetadataSource(
        [
            make_metadata(603, "The Matrix", overview=MATRIX_OVERVIEW),
            make_metadata(604, "The Matrix Reloaded", release_date="2003-05-15"),
        ]
    )


@pytest.fixture()
def durable_store():
    return InMemoryDurableStore()


@pytest.fixture()
async def mcp_client(metadata_source, durable_store):
    """Yield a FastMCP Client wired to the filmkb server."""
    from filmkb.server import configure
    from filmkb.server import mcp
    from filmkb.server import shutdown

    await configure(
        metadata_source=metadata_source,
        content_sources=[
            StaticContentSource(SourceName.letterboxd, LETTERBOXD_REVIEWS, rating="4.3/5"),
            StaticContentSource(SourceName.reddit, REDDIT_THREADS),
        ],
        durable_store=durable_store,
    )

    async with Client(mcp) as client:
        yield client

    await shutdown()


@pytest.fixture(autouse=True)
def clean_metrics():
    """Reset in-process metrics between tests."""
    reset_latency_metrics()
    yield
    reset_latency_metrics()
