"""Durable (L2) tier: protocol, Redis and Neo4j adapters.

Exports are loaded lazily so importing the protocol does not pull in both
backend drivers, and to avoid an import cycle with ``filmkb.knowledge``.
"""

from __future__ import annotations

from importlib import import_module

from filmkb.config import DurableStoreConfig

__all__ = [
    "DurableStore",
    "Neo4jDurableStore",
    "RedisDurableStore",
    "build_durable_store",
    "init_schema",
]


_EXPORT_TO_MODULE = {
    "DurableStore": "filmkb.durable.base",
    "Neo4jDurableStore": "filmkb.durable.neo4j_store",
    "init_schema": "filmkb.durable.neo4j_store",
    "RedisDurableStore": "filmkb.durable.redis_store",
}


def __getattr__(name: str):
    module_name = _EXPORT_TO_MODULE.get(name)
    if module_name is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    module = import_module(module_name)
    return getattr(module, name)


async def build_durable_store(config: DurableStoreConfig):
    """Create a concrete durable adapter from ``DurableStoreConfig``.

    Returns ``None`` for ``backend='none'`` (L1 only).
    """
    backend = config.backend.strip().lower()
    if backend == "none":
        return None
    if not config.url:
        raise ValueError(
            f"durable_config.url is required when backend='{config.backend}'"
        )
    if backend == "redis":
        from filmkb.durable.redis_store import RedisDurableStore

        return RedisDurableStore.from_url(config.url, key_prefix=config.key_prefix)
    if backend == "neo4j":
        from filmkb.durable.neo4j_store import Neo4jDurableStore

        return await Neo4jDurableStore.from_url(config.url)
    raise ValueError(
        f"Unsupported durable_config.backend '{config.backend}'. "
        "Supported backends: none, redis, neo4j."
    )
