"""Redis-backed durable tier.

Each film is stored under two keys:

* ``{prefix}:film:{film_id}`` holds JSON of the record without its chunks.
* ``{prefix}:chunks:{film_id}`` holds a list of chunk JSON strings in storage order.

Both keys are written in one MULTI/EXEC transaction.

Keys carry no TTL; a later save overwrites both.
"""

from __future__ import annotations

import json

from pydantic import ValidationError
from redis.asyncio import Redis  # type: ignore[import-untyped]
from redis.exceptions import RedisError  # type: ignore[import-untyped]

from filmkb.durable.base import batched
from filmkb.durable.base import record_fields
from filmkb.errors import DurableStoreError
from filmkb.knowledge.schemas import KnowledgeRecord


class RedisDurableStore:
    """``DurableStore`` implementation on a Redis keyspace."""

    def __init__(self, redis: Redis, *, key_prefix: str = "filmkb") -> None:
        self._redis = redis
        self._prefix = key_prefix

    @classmethod
    def from_url(cls, url: str, *, key_prefix: str = "filmkb") -> RedisDurableStore:
        return cls(Redis.from_url(url), key_prefix=key_prefix)

    def _film_key(self, film_id: int) -> str:
        return f"{self._prefix}:film:{film_id}"

    def _chunks_key(self, film_id: int) -> str:
        return f"{self._prefix}:chunks:{film_id}"

    # -- read --

    async def load_record(self, film_id: int) -> KnowledgeRecord | None:
        pipe = self._redis.pipeline()
        pipe.get(self._film_key(film_id))
        pipe.lrange(self._chunks_key(film_id), 0, -1)
        try:
            raw_record, raw_chunks = await pipe.execute()
        except RedisError as exc:
            raise DurableStoreError(f"redis load failed: {exc}") from exc

        if raw_record is None:
            return None

        try:
            data = json.loads(raw_record)
            data["chunks"] = [json.loads(raw) for raw in raw_chunks]
            return KnowledgeRecord.model_validate(data)
        except (ValueError, ValidationError) as exc:
            raise DurableStoreError(
                f"stored record for film {film_id} is malformed: {exc}"
            ) from exc

    # -- write --

    async def save_record(
        self, record: KnowledgeRecord, *, batch_size: int = 500
    ) -> None:
        film_id = record.film_id
        chunks_key = self._chunks_key(film_id)

        pipe = self._redis.pipeline(transaction=True)
        pipe.delete(chunks_key)
        for batch in batched(record.chunks, batch_size):
            pipe.rpush(chunks_key, *(c.model_dump_json() for c in batch))
        pipe.set(self._film_key(film_id), json.dumps(record_fields(record)))
        try:
            await pipe.execute()
        except RedisError as exc:
            raise DurableStoreError(f"redis save failed: {exc}") from exc

    async def close(self) -> None:
        await self._redis.aclose()
