"""TMDB client, the primary metadata source."""

from __future__ import annotations

import logging
from urllib.parse import urlencode

from pydantic import ValidationError

from filmkb.config import TMDBConfig
from filmkb.errors import SourceError
from filmkb.ingestion import http
from filmkb.knowledge.schemas import FilmMetadata
from filmkb.knowledge.schemas import FilmSearchHit

logger = logging.getLogger(__name__)

IMAGE_BASE = "https://image.tmdb.org/t/p"


def poster_url(path: str | None, size: str = "w500") -> str | None:
    return f"{IMAGE_BASE}/{size}{path}" if path else None


class TMDBClient:
    """Async TMDB v3 client.

    A v4 read-access token (JWT, starts with ``eyJ``) is sent as a bearer
    header; a short v3 key is appended as the ``api_key`` query parameter.
    """

    def __init__(self, config: TMDBConfig) -> None:
        if not config.api_key:
            raise ValueError("tmdb_config.api_key is required")
        self._config = config
        self._base_url = config.base_url.rstrip("/")

    @property
    def _uses_bearer(self) -> bool:
        return bool(self._config.api_key and self._config.api_key.startswith("eyJ"))

    def _url(self, path: str, params: dict[str, str | int] | None = None) -> str:
        query = dict(params or {})
        if not self._uses_bearer:
            query["api_key"] = self._config.api_key or ""
        suffix = f"?{urlencode(query)}" if query else ""
        return f"{self._base_url}{path}{suffix}"

    def _headers(self) -> dict[str, str]:
        if self._uses_bearer:
            return {"Authorization": f"Bearer {self._config.api_key}"}
        return {}

    async def _get(self, path: str, params: dict[str, str | int] | None = None) -> object:
        return await http.get_json(
            self._url(path, params),
            headers=self._headers(),
            timeout=self._config.timeout_seconds,
        )

    async def fetch_metadata(self, film_id: int) -> FilmMetadata:
        data = await self._get(f"/movie/{film_id}", {"append_to_response": "credits"})
        try:
            metadata = FilmMetadata.model_validate(data)
        except ValidationError as exc:
            raise SourceError(f"unexpected TMDB payload for film {film_id}") from exc
        if metadata.id != film_id:
            raise SourceError(f"TMDB returned film {metadata.id} for {film_id}")
        logger.debug("Fetched TMDB metadata for film %d: %s", film_id, metadata.title)
        return metadata

    async def search_films(self, query: str) -> list[FilmSearchHit]:
        data = await self._get(
            "/search/movie",
            {"query": query, "page": 1, "include_adult": "false"},
        )
        results = data.get("results") if isinstance(data, dict) else None
        hits: list[FilmSearchHit] = []
        for row in results or []:
            try:
                hits.append(FilmSearchHit.model_validate(row))
            except ValidationError:
                logger.debug("Skipping malformed TMDB search row: %r", row)
        return hits
