"""Blocking HTTP helpers run off the event loop.

All failures surface as ``SourceError`` so callers only handle one type.
"""

from __future__ import annotations

import asyncio
import json
from urllib.error import HTTPError
from urllib.error import URLError
from urllib.request import HTTPRedirectHandler
from urllib.request import Request
from urllib.request import build_opener
from urllib.request import urlopen

from filmkb.errors import SourceError

DEFAULT_USER_AGENT = "filmkb/0.1 (film knowledge ingestion)"


def _read(url: str, headers: dict[str, str], timeout: float) -> str:
    request = Request(url, headers={"User-Agent": DEFAULT_USER_AGENT, **headers})
    try:
        with urlopen(request, timeout=timeout) as response:
            return response.read().decode("utf-8", errors="replace")
    except HTTPError as exc:
        raise SourceError(f"HTTP {exc.code} for {url}") from exc
    except URLError as exc:
        raise SourceError(f"network error for {url}: {exc.reason}") from exc
    except OSError as exc:
        raise SourceError(f"IO error for {url}: {exc}") from exc


async def get_text(
    url: str, *, headers: dict[str, str] | None = None, timeout: float = 15.0
) -> str:
    return await asyncio.to_thread(_read, url, headers or {}, timeout)


async def get_json(
    url: str, *, headers: dict[str, str] | None = None, timeout: float = 15.0
) -> object:
    merged = {"Accept": "application/json", **(headers or {})}
    raw = await get_text(url, headers=merged, timeout=timeout)
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise SourceError(f"invalid JSON from {url}: {exc}") from exc


class _NoRedirect(HTTPRedirectHandler):
    def redirect_request(self, req, fp, code, msg, headers, newurl):
        return None


def _redirect_location(
    url: str, headers: dict[str, str], timeout: float
) -> str | None:
    opener = build_opener(_NoRedirect)
    request = Request(url, headers={"User-Agent": DEFAULT_USER_AGENT, **headers})
    try:
        with opener.open(request, timeout=timeout):
            return None
    except HTTPError as exc:
        if 300 <= exc.code < 400:
            return exc.headers.get("Location")
        raise SourceError(f"HTTP {exc.code} for {url}") from exc
    except URLError as exc:
        raise SourceError(f"network error for {url}: {exc.reason}") from exc
    except OSError as exc:
        raise SourceError(f"IO error for {url}: {exc}") from exc


async def get_redirect_location(
    url: str, *, headers: dict[str, str] | None = None, timeout: float = 15.0
) -> str | None:
    """Return the ``Location`` of a redirect response without following it."""
    return await asyncio.to_thread(_redirect_location, url, headers or {}, timeout)
