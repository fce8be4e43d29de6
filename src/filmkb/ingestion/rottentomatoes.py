"""Rotten Tomatoes source: Tomatometer, critics consensus and review snippets.

The movie page is addressed by a slug derived from the title, first with the
release year suffix and then without it.
"""

from __future__ import annotations

import logging
import re

from bs4 import BeautifulSoup

from filmkb.errors import SourceError
from filmkb.ingestion import http
from filmkb.ingestion.sources import EMPTY_RESULT
from filmkb.ingestion.sources import SourceResult
from filmkb.knowledge.schemas import FilmMetadata
from filmkb.knowledge.schemas import SourceName

logger = logging.getLogger(__name__)

RT_BASE = "https://www.rottentomatoes.com"
MIN_SNIPPET_CHARS = 30
MAX_SNIPPETS = 10

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

_CHALLENGE_MARKERS = ("Just a moment", "cf-browser-verification", "Checking your browser")

_SCORE_SELECTORS = 'rt-text[slot="criticsScore"], [data-qa="tomatometer-value"]'
_CONSENSUS_SELECTORS = (
    '[data-qa="critics-consensus"], .mop-ratings-wrap__text--concensus, '
    '[class*="consensus"]'
)
_SNIPPET_SELECTORS = (
    '[data-qa="review-text"], .review_table_row .review-text, '
    ".critics-consensus__copy"
)

_NON_SLUG_RE = re.compile(r"[^a-z0-9\s]")
_SPACE_RE = re.compile(r"\s+")


def build_slug(title: str, year: str = "") -> str:
    base = _SPACE_RE.sub("_", _NON_SLUG_RE.sub("", title.lower()).strip())
    return f"{base}_{year}" if year else base


def is_challenge_page(page: str) -> bool:
    return any(marker in page for marker in _CHALLENGE_MARKERS)


def _text(node) -> str:
    return " ".join(node.get_text(" ", strip=True).split())


def parse_movie_page(page: str) -> tuple[str | None, str, list[str]]:
    """Return ``(tomatometer, consensus, snippets)`` from a movie page."""
    soup = BeautifulSoup(page, "html.parser")

    tomatometer = None
    board = soup.select_one('score-board, [data-qa="score-board"]')
    if board is not None:
        score = board.get("tomatometerscore") or board.get("tomato-score")
        if score:
            tomatometer = f"{score}%"
    if tomatometer is None:
        for node in soup.select(_SCORE_SELECTORS):
            value = _text(node)
            if value:
                tomatometer = value if "%" in value else f"{value}%"
                break

    consensus_node = soup.select_one(_CONSENSUS_SELECTORS)
    consensus = _text(consensus_node) if consensus_node is not None else ""

    snippets = [
        text
        for text in (_text(node) for node in soup.select(_SNIPPET_SELECTORS))
        if len(text) > MIN_SNIPPET_CHARS
    ]
    return tomatometer, consensus, snippets[:MAX_SNIPPETS]


def compose_text(tomatometer: str | None, consensus: str, snippets: list[str]) -> str:
    parts = []
    if tomatometer:
        parts.append(f"Rotten Tomatoes: {tomatometer} Tomatometer")
    if consensus:
        parts.append(f"Critics Consensus: {consensus}")
    if snippets:
        parts.append("Critic snippets:\n" + "\n".join(snippets))
    return "\n\n".join(parts)


class RottenTomatoesSource:
    """Scrapes the public movie page.

    A page that fails to load or carries nothing usable falls through to the
    next slug candidate; a bot challenge ends the fetch with an empty result.
    """

    name = SourceName.rottentomatoes

    def __init__(self, *, timeout_seconds: float = 15.0) -> None:
        self._timeout = timeout_seconds

    def candidate_urls(self, metadata: FilmMetadata) -> list[str]:
        year = metadata.year if metadata.year != "N/A" else ""
        slugs = [build_slug(metadata.title, year), build_slug(metadata.title)]
        return [f"{RT_BASE}/m/{slug}" for slug in dict.fromkeys(slugs)]

    async def fetch(self, film_id: int, metadata: FilmMetadata) -> SourceResult:
        for url in self.candidate_urls(metadata):
            try:
                page = await http.get_text(
                    url, headers=BROWSER_HEADERS, timeout=self._timeout
                )
            except SourceError as exc:
                logger.debug("Rotten Tomatoes: %s", exc)
                continue
            if is_challenge_page(page):
                logger.warning("Rotten Tomatoes: bot challenge served for %s", url)
                return EMPTY_RESULT

            tomatometer, consensus, snippets = parse_movie_page(page)
            text = compose_text(tomatometer, consensus, snippets)
            if not text:
                continue
            return SourceResult(
                texts=(text,),
                rating=tomatometer,
                metadata={"tomatometer": tomatometer or ""},
            )

        logger.info(
            "Rotten Tomatoes: no page for %r (%s)", metadata.title, metadata.year
        )
        return EMPTY_RESULT
