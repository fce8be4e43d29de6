"""Letterboxd review source.

The film slug is resolved through Letterboxd's ``/tmdb/{id}/`` redirect and
reviews are read from the per-film RSS feed.
"""

from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET

from bs4 import BeautifulSoup

from filmkb.errors import SourceError
from filmkb.ingestion import http
from filmkb.ingestion.sources import EMPTY_RESULT
from filmkb.ingestion.sources import SourceResult
from filmkb.knowledge.schemas import FilmMetadata
from filmkb.knowledge.schemas import SourceName

logger = logging.getLogger(__name__)

LETTERBOXD_BASE = "https://letterboxd.com"
MIN_REVIEW_CHARS = 80

_SLUG_RE = re.compile(r"/film/([^/]+)/?")
_RATING_RE = re.compile(r"(\d+(?:\.\d+)?)")

_LB_NS = "https://letterboxd.com"


def slug_from_location(location: str | None) -> str | None:
    if not location:
        return None
    match = _SLUG_RE.search(location)
    return match.group(1) if match else None


def strip_html(raw: str) -> str:
    """Flatten a review description to plain text. Entities stay literal."""
    text = BeautifulSoup(raw, "html.parser").get_text(" ", strip=True)
    return " ".join(text.split())


def parse_reviews_rss(xml_text: str) -> tuple[list[str], list[float]]:
    """Return review bodies longer than ``MIN_REVIEW_CHARS`` and member ratings."""
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as exc:
        raise SourceError(f"malformed Letterboxd RSS: {exc}") from exc

    reviews: list[str] = []
    ratings: list[float] = []
    for item in root.iter("item"):
        text = strip_html(item.findtext("description") or "")
        if len(text) > MIN_REVIEW_CHARS:
            reviews.append(text)
        raw_rating = item.findtext(f"{{{_LB_NS}}}memberRating")
        if raw_rating:
            match = _RATING_RE.search(raw_rating)
            if match:
                ratings.append(float(match.group(1)))
    return reviews, ratings


def format_rating(ratings: list[float]) -> str | None:
    if not ratings:
        return None
    return f"{sum(ratings) / len(ratings):.1f}/5"


class LetterboxdSource:
    name = SourceName.letterboxd

    def __init__(self, *, timeout_seconds: float = 15.0) -> None:
        self._timeout = timeout_seconds

    async def resolve_slug(self, film_id: int) -> str | None:
        location = await http.get_redirect_location(
            f"{LETTERBOXD_BASE}/tmdb/{film_id}/", timeout=self._timeout
        )
        return slug_from_location(location)

    async def fetch(self, film_id: int, metadata: FilmMetadata) -> SourceResult:
        slug = await self.resolve_slug(film_id)
        if not slug:
            logger.info(
                "Letterboxd: no slug for %r (%s)", metadata.title, metadata.year
            )
            return EMPTY_RESULT

        feed = await http.get_text(
            f"{LETTERBOXD_BASE}/film/{slug}/reviews/rss/",
            headers={"Accept": "application/rss+xml, application/xml"},
            timeout=self._timeout,
        )
        reviews, ratings = parse_reviews_rss(feed)
        rating = format_rating(ratings)
        if not reviews:
            logger.info("Letterboxd: slug %r has no usable reviews", slug)
            return SourceResult(rating=rating)
        return SourceResult(texts=tuple(reviews), rating=rating, metadata={"slug": slug})
