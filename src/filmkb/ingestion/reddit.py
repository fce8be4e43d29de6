"""Reddit discussion source backed by the public ``.json`` listing endpoints."""

from __future__ import annotations

import logging
from urllib.parse import urlencode

from filmkb.errors import SourceError
from filmkb.ingestion import http
from filmkb.ingestion.sources import EMPTY_RESULT
from filmkb.ingestion.sources import SourceResult
from filmkb.knowledge.schemas import FilmMetadata
from filmkb.knowledge.schemas import SourceName

logger = logging.getLogger(__name__)

REDDIT_BASE = "https://www.reddit.com"
DEFAULT_SUBREDDITS = ("movies", "TrueFilm", "flicks")

_REMOVED = frozenset({"[removed]", "[deleted]"})


class RedditSource:
    """Collects top posts and comments about a film from film subreddits.

    Per-subreddit and per-thread failures are skipped; the fetch only raises
    when the site-wide fallback search itself fails.
    """

    name = SourceName.reddit

    def __init__(
        self,
        *,
        subreddits: tuple[str, ...] = DEFAULT_SUBREDDITS,
        posts_per_subreddit: int = 2,
        max_posts: int = 4,
        comments_per_post: int = 8,
        timeout_seconds: float = 15.0,
    ) -> None:
        self._subreddits = subreddits
        self._posts_per_subreddit = posts_per_subreddit
        self._max_posts = max_posts
        self._comments_per_post = comments_per_post
        self._timeout = timeout_seconds

    async def _get(self, path: str, params: dict[str, str | int]) -> object:
        return await http.get_json(
            f"{REDDIT_BASE}{path}?{urlencode(params)}", timeout=self._timeout
        )

    @staticmethod
    def _children(listing: object, kind: str) -> list[dict]:
        if not isinstance(listing, dict):
            return []
        children = listing.get("data", {}).get("children", [])
        return [c.get("data", {}) for c in children if c.get("kind") == kind]

    async def _search_posts(self, query: str) -> list[dict]:
        posts: list[dict] = []
        for sub in self._subreddits:
            try:
                listing = await self._get(
                    f"/r/{sub}/search.json",
                    {"q": query, "sort": "relevance", "limit": 5, "restrict_sr": "true"},
                )
            except SourceError as exc:
                logger.debug("Subreddit r/%s search failed: %s", sub, exc)
                continue
            found = [p for p in self._children(listing, "t3") if p.get("score", 0) > 5]
            posts.extend(found[: self._posts_per_subreddit])

        if posts:
            return posts

        listing = await self._get(
            "/search.json",
            {"q": f"{query} film", "sort": "relevance", "limit": 10, "type": "link"},
        )
        found = [p for p in self._children(listing, "t3") if p.get("score", 0) > 10]
        return found[:5]

    async def _top_comments(self, permalink: str) -> list[str]:
        try:
            thread = await self._get(
                f"{permalink.rstrip('/')}.json", {"depth": 1, "limit": 30}
            )
        except SourceError as exc:
            logger.debug("Comment fetch failed for %s: %s", permalink, exc)
            return []
        if not isinstance(thread, list) or len(thread) < 2:
            return []
        bodies = []
        for comment in self._children(thread[1], "t1"):
            body = comment.get("body")
            if not isinstance(body, str) or body in _REMOVED:
                continue
            if comment.get("score", 0) >= 10 and len(body) > 50:
                bodies.append(body)
        return bodies[: self._comments_per_post]

    async def fetch(self, film_id: int, metadata: FilmMetadata) -> SourceResult:
        query = f"{metadata.title} {metadata.year}"
        posts = await self._search_posts(query)

        texts: list[str] = []
        for post in posts[: self._max_posts]:
            title = post.get("title", "")
            selftext = post.get("selftext") or ""
            if selftext and selftext not in _REMOVED:
                texts.append(f"Post: {title}\n\n{selftext}")
            else:
                texts.append(f"Discussion: {title}")

            permalink = post.get("permalink")
            if permalink:
                comments = await self._top_comments(permalink)
                if comments:
                    texts.append("\n\n".join(comments))

        if not texts:
            return EMPTY_RESULT
        logger.debug("Reddit: %d posts for film %d", len(posts), film_id)
        return SourceResult(texts=tuple(texts))
