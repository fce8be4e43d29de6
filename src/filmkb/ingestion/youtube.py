"""YouTube video-essay source built on yt-dlp auto-captions.

Captions for the top search results are written as WebVTT into a temporary
directory and flattened into plain transcripts.  No media is downloaded.
"""

from __future__ import annotations

import asyncio
import logging
import re
import tempfile
from pathlib import Path

from yt_dlp import YoutubeDL
from yt_dlp.utils import DownloadError
from yt_dlp.utils import match_filter_func

from filmkb.errors import SourceError
from filmkb.ingestion.sources import EMPTY_RESULT
from filmkb.ingestion.sources import SourceResult
from filmkb.knowledge.schemas import FilmMetadata
from filmkb.knowledge.schemas import SourceName

logger = logging.getLogger(__name__)

MIN_TRANSCRIPT_CHARS = 100
MAX_CHUNKS = 20
TRANSCRIPT_SEPARATOR = "\n\n---\n\n"

_CUE_INDEX_RE = re.compile(r"^\d+$")
_INLINE_TAG_RE = re.compile(r"<[^>]+>")


def parse_vtt(content: str) -> str:
    """Flatten WebVTT captions to text, dropping cue timing and rolling repeats."""
    lines: list[str] = []
    previous = ""
    for raw in content.splitlines():
        line = raw.strip()
        if (
            not line
            or line == "WEBVTT"
            or line.startswith(("NOTE", "Kind:", "Language:"))
            or _CUE_INDEX_RE.match(line)
            or "-->" in line
        ):
            continue
        # Auto-captions carry per-word timing tags inside the cue text.
        cleaned = _INLINE_TAG_RE.sub("", line).strip()
        if not cleaned or cleaned == previous:
            continue
        lines.append(cleaned)
        previous = cleaned
    return " ".join(" ".join(lines).split())


class YouTubeSource:
    """Transcripts of the top video essays found by a YouTube search."""

    name = SourceName.youtube

    def __init__(
        self,
        *,
        max_videos: int = 2,
        max_duration_seconds: int = 2400,
        language: str = "en",
    ) -> None:
        self._max_videos = max_videos
        self._max_duration = max_duration_seconds
        self._language = language

    def search_query(self, metadata: FilmMetadata) -> str:
        year = metadata.year if metadata.year != "N/A" else ""
        return " ".join(part for part in (metadata.title, year, "video essay") if part)

    def _options(self, workdir: Path) -> dict:
        return {
            "skip_download": True,
            "writeautomaticsub": True,
            "subtitleslangs": [self._language],
            "subtitlesformat": "vtt",
            "noplaylist": True,
            "match_filter": match_filter_func(f"duration < {self._max_duration}"),
            "outtmpl": str(workdir / "%(id)s.%(ext)s"),
            "quiet": True,
            "no_warnings": True,
        }

    def _download_captions(self, query: str, workdir: Path) -> list[str]:
        try:
            with YoutubeDL(self._options(workdir)) as ydl:
                ydl.download([f"ytsearch{self._max_videos}:{query}"])
        except DownloadError as exc:
            raise SourceError(f"yt-dlp failed for {query!r}: {exc}") from exc
        return [
            path.read_text(encoding="utf-8", errors="replace")
            for path in sorted(workdir.glob("*.vtt"))
        ]

    async def fetch(self, film_id: int, metadata: FilmMetadata) -> SourceResult:
        query = self.search_query(metadata)
        with tempfile.TemporaryDirectory(
            prefix=f"filmkb_yt_{film_id}_", ignore_cleanup_errors=True
        ) as tmp:
            captions = await asyncio.to_thread(self._download_captions, query, Path(tmp))

        transcripts = [
            text
            for text in (parse_vtt(vtt) for vtt in captions)
            if len(text) > MIN_TRANSCRIPT_CHARS
        ]
        if not transcripts:
            logger.info("YouTube: no usable captions for %r", query)
            return EMPTY_RESULT
        return SourceResult(
            texts=(TRANSCRIPT_SEPARATOR.join(transcripts),),
            max_chunks=MAX_CHUNKS,
        )
