"""Paragraph-first text chunker.

Text is split on blank lines, paragraphs are packed greedily into chunks of
at most ``ChunkerConfig.max_chars`` characters, and any paragraph that is
itself over budget is packed sentence by sentence instead.  Output is fully
deterministic: chunk ids are ``{film_id}-{source}-{index}`` with indices in
emission order.
"""

from __future__ import annotations

import re

from filmkb.config import ChunkerConfig
from filmkb.knowledge.schemas import Chunk
from filmkb.knowledge.schemas import SourceName

_PARAGRAPH_RE = re.compile(r"\n\s*\n+")
# A run of non-terminal characters closed by terminal punctuation, or the
# unterminated remainder at the end of the paragraph.
_SENTENCE_RE = re.compile(r"[^.!?]+(?:[.!?]+|$)|[.!?]+")

_DEFAULT_CONFIG = ChunkerConfig()


class _ChunkBuilder:
    def __init__(
        self,
        film_id: int,
        source: SourceName,
        metadata: dict[str, str | int | float] | None,
        config: ChunkerConfig,
    ) -> None:
        self._film_id = film_id
        self._source = source
        self._metadata = metadata
        self._config = config
        self._buffer = ""
        self._index = 0
        self.chunks: list[Chunk] = []

    def add(self, piece: str, separator: str) -> None:
        if self._buffer and len(self._buffer) + len(piece) > self._config.max_chars:
            self.flush()
        self._buffer += piece + separator

    def flush(self) -> None:
        text = self._buffer.strip()
        self._buffer = ""
        # Never emit a standalone fragment under the noise threshold
        if len(text) <= self._config.min_length:
            return
        self.chunks.append(
            Chunk(
                id=f"{self._film_id}-{self._source.value}-{self._index}",
                film_id=self._film_id,
                source=self._source,
                text=text,
                metadata=self._metadata,
            )
        )
        self._index += 1


def split_paragraphs(text: str, *, min_length: int) -> list[str]:
    """Return stripped paragraphs longer than *min_length* characters."""
    paragraphs = (p.strip() for p in _PARAGRAPH_RE.split(text))
    return [p for p in paragraphs if len(p) > min_length]


def split_sentences(paragraph: str) -> list[str]:
    """Split *paragraph* after runs of ``.``, ``!`` or ``?``."""
    sentences = (s.strip() for s in _SENTENCE_RE.findall(paragraph))
    return [s for s in sentences if s] or [paragraph.strip()]


def chunk_text(
    text: str | None,
    film_id: int,
    source: SourceName,
    metadata: dict[str, str | int | float] | None = None,
    *,
    config: ChunkerConfig | None = None,
) -> list[Chunk]:
    """Split *text* into budget-bounded chunks for one source batch.

    Empty or whitespace-only input yields ``[]``.  No chunk exceeds
    ``max_chars`` unless it consists of a single over-long sentence.
    """
    if not text or not text.strip():
        return []

    cfg = config or _DEFAULT_CONFIG
    builder = _ChunkBuilder(film_id, source, metadata, cfg)

    for paragraph in split_paragraphs(text, min_length=cfg.min_length):
        if len(paragraph) <= cfg.max_chars:
            builder.add(paragraph, "\n\n")
            continue
        # Over-budget paragraph: start fresh and pack it sentence by sentence
        builder.flush()
        for sentence in split_sentences(paragraph):
            builder.add(sentence, " ")

    builder.flush()
    return builder.chunks
