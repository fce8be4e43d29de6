"""Prompt construction for summary derivation and downstream chat.

Separate module because prompt wording evolves independently of the
ingestion and retrieval logic that feeds it.
"""

from __future__ import annotations

from collections.abc import Sequence

from filmkb.engine.schemas import ChatMessage
from filmkb.knowledge.schemas import Chunk
from filmkb.knowledge.schemas import KnowledgeRecord
from filmkb.knowledge.schemas import PRIMARY_SOURCE
from filmkb.knowledge.schemas import SourceName

SOURCE_LABELS = {
    SourceName.tmdb: "TMDB",
    SourceName.letterboxd: "LETTERBOXD",
    SourceName.reddit: "REDDIT",
    SourceName.rottentomatoes: "ROTTEN TOMATOES",
    SourceName.youtube: "YOUTUBE ESSAY",
}

# How loaded content sources are described to the chat model
SOURCE_DESCRIPTIONS = {
    SourceName.letterboxd: "Letterboxd reviews",
    SourceName.reddit: "Reddit discussions",
    SourceName.rottentomatoes: "Rotten Tomatoes critical consensus",
    SourceName.youtube: "YouTube video essay transcripts",
}

CONVERSATION_WINDOW = 10


def build_derivation_prompt(record: KnowledgeRecord, *, sample_size: int = 8) -> str:
    """Ask for critics/audiences/tension framing plus discussion starters.

    Only the first *sample_size* chunks are included to bound prompt size.
    """
    sample = record.chunks[:sample_size]
    context = "\n\n".join(f"[{c.source.value}] {c.text}" for c in sample)
    title = record.metadata.title
    year = record.metadata.year

    return (
        f'Based on these reviews and discussions about "{title}" ({year}), '
        "provide:\n\n"
        "1. A 1-2 sentence summary of what critics think\n"
        "2. A 1-2 sentence summary of what general audiences think\n"
        "3. A 1 sentence description of the main tension or disagreement "
        "between critics and audiences\n"
        "4. Three specific, provocative discussion questions based on what "
        "reviewers actually argued about\n\n"
        "Return valid JSON only, with this exact structure:\n"
        "{\n"
        '  "critics": "...",\n'
        '  "audiences": "...",\n'
        '  "tension": "...",\n'
        '  "chips": ["question 1?", "question 2?", "question 3?"]\n'
        "}\n\n"
        f"Context:\n{context}"
    )


def build_system_prompt(record: KnowledgeRecord) -> str:
    """Persona prompt for a chat model discussing this film."""
    meta = record.metadata
    director = meta.director or "Unknown"
    runtime = f"{meta.runtime} min" if meta.runtime else "N/A"
    genres = ", ".join(g.name for g in meta.genres)

    described = [
        SOURCE_DESCRIPTIONS.get(source, source.value)
        for source in record.loaded_sources
        if source != PRIMARY_SOURCE
    ]
    sources_line = "TMDB synopsis" + (f", {', '.join(described)}" if described else "")

    rating_lines = []
    if record.sentiment.letterboxd_rating:
        rating_lines.append(f"Letterboxd rating: {record.sentiment.letterboxd_rating}")
    if record.sentiment.tomatometer:
        rating_lines.append(f"Rotten Tomatoes: {record.sentiment.tomatometer}")
    ratings = "\n".join(rating_lines)

    return (
        f"You are a film companion for {meta.title} ({meta.year}).\n\n"
        f"Film details: Directed by {director} | {runtime} | {genres}\n"
        f"{ratings}\n\n"
        f"You have access to {len(record.chunks)} chunks of content from: "
        f"{sources_line}.\n\n"
        "Your role: help the user process and discuss this film the way they "
        "would with a thoughtful friend who has also seen it and read deeply "
        "about it.\n\n"
        "Rules:\n"
        "- Assume the user has watched the full film. Spoilers are fine.\n"
        "- Be specific: reference actual scenes, characters and dialogue when "
        "relevant.\n"
        "- Surface disagreements between sources honestly when they exist.\n"
        '- Cite sources naturally ("Letterboxd reviewers felt...", "A Reddit '
        'thread argued..."), not as footnotes.\n'
        "- Don't summarise the plot unless asked.\n"
        "- Match the user's register and keep responses conversational, not "
        "encyclopedic."
    )


def format_chunks_for_context(chunks: Sequence[Chunk]) -> str:
    """Render ranked chunks as source-labelled blocks."""
    return "\n\n---\n\n".join(
        f"[{SOURCE_LABELS.get(c.source, c.source.value.upper())}]\n{c.text}"
        for c in chunks
    )


def trim_conversation(
    messages: Sequence[ChatMessage], limit: int = CONVERSATION_WINDOW
) -> list[ChatMessage]:
    """Keep only the most recent *limit* messages."""
    return list(messages[-limit:]) if len(messages) > limit else list(messages)


def build_chat_turn(
    messages: Sequence[ChatMessage], chunks: Sequence[Chunk]
) -> list[ChatMessage]:
    """Trim history and fold retrieved context into the final user message."""
    trimmed = trim_conversation(messages)
    if not trimmed:
        return []
    context = format_chunks_for_context(chunks)
    last = trimmed[-1]
    if not context:
        return trimmed
    content = (
        "Here is relevant context from reviews, discussions, and criticism:\n\n"
        f"{context}\n\n---\n\nWith that context in mind: {last.content}"
    )
    return [*trimmed[:-1], ChatMessage(role=last.role, content=content)]
