"""Summary derivation: critics/audiences framing via the LLM adapter."""

from __future__ import annotations

import json
import logging
import re

from pydantic import ValidationError

from filmkb.config import IngestionConfig
from filmkb.config import LLMConfig
from filmkb.engine.llm_adapters import LLMAdapter
from filmkb.engine.prompt_builder import build_derivation_prompt
from filmkb.engine.schemas import DerivedSummary
from filmkb.errors import LLMError
from filmkb.knowledge.schemas import KnowledgeRecord

logger = logging.getLogger(__name__)

# Strips Markdown code fences wrapping JSON output
_CODE_FENCE_RE = re.compile(
    r"^\s*```(?:json)?\s*\n?(.*?)\n?\s*```\s*$",
    re.DOTALL,
)
# First {...} span when the model wraps JSON in prose
_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


def parse_summary(raw: str) -> DerivedSummary:
    """Parse raw model output into a ``DerivedSummary``.

    Raises ``LLMError`` when no valid JSON object can be recovered.
    """
    text = raw.strip()
    match = _CODE_FENCE_RE.match(text)
    if match:
        text = match.group(1).strip()
    else:
        found = _JSON_OBJECT_RE.search(text)
        if found is None:
            raise LLMError("no JSON object in model output")
        text = found.group(0)

    try:
        data = json.loads(text)
    except ValueError as exc:
        raise LLMError(f"invalid JSON from model: {exc}") from exc

    try:
        return DerivedSummary.model_validate(data)
    except ValidationError as exc:
        raise LLMError(f"summary schema validation failed: {exc}") from exc


class SummaryDeriver:
    """Turns a record's accumulated chunks into a ``DerivedSummary``."""

    def __init__(
        self,
        llm: LLMAdapter,
        llm_config: LLMConfig | None = None,
        ingestion_config: IngestionConfig | None = None,
    ) -> None:
        self._llm = llm
        self._llm_config = llm_config or LLMConfig()
        self._ingestion_config = ingestion_config or IngestionConfig()

    async def derive(self, record: KnowledgeRecord) -> DerivedSummary:
        prompt = build_derivation_prompt(
            record, sample_size=self._ingestion_config.derivation_sample_size
        )
        raw = await self._llm.complete(
            prompt,
            temperature=self._llm_config.temperature,
            max_tokens=self._llm_config.max_tokens,
            timeout_seconds=self._llm_config.timeout_seconds,
        )
        summary = parse_summary(raw)
        limit = self._ingestion_config.starter_prompt_count
        if len(summary.chips) > limit:
            summary = summary.model_copy(update={"chips": summary.chips[:limit]})
        logger.debug(
            "Derived summary for film %d (%d starter prompts)",
            record.film_id,
            len(summary.chips),
        )
        return summary
