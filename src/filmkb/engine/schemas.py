"""Pydantic models for LLM-derived output."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel
from pydantic import Field
from pydantic import field_validator


class DerivedSummary(BaseModel):
    """Critics/audiences framing and discussion starters for one film."""

    model_config = {"extra": "ignore"}

    critics: str = Field(default="", description="What critics think.")
    audiences: str = Field(default="", description="What general audiences think.")
    tension: str = Field(
        default="",
        description="Main disagreement between critics and audiences.",
    )
    chips: list[str] = Field(
        default_factory=list,
        description="Discussion-starter questions.",
    )

    @field_validator("critics", "audiences", "tension", mode="before")
    @classmethod
    def _none_to_empty(cls, value: object) -> object:
        return "" if value is None else value

    @field_validator("chips", mode="before")
    @classmethod
    def _coerce_chips(cls, value: object) -> object:
        if value is None:
            return []
        if isinstance(value, list):
            return [str(item).strip() for item in value if str(item).strip()]
        return value


class ChatMessage(BaseModel):
    """One turn of a conversation handed to a downstream chat model."""

    role: Literal["user", "assistant"]
    content: str
