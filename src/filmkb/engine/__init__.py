"""Engine domain: retrieval ranking, prompts and LLM-backed derivation."""

from filmkb.engine.derivation import SummaryDeriver
from filmkb.engine.derivation import parse_summary
from filmkb.engine.llm_adapters import ChatCompletionsAdapter
from filmkb.engine.llm_adapters import LLMAdapter
from filmkb.engine.llm_adapters import build_llm_adapter
from filmkb.engine.retrieval import RetrievalService
from filmkb.engine.retrieval import RetrievedContext
from filmkb.engine.retrieval import retrieve_chunks
from filmkb.engine.retrieval import tokenize
from filmkb.engine.schemas import ChatMessage
from filmkb.engine.schemas import DerivedSummary

__all__ = [
    "ChatCompletionsAdapter",
    "ChatMessage",
    "DerivedSummary",
    "LLMAdapter",
    "RetrievalService",
    "RetrievedContext",
    "SummaryDeriver",
    "build_llm_adapter",
    "parse_summary",
    "retrieve_chunks",
    "tokenize",
]
