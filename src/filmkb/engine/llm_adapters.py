"""Chat-completions client used by summary derivation.

Derivation sends one user turn and expects a JSON object back, so the
client only covers that exchange against an OpenAI-style endpoint.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Protocol
from typing import runtime_checkable
from urllib.error import HTTPError
from urllib.error import URLError
from urllib.request import Request
from urllib.request import urlopen

from filmkb.config import LLMConfig
from filmkb.errors import LLMError

SUPPORTED_PROVIDERS = ("openai",)


@runtime_checkable
class LLMAdapter(Protocol):
    """Anything that turns a prompt into completion text."""

    async def complete(
        self,
        prompt: str,
        *,
        temperature: float = 0.2,
        max_tokens: int = 512,
        timeout_seconds: float = 30.0,
    ) -> str: ...


def extract_content(raw: str) -> str:
    """Pull ``choices[0].message.content`` out of a completions response."""
    try:
        content = json.loads(raw)["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError, ValueError) as exc:
        raise LLMError("completion response has no choices[0].message.content") from exc
    if not isinstance(content, str):
        raise LLMError("completion content is not text")
    return content


def _post(request: Request, timeout: float) -> str:
    try:
        with urlopen(request, timeout=timeout) as response:
            return response.read().decode("utf-8")
    except HTTPError as exc:
        body = exc.read().decode("utf-8", errors="replace")
        raise LLMError(f"completion HTTP {exc.code}: {body[:200]}") from exc
    except URLError as exc:
        raise LLMError(f"completion endpoint unreachable: {exc.reason}") from exc
    except OSError as exc:
        raise LLMError(f"completion IO error: {exc}") from exc


@dataclass(frozen=True)
class ChatCompletionsAdapter:
    """Single-turn client for ``{base_url}/chat/completions``."""

    config: LLMConfig

    @property
    def endpoint(self) -> str:
        return f"{self.config.base_url.rstrip('/')}/chat/completions"

    def build_request(
        self, prompt: str, *, temperature: float, max_tokens: int
    ) -> Request:
        body: dict = {
            "model": self.config.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if self.config.json_mode:
            body["response_format"] = {"type": "json_object"}
        return Request(
            self.endpoint,
            data=json.dumps(body).encode("utf-8"),
            headers={
                "Authorization": f"Bearer {self.config.api_key}",
                "Content-Type": "application/json",
            },
            method="POST",
        )

    async def complete(
        self,
        prompt: str,
        *,
        temperature: float = 0.2,
        max_tokens: int = 512,
        timeout_seconds: float = 30.0,
    ) -> str:
        request = self.build_request(
            prompt, temperature=temperature, max_tokens=max_tokens
        )
        raw = await asyncio.to_thread(_post, request, timeout_seconds)
        return extract_content(raw)


def build_llm_adapter(config: LLMConfig) -> LLMAdapter:
    """Validate ``LLMConfig`` and return the matching client."""
    provider = config.provider.strip().lower()
    if provider not in SUPPORTED_PROVIDERS:
        raise ValueError(
            f"Unsupported llm_config.provider '{config.provider}'. "
            f"Supported providers: {', '.join(SUPPORTED_PROVIDERS)}."
        )
    if not config.api_key:
        raise ValueError("llm_config.api_key is required for summary derivation")
    return ChatCompletionsAdapter(config)
