"""
Language Model Client for the Model-Backed Guard

A minimal async client for OpenAI-compatible chat completion endpoints.
Anything exposing ``complete(prompt, temperature=..., max_tokens=...)`` can be
handed to ``ModelBackedGuard`` instead.

Usage:
    async with OpenAICompatibleClient.from_settings(Settings.from_env()) as client:
        guard = ModelBackedGuard(fingerprint, client)
        decision = await guard.filter(task)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from chainlock.config import Settings

REQUEST_TIMEOUT = 30.0


@dataclass(frozen=True)
class Completion:
    """Text returned by a model plus its token usage."""

    text: str
    total_tokens: int = 0


class LanguageModelClient(Protocol):
    async def complete(
        self, prompt: str, *, temperature: float = 0.1, max_tokens: int = 500
    ) -> Completion: ...


class OpenAICompatibleClient:
    """Chat-completions client over ``httpx.AsyncClient``."""

    def __init__(
        self,
        model: str,
        base_url: str,
        api_key: str | None = None,
        timeout: float = REQUEST_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self.model = model
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls, settings: Settings, transport: httpx.AsyncBaseTransport | None = None
    ) -> OpenAICompatibleClient:
        return cls(
            model=settings.llm_model,
            base_url=settings.llm_base_url,
            api_key=settings.llm_api_key,
            timeout=settings.guard_timeout,
            transport=transport,
        )

    async def __aenter__(self) -> OpenAICompatibleClient:
        return self

    async def __aexit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object | None,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def complete(
        self, prompt: str, *, temperature: float = 0.1, max_tokens: int = 500
    ) -> Completion:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        response = await self._client.post("/chat/completions", json=payload)
        response.raise_for_status()
        body = response.json()

        choices = body.get("choices") or []
        if not choices:
            raise ValueError("model response contained no choices")
        text = (choices[0].get("message") or {}).get("content") or ""
        usage = body.get("usage") or {}
        return Completion(text=text, total_tokens=int(usage.get("total_tokens") or 0))
