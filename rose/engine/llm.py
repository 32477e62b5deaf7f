"""Chat-completion clients for the primary and secondary LLM providers."""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Sequence

import httpx

from rose.core.errors import CompletionError

logger = logging.getLogger("rose.llm")


@dataclass(slots=True)
class ChatMessage:
    role: str
    content: str


class CompletionClient(ABC):
    """Black-box completion endpoint: system prompt plus turns in, text out."""

    name: str

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        messages: Sequence[ChatMessage],
        *,
        temperature: float,
        max_tokens: int,
    ) -> str:
        """Return the completion text or raise :class:`CompletionError`."""


class HTTPCompletionClient(CompletionClient):
    """Shared HTTP plumbing: bounded concurrency, call spacing, error mapping."""

    url: str

    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        timeout: float = 15.0,
        min_interval: float = 0.2,
        max_concurrency: int = 4,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self.model = model
        self._timeout = timeout
        self._min_interval = max(0.0, min_interval)
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._rate_lock = asyncio.Lock()
        self._last_call = 0.0
        self._transport = transport

    @abstractmethod
    def _headers(self) -> dict[str, str]:
        """Provider authentication headers."""

    @abstractmethod
    def _payload(
        self,
        system_prompt: str,
        messages: Sequence[ChatMessage],
        temperature: float,
        max_tokens: int,
    ) -> dict[str, Any]:
        """Provider request body."""

    @abstractmethod
    def _extract(self, data: dict[str, Any]) -> str:
        """Pull the completion text out of a provider response."""

    async def complete(
        self,
        system_prompt: str,
        messages: Sequence[ChatMessage],
        *,
        temperature: float,
        max_tokens: int,
    ) -> str:
        async with self._semaphore:
            async with self._rate_lock:
                wait_for = self._min_interval - (time.monotonic() - self._last_call)
                if wait_for > 0:
                    await asyncio.sleep(wait_for)
                self._last_call = time.monotonic()

            payload = self._payload(system_prompt, messages, temperature, max_tokens)
            try:
                async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                    response = await client.post(self.url, headers=self._headers(), json=payload)
                    response.raise_for_status()
                    data = response.json()
            except (httpx.HTTPError, ValueError) as exc:
                raise CompletionError(f"{self.name} request failed: {exc}") from exc

        try:
            content = self._extract(data).strip()
        except (AttributeError, IndexError, KeyError, TypeError) as exc:
            raise CompletionError(f"{self.name} returned an unexpected payload") from exc
        if not content:
            raise CompletionError(f"{self.name} returned an empty completion")
        return content


class OpenAIChatClient(HTTPCompletionClient):
    """OpenAI-compatible ``/chat/completions`` endpoint (OpenAI, OpenRouter)."""

    name = "openai"

    def __init__(self, api_key: str, model: str, *, base_url: str = "https://api.openai.com/v1", **kwargs: Any) -> None:
        super().__init__(api_key, model, **kwargs)
        self.url = base_url.rstrip("/") + "/chat/completions"

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    def _payload(self, system_prompt, messages, temperature, max_tokens) -> dict[str, Any]:
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                *({"role": message.role, "content": message.content} for message in messages),
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

    def _extract(self, data: dict[str, Any]) -> str:
        return data["choices"][0]["message"]["content"] or ""


class AnthropicMessagesClient(HTTPCompletionClient):
    """Anthropic ``/v1/messages`` endpoint."""

    name = "anthropic"
    url = "https://api.anthropic.com/v1/messages"
    api_version = "2023-06-01"

    def _headers(self) -> dict[str, str]:
        return {
            "x-api-key": self._api_key,
            "anthropic-version": self.api_version,
            "Content-Type": "application/json",
        }

    def _payload(self, system_prompt, messages, temperature, max_tokens) -> dict[str, Any]:
        return {
            "model": self.model,
            "system": system_prompt,
            "messages": [{"role": message.role, "content": message.content} for message in messages],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

    def _extract(self, data: dict[str, Any]) -> str:
        blocks = data["content"]
        return "".join(block.get("text", "") for block in blocks if block.get("type") == "text")
