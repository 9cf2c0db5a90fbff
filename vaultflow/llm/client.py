"""Async OpenRouter client for VaultFlow.

Talks to OpenRouter's OpenAI-compatible chat completions endpoint over
httpx, with auth headers, retry/backoff on transient errors and JSON
response parsing.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Optional

import httpx

from vaultflow.core.config import LLMConfig
from vaultflow.core.exceptions import (
    AuthenticationError,
    LLMError,
    RateLimitError,
    ResponseParseError,
)
from vaultflow.llm.response_parser import extract_json_block

logger = logging.getLogger("vaultflow.llm")


class LLMMessage:
    """A single message in a conversation."""

    def __init__(self, role: str, content: str):
        self.role = role
        self.content = content

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


class LLMResponse:
    """Parsed response from the LLM."""

    def __init__(
        self,
        content: str,
        model: str,
        tokens_used: int = 0,
        raw: Optional[dict] = None,
    ):
        self.content = content
        self.model = model
        self.tokens_used = tokens_used
        self.raw = raw or {}


class OpenRouterClient:
    """Async HTTP client for OpenRouter's OpenAI-compatible API.

    ``transport`` lets callers swap the network layer (e.g. httpx.MockTransport).
    """

    def __init__(
        self,
        config: Optional[LLMConfig] = None,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or LLMConfig()
        self.api_key = api_key or os.getenv("OPENROUTER_API_KEY", "")
        self.base_url = self.config.base_url.rstrip("/")
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.timeout_seconds),
                transport=self._transport,
            )
        return self._client

    async def complete(
        self,
        messages: list[LLMMessage],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        response_format: Optional[dict] = None,
    ) -> LLMResponse:
        """Send a chat completion request to OpenRouter.

        Args:
            messages: Conversation messages.
            model: OpenRouter model ID (default from config).
            temperature: Sampling temperature (default from config).
            max_tokens: Max response tokens (default from config).
            response_format: Optional format constraint (e.g., {"type": "json_object"}).

        Returns:
            LLMResponse with content, model, and token usage.
        """
        if not self.api_key:
            raise AuthenticationError("OPENROUTER_API_KEY not set")

        payload: dict[str, Any] = {
            "model": model or self.config.model,
            "messages": [m.to_dict() for m in messages],
            "temperature": temperature if temperature is not None else self.config.default_temperature,
            "max_tokens": max_tokens or self.config.default_max_tokens,
        }
        if response_format:
            payload["response_format"] = response_format

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "X-Title": "VaultFlow",
        }

        return await self._request_with_retry(
            payload,
            headers,
            max_retries=self.config.provider_retries + 1,
            backoff_base_seconds=self.config.provider_backoff_seconds,
        )

    async def complete_json(
        self,
        messages: list[LLMMessage],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> dict[str, Any]:
        """Send a completion request expecting a JSON object back.

        Strips markdown code fences if present (common LLM behavior).
        """
        response = await self.complete(
            messages=messages,
            model=model,
            temperature=temperature,
            response_format={"type": "json_object"},
        )
        return _parse_json_response(response.content)

    async def _request_with_retry(
        self,
        payload: dict,
        headers: dict,
        max_retries: int = 3,
        backoff_base_seconds: float = 2.0,
    ) -> LLMResponse:
        """Execute request with exponential backoff on retryable errors."""
        last_error: Optional[Exception] = None
        rate_limited = False

        for attempt in range(max_retries):
            try:
                resp = await self.client.post(
                    f"{self.base_url}/chat/completions",
                    json=payload,
                    headers=headers,
                )
            except (httpx.TimeoutException, httpx.TransportError) as e:
                last_error = e
                delay = _backoff_delay(attempt, backoff_base_seconds)
                logger.warning("Network error: %s. Waiting %.1fs", e, delay)
                await asyncio.sleep(delay)
                continue

            if resp.status_code == 401:
                raise AuthenticationError("Invalid API key")
            if resp.status_code == 429:
                rate_limited = True
                delay = _backoff_delay(attempt, backoff_base_seconds)
                logger.warning("Rate limited. Waiting %.1fs before retry %d", delay, attempt + 1)
                await asyncio.sleep(delay)
                continue
            if resp.status_code >= 500:
                last_error = LLMError(f"Server error {resp.status_code}")
                delay = _backoff_delay(attempt, backoff_base_seconds)
                logger.warning("Server error %d. Waiting %.1fs", resp.status_code, delay)
                await asyncio.sleep(delay)
                continue
            if resp.status_code >= 400:
                raise LLMError(f"Request rejected with status {resp.status_code}: {resp.text[:300]}")

            try:
                data = resp.json()
                content = data["choices"][0]["message"]["content"]
            except (ValueError, KeyError, IndexError, TypeError) as e:
                raise ResponseParseError(f"Unexpected completion payload: {e}") from e

            model = data.get("model", payload.get("model", "unknown"))
            tokens = (data.get("usage") or {}).get("total_tokens") or 0
            logger.debug("LLM response: model=%s tokens=%d", model, tokens)
            return LLMResponse(content=content or "", model=model, tokens_used=tokens, raw=data)

        if rate_limited and last_error is None:
            raise RateLimitError(f"Rate limited after {max_retries} attempts")
        raise LLMError(f"Request failed after {max_retries} attempts: {last_error}")

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None


def _backoff_delay(attempt: int, base_seconds: float = 2.0) -> float:
    """Exponential backoff: 2s, 4s, 8s, ..."""
    return min(base_seconds * (2 ** attempt), 60)


def _parse_json_response(text: str) -> dict[str, Any]:
    """Parse a JSON object from LLM output, tolerating markdown fences."""
    parsed = extract_json_block(text)
    if parsed is None:
        raise ResponseParseError(f"Failed to parse JSON from LLM response\nRaw: {text[:500]}")
    return parsed
