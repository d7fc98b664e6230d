"""Groq provider (OpenAI-compatible chat completions)."""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from fortysix.config.schema import DEFAULT_MODEL
from fortysix.errors import CompletionError, CompletionErrorKind
from fortysix.providers.base import LLMProvider, LLMResponse

DEFAULT_GROQ_BASE = "https://api.groq.com/openai/v1"
NO_RESPONSE_TEXT = "Sorry, no response generated."


class GroqProvider(LLMProvider):
    """Chat completions over httpx against Groq or any OpenAI-compatible API."""

    def __init__(
        self,
        api_key: str,
        api_base: str | None = None,
        default_model: str = DEFAULT_MODEL,
        timeout_s: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(api_key=api_key, api_base=(api_base or DEFAULT_GROQ_BASE).rstrip("/"))
        self.default_model = default_model
        self._client = client or httpx.AsyncClient(timeout=timeout_s)

    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        max_tokens: int = 1024,
        temperature: float = 0.7,
    ) -> LLMResponse:
        model = model or self.default_model
        body = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "content-type": "application/json",
        }

        try:
            response = await self._client.post(
                f"{self.api_base}/chat/completions", headers=headers, json=body
            )
        except httpx.TimeoutException as e:
            raise CompletionError(f"Request timed out: {e}", CompletionErrorKind.TIMEOUT) from e
        except httpx.HTTPError as e:
            raise CompletionError(
                f"Could not reach completion API: {e}", CompletionErrorKind.SERVICE
            ) from e

        if response.status_code != 200:
            raise CompletionError(
                _friendly_error(response.status_code, response.text),
                _kind_for_status(response.status_code),
                status_code=response.status_code,
            )

        try:
            data = response.json()
            choice = (data.get("choices") or [{}])[0]
            content = ((choice.get("message") or {}).get("content") or "").strip()
            finish_reason = choice.get("finish_reason") or "stop"
            usage = data.get("usage") or {}
        except Exception as e:
            raise CompletionError(f"Malformed completion response: {e}") from e

        logger.debug(
            f"Completion model={model} finish={finish_reason} "
            f"tokens={usage.get('total_tokens', '?')}"
        )
        return LLMResponse(
            content=content or NO_RESPONSE_TEXT,
            finish_reason=finish_reason,
            usage={k: v for k, v in usage.items() if isinstance(v, int)},
        )

    def get_default_model(self) -> str:
        return self.default_model

    async def close(self) -> None:
        await self._client.aclose()


def _kind_for_status(status_code: int) -> CompletionErrorKind:
    if status_code == 429:
        return CompletionErrorKind.RATE_LIMITED
    if status_code in (401, 403):
        return CompletionErrorKind.AUTH
    if status_code in (408, 504):
        return CompletionErrorKind.TIMEOUT
    if status_code >= 500:
        return CompletionErrorKind.SERVICE
    return CompletionErrorKind.GENERIC


def _friendly_error(status_code: int, raw: str) -> str:
    if status_code == 429:
        return "Rate limit reached. Please try again later."
    if status_code in (401, 403):
        return "Invalid API key. Get one at https://console.groq.com/keys"
    return f"HTTP {status_code}: {raw[:200]}"
