"""Google Gemini over the Generative Language REST API."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Any

from relay.providers import register
from relay.providers.base import GenerationParams, HTTPProvider

logger = logging.getLogger(__name__)


def extract_text(data: Any) -> str:
    """Concatenate the text parts of the first candidate.

    {"candidates": [{"content": {"parts": [{"text": "Hi"}, {"text": "!"}]}}]} -> "Hi!"
    """
    if not isinstance(data, dict):
        return ""
    candidates = data.get("candidates") or []
    if not candidates:
        block = (data.get("promptFeedback") or {}).get("blockReason")
        if block:
            logger.warning(f"Gemini blocked the prompt: {block}")
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(p.get("text", "") for p in parts if isinstance(p, dict))


@register
class GeminiProvider(HTTPProvider):
    name = "gemini"
    default_model = "gemini-1.5-flash"
    env_key = "GOOGLE_API_KEY"
    default_base_url = "https://generativelanguage.googleapis.com/v1beta"

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json", "x-goog-api-key": self.api_key or ""}

    def _payload(self, prompt: str, params: GenerationParams) -> dict:
        return {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": params.temperature,
                "maxOutputTokens": params.max_output_tokens,
            },
        }

    async def generate(self, prompt: str, params: GenerationParams) -> str:
        url = f"{self.root}/models/{params.model}:generateContent"
        data = await self._post_json(url, self._payload(prompt, params))
        return extract_text(data)

    async def stream(self, prompt: str, params: GenerationParams) -> AsyncIterator[str]:
        url = f"{self.root}/models/{params.model}:streamGenerateContent?alt=sse"
        async for data in self._stream_events(url, self._payload(prompt, params)):
            text = extract_text(data)
            if text:
                yield text
