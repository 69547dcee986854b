"""Third-party text-generation inference API (Hugging Face style).

Buffered responses are ``[{"generated_text": ...}]``; streamed events carry
one token each: ``{"token": {"text": "...", "special": false}}``.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

from relay.providers import register
from relay.providers.base import GenerationParams, HTTPProvider


def extract_generated_text(data: Any) -> str:
    if isinstance(data, list):
        data = data[0] if data else {}
    if not isinstance(data, dict):
        return ""
    return data.get("generated_text") or ""


@register
class TextGenProvider(HTTPProvider):
    name = "textgen"
    default_model = "mistralai/Mistral-7B-Instruct-v0.3"
    env_key = "HF_API_TOKEN"
    default_base_url = "https://api-inference.huggingface.co/models"

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    def _payload(self, prompt: str, params: GenerationParams, stream: bool) -> dict:
        return {
            "inputs": prompt,
            "parameters": {
                "temperature": params.temperature,
                "max_new_tokens": params.max_output_tokens,
                "return_full_text": False,
            },
            "stream": stream,
        }

    async def generate(self, prompt: str, params: GenerationParams) -> str:
        url = f"{self.root}/{params.model}"
        data = await self._post_json(url, self._payload(prompt, params, stream=False))
        return extract_generated_text(data)

    async def stream(self, prompt: str, params: GenerationParams) -> AsyncIterator[str]:
        url = f"{self.root}/{params.model}"
        async for data in self._stream_events(url, self._payload(prompt, params, stream=True)):
            token = data.get("token") if isinstance(data, dict) else None
            if not token or token.get("special"):
                continue
            if token.get("text"):
                yield token["text"]
