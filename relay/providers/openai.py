"""OpenAI-compatible chat completions (OpenAI, LiteLLM, custom gateways)."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

from relay.providers import register
from relay.providers.base import GenerationParams, HTTPProvider


def _first_choice(data: Any) -> dict:
    if not isinstance(data, dict):
        return {}
    choices = data.get("choices") or []
    return choices[0] if choices and isinstance(choices[0], dict) else {}


@register
class OpenAIProvider(HTTPProvider):
    name = "openai"
    default_model = "gpt-4o-mini"
    env_key = "OPENAI_API_KEY"
    default_base_url = "https://api.openai.com/v1"

    @property
    def endpoint(self) -> str:
        if self.root.endswith("/chat/completions"):
            return self.root
        return self.root + "/chat/completions"

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    def _payload(self, prompt: str, params: GenerationParams, stream: bool) -> dict:
        return {
            "model": params.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": params.temperature,
            "max_tokens": params.max_output_tokens,
            "stream": stream,
        }

    async def generate(self, prompt: str, params: GenerationParams) -> str:
        data = await self._post_json(self.endpoint, self._payload(prompt, params, stream=False))
        message = _first_choice(data).get("message") or {}
        return message.get("content") or ""

    async def stream(self, prompt: str, params: GenerationParams) -> AsyncIterator[str]:
        payload = self._payload(prompt, params, stream=True)
        async for data in self._stream_events(self.endpoint, payload):
            delta = _first_choice(data).get("delta") or {}
            text = delta.get("content")
            if text:
                yield text
