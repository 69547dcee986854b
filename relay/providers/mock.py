"""Canned-response provider for local development and demos."""

from __future__ import annotations

import asyncio
import re
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any

from relay.providers import register
from relay.providers.base import GenerationParams, Provider

if TYPE_CHECKING:
    from relay.config import RelayConfig


@register
class MockProvider(Provider):
    """Answers every prompt with the same text; streams it word by word."""

    name = "mock"
    default_model = "mock"
    env_key = None

    def __init__(self, response: str = "", delay: float = 0.0, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.response = response
        self.delay = delay

    @classmethod
    def from_config(cls, config: RelayConfig, **kwargs: Any) -> MockProvider:
        kwargs.setdefault("response", config.mock_response)
        return super().from_config(config, **kwargs)

    async def generate(self, prompt: str, params: GenerationParams) -> str:
        return self.response

    async def stream(self, prompt: str, params: GenerationParams) -> AsyncIterator[str]:
        # Keep whitespace attached so the fragments join back to the exact text
        for piece in re.findall(r"\S+\s*|\s+", self.response):
            if self.delay:
                await asyncio.sleep(self.delay)
            yield piece
