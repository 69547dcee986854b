"""Anthropic Claude through langchain-anthropic."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import HumanMessage

from relay.errors import UpstreamError
from relay.providers import register
from relay.providers.base import GenerationParams, Provider

logger = logging.getLogger(__name__)


def extract_content(content) -> str:
    """Normalize message content. Anthropic can return a list of blocks or a string."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        # [{"type": "text", "text": "..."}]; tool and thinking blocks carry no answer text
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type", "text") == "text":
                parts.append(block.get("text", ""))
        return "".join(parts)
    return str(content)


def _upstream_error(e: Exception) -> UpstreamError:
    return UpstreamError(
        f"Anthropic request failed: {e}",
        status_code=getattr(e, "status_code", None),
    )


@register
class AnthropicProvider(Provider):
    name = "anthropic"
    default_model = "claude-sonnet-4-20250514"
    env_key = "ANTHROPIC_API_KEY"

    def _get_llm(self, params: GenerationParams) -> ChatAnthropic:
        kwargs = {}
        if self.base_url:
            kwargs["base_url"] = self.base_url
        return ChatAnthropic(
            model=params.model,
            max_tokens=params.max_output_tokens,
            temperature=params.temperature,
            api_key=self.api_key,
            default_request_timeout=self.timeout,
            max_retries=0,
            **kwargs,
        )

    async def generate(self, prompt: str, params: GenerationParams) -> str:
        try:
            response = await self._get_llm(params).ainvoke([HumanMessage(content=prompt)])
        except Exception as e:
            logger.error(f"Anthropic error: {e}", exc_info=True)
            raise _upstream_error(e) from e
        return extract_content(response.content)

    async def stream(self, prompt: str, params: GenerationParams) -> AsyncIterator[str]:
        llm = self._get_llm(params)
        try:
            async for chunk in llm.astream([HumanMessage(content=prompt)]):
                text = extract_content(chunk.content)
                if text:
                    yield text
        except Exception as e:
            logger.error(f"Anthropic stream error: {e}", exc_info=True)
            raise _upstream_error(e) from e
