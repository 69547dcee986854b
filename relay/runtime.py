"""Runtime: bridges one HTTP request to one upstream provider call.

Validates the request, runs the provider, and turns its output into either a
single text (buffered mode) or an ordered StreamEvent sequence (streaming
mode). Holds no state between requests.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import aclosing
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from relay.config import RelayConfig
from relay.errors import (
    ClientDisconnected,
    ConfigurationError,
    ExtractionError,
    RelayError,
    UpstreamError,
    ValidationError,
)
from relay.prompts import resolve_prompt, truncate_prompt
from relay.providers.base import GenerationParams, Provider
from relay.schemas import PromptRequest, StreamEvent, encode_event

logger = logging.getLogger(__name__)

DisconnectCheck = Callable[[], Awaitable[bool] | bool]


class Relay:
    """One relay, parameterized by config and a provider capability."""

    def __init__(self, config: RelayConfig, provider: Provider) -> None:
        self.config = config
        self.provider = provider
        self.params = GenerationParams(
            model=config.model or provider.default_model,
            temperature=config.temperature,
            max_output_tokens=config.max_output_tokens,
        )

    # ------------------------------------------------------------------
    # Request checks (run before anything is committed)
    # ------------------------------------------------------------------

    def check_credentials(self) -> None:
        """Raise ConfigurationError if the provider needs a key we don't have."""
        if self.provider.requires_key and not self.provider.api_key:
            env_key = self.config.credential_env or self.provider.env_key
            logger.error(f"{env_key} is not set")
            raise ConfigurationError(env_key)

    def prepare(self, payload: Any) -> str:
        """Validate a decoded JSON body and return the prompt to send upstream."""
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object")
        try:
            request = PromptRequest.model_validate(payload)
        except PydanticValidationError as e:
            # A usable prompt wins over malformed optional fields.
            prompt = payload.get("prompt")
            if not isinstance(prompt, str) or not prompt.strip():
                raise ValidationError("Invalid request body", details=str(e)) from e
            logger.warning(f"Ignoring malformed optional fields: {e.error_count()} error(s)")
            request = PromptRequest(prompt=prompt)

        prompt = resolve_prompt(request)
        return truncate_prompt(prompt, self.config.max_prompt_chars)

    # ------------------------------------------------------------------
    # Buffered mode
    # ------------------------------------------------------------------

    async def complete(self, prompt: str) -> str:
        """Run the provider to completion and return its text.

        Upstream failures raise UpstreamError. An empty completion is a soft
        failure and comes back as the configured placeholder.
        """
        logger.info(f"Relaying buffered request to {self.provider.name} ({len(prompt)} chars)")
        try:
            async with asyncio.timeout(self.config.timeout_seconds):
                text = await self.provider.generate(prompt, self.params)
        except TimeoutError as e:
            logger.error(f"{self.provider.name} timed out after {self.config.timeout_seconds}s")
            raise UpstreamError("Upstream request timed out", status_code=504) from e

        try:
            return self._require_text(text)
        except ExtractionError as e:
            logger.warning(f"{e.message}, returning placeholder")
            return self.config.empty_response_text

    def _require_text(self, text: str | None) -> str:
        if not text or not text.strip():
            raise ExtractionError(f"{self.provider.name} returned no text")
        return text

    # ------------------------------------------------------------------
    # Streaming mode
    # ------------------------------------------------------------------

    async def events(
        self,
        prompt: str,
        is_disconnected: DisconnectCheck | None = None,
    ) -> AsyncGenerator[StreamEvent, None]:
        """Yield zero or more delta events, then exactly one terminal event.

        ``is_disconnected`` is polled after every upstream fragment; when it
        reports True the upstream is closed and nothing more is yielded.
        """
        logger.info(f"Relaying streaming request to {self.provider.name} ({len(prompt)} chars)")
        deadline = asyncio.get_running_loop().time() + self.config.timeout_seconds
        deltas = 0
        terminal: StreamEvent

        try:
            async with aclosing(self.provider.stream(prompt, self.params)) as fragments:
                while True:
                    # Only upstream reads count against the deadline; the yield
                    # below waits on the client.
                    try:
                        async with asyncio.timeout_at(deadline):
                            fragment = await anext(fragments)
                    except StopAsyncIteration:
                        break
                    if await _disconnected(is_disconnected):
                        raise ClientDisconnected()
                    if not fragment:
                        continue
                    deltas += 1
                    yield StreamEvent.delta(fragment)
            terminal = StreamEvent.done()
        except ClientDisconnected:
            logger.info(f"Client disconnected after {deltas} deltas, upstream closed")
            return
        except TimeoutError:
            logger.error(f"{self.provider.name} stream timed out after {self.config.timeout_seconds}s")
            terminal = StreamEvent.error("Upstream request timed out")
        except RelayError as e:
            logger.error(f"Upstream stream error: {e.message}")
            terminal = StreamEvent.error(e.message)
        except Exception as e:
            logger.error(f"Stream execution error: {e}", exc_info=True)
            terminal = StreamEvent.error(f"Execution error: {e}")

        if terminal.kind == "done":
            logger.info(f"Stream completed: {deltas} deltas")
        yield terminal

    async def frames(
        self,
        prompt: str,
        is_disconnected: DisconnectCheck | None = None,
    ) -> AsyncGenerator[str, None]:
        """Wire-encoded frames for ``events``."""
        async with aclosing(self.events(prompt, is_disconnected)) as events:
            async for event in events:
                yield encode_event(event)


async def _disconnected(check: DisconnectCheck | None) -> bool:
    if check is None:
        return False
    result = check()
    if inspect.isawaitable(result):
        result = await result
    return bool(result)
