"""Provider interface: the one capability the relay is written against.

A provider turns a prompt into text, either all at once (``generate``) or as
an ordered sequence of fragments (``stream``). Every upstream failure is
raised as ``UpstreamError``; providers never retry.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

from relay.errors import UpstreamError
from relay.providers.sse import iter_sse_data

if TYPE_CHECKING:
    from relay.config import RelayConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationParams:
    model: str
    temperature: float = 0.7
    max_output_tokens: int = 2048


class Provider(ABC):
    """Base class for upstream generative-text providers."""

    name: str = ""
    default_model: str = ""
    env_key: str | None = None  # None means no credential is needed

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 120.0,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url
        self.transport = transport
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: RelayConfig, **kwargs: Any) -> Provider:
        return cls(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=config.timeout_seconds,
            **kwargs,
        )

    @property
    def requires_key(self) -> bool:
        return self.env_key is not None

    @abstractmethod
    async def generate(self, prompt: str, params: GenerationParams) -> str:
        """Return the full completion. Empty string when the upstream produced no text."""

    @abstractmethod
    def stream(self, prompt: str, params: GenerationParams) -> AsyncIterator[str]:
        """Yield completion fragments in order as the upstream produces them."""


class HTTPProvider(Provider):
    """Shared plumbing for providers reached over plain HTTP with httpx.

    Each call opens its own client, so nothing is shared between requests.
    """

    default_base_url: str = ""

    @property
    def root(self) -> str:
        return (self.base_url or self.default_base_url).rstrip("/")

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    async def _post_json(self, url: str, payload: dict) -> Any:
        """POST ``payload`` and return the decoded JSON body."""
        try:
            async with self._client() as client:
                resp = await client.post(url, headers=self._headers(), json=payload)
        except httpx.HTTPError as e:
            logger.error(f"{self.name} request failed: {e}")
            raise UpstreamError(f"Could not reach {self.name}: {e}") from e

        if resp.is_error:
            logger.error(f"{self.name} returned {resp.status_code}: {resp.text[:200]}")
            raise UpstreamError(
                f"{self.name} returned HTTP {resp.status_code}",
                status_code=resp.status_code,
                details=resp.text[:500],
            )

        try:
            return resp.json()
        except ValueError as e:
            raise UpstreamError(f"{self.name} returned a non-JSON body") from e

    async def _stream_events(self, url: str, payload: dict) -> AsyncIterator[dict]:
        """POST ``payload`` and yield each decoded upstream SSE payload.

        Leaving the loop early (client gone, timeout) closes the upstream
        connection via the ``async with`` blocks.
        """
        try:
            async with self._client() as client:
                async with client.stream(
                    "POST", url, headers=self._headers(), json=payload
                ) as resp:
                    if resp.is_error:
                        body = (await resp.aread()).decode("utf-8", errors="replace")
                        logger.error(f"{self.name} returned {resp.status_code}: {body[:200]}")
                        raise UpstreamError(
                            f"{self.name} returned HTTP {resp.status_code}",
                            status_code=resp.status_code,
                            details=body[:500],
                        )
                    logger.info(f"{self.name} connected, streaming")
                    async for data in iter_sse_data(resp.aiter_lines()):
                        yield data
        except httpx.HTTPError as e:
            logger.error(f"{self.name} stream failed: {e}")
            raise UpstreamError(f"Could not reach {self.name}: {e}") from e
