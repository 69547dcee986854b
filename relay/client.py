"""Client stream consumer: the caller's side of the relay protocol.

Posts a prompt, decides from the response content type whether the answer is
buffered JSON or a stream of ``data:`` frames, and accumulates text as it
arrives. ``on_update`` is called with the accumulated text after every frame
so a UI can render progressively.

    consumer = StreamConsumer("http://localhost:8000/api/analyze", on_update=print)
    result = await consumer.analyze(resume_text, "Data Analyst", ["Python"])
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import nullcontext
from dataclasses import dataclass
from enum import Enum

import httpx

from relay.prompts import compose_prompt
from relay.schemas import parse_frame

logger = logging.getLogger(__name__)

STREAM_CONTENT_TYPES = ("text/plain", "text/event-stream")


class ConsumerState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    STREAMING = "streaming"
    BUFFERED = "buffered"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class ConsumerResult:
    state: ConsumerState
    text: str = ""
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.state is ConsumerState.SUCCESS


def is_stream_type(content_type: str) -> bool:
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type in STREAM_CONTENT_TYPES


class StreamConsumer:
    """Issues one relay request at a time; every call starts from scratch."""

    def __init__(
        self,
        url: str,
        client: httpx.AsyncClient | None = None,
        on_update: Callable[[str], None] | None = None,
        timeout: float = 120.0,
    ) -> None:
        self.url = url
        self.on_update = on_update
        self.timeout = timeout
        self._client = client
        self.state = ConsumerState.IDLE
        self.text = ""
        self.error: str | None = None

    async def analyze(
        self,
        resume_text: str,
        target_role: str,
        missing_skills: list[str] | None = None,
    ) -> ConsumerResult:
        """Compose the coaching prompt from résumé context and send it."""
        return await self.send(compose_prompt(target_role, resume_text, missing_skills))

    async def send(self, prompt: str) -> ConsumerResult:
        self.state = ConsumerState.REQUESTING
        self.text = ""
        self.error = None

        try:
            async with self._open_client() as client:
                async with client.stream("POST", self.url, json={"prompt": prompt}) as resp:
                    content_type = resp.headers.get("content-type", "")
                    if resp.is_success and is_stream_type(content_type):
                        self.state = ConsumerState.STREAMING
                        await self._read_stream(resp)
                    else:
                        self.state = ConsumerState.BUFFERED
                        await self._read_buffered(resp)
        except httpx.HTTPError as e:
            logger.error(f"Relay request failed: {e}")
            self._fail(f"Request failed: {e}")

        return ConsumerResult(state=self.state, text=self.text, error=self.error)

    def _open_client(self):
        if self._client is not None:
            return nullcontext(self._client)
        return httpx.AsyncClient(timeout=self.timeout)

    async def _read_stream(self, resp: httpx.Response) -> None:
        async for line in resp.aiter_lines():
            event = parse_frame(line)
            if event is None:
                continue
            match event.kind:
                case "delta":
                    self.text += event.text
                    self._notify()
                case "error":
                    # Keep whatever text already arrived
                    self._fail(event.message)
                    return
                case "done":
                    self.state = ConsumerState.SUCCESS
                    return
        self._fail("Stream ended unexpectedly")

    async def _read_buffered(self, resp: httpx.Response) -> None:
        await resp.aread()
        try:
            data = resp.json()
        except ValueError:
            self._fail(f"Unexpected response from relay (HTTP {resp.status_code})")
            return

        if not isinstance(data, dict):
            self._fail(f"Unexpected response from relay (HTTP {resp.status_code})")
        elif data.get("error"):
            self._fail(str(data["error"]))
        elif resp.is_error:
            self._fail(f"Relay returned HTTP {resp.status_code}")
        elif not isinstance(data.get("text"), str):
            self._fail("Relay response has no text")
        else:
            self.text = data["text"]
            self._notify()
            self.state = ConsumerState.SUCCESS

    def _notify(self) -> None:
        if self.on_update is not None:
            self.on_update(self.text)

    def _fail(self, message: str) -> None:
        self.state = ConsumerState.ERROR
        self.error = message
