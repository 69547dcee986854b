"""Upstream SSE unwrapping.

Providers that stream over Server-Sent Events wrap each payload in their own
``data:`` envelope. This strips the envelope and hands back decoded JSON so
no provider-specific framing ever reaches the relay's own stream.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any

from relay.errors import UpstreamError

UPSTREAM_DONE = "[DONE]"


def error_message(error: Any) -> str:
    """Pull a readable message out of an upstream error payload."""
    if isinstance(error, dict):
        return str(error.get("message") or error.get("status") or error)
    return str(error)


def _decode(payload: str) -> Any:
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise UpstreamError("Malformed event from upstream", details=payload[:200]) from e
    if isinstance(data, dict) and data.get("error"):
        raise UpstreamError(error_message(data["error"]))
    return data


async def iter_sse_data(lines: AsyncIterator[str]) -> AsyncIterator[Any]:
    """Yield decoded JSON payloads from an upstream SSE line stream.

    - consecutive ``data:`` lines form one event, ended by a blank line
    - comments (``:``) and ``event:``/``id:``/``retry:`` fields are ignored
    - ``[DONE]`` ends the stream
    - an ``{"error": ...}`` payload raises UpstreamError
    """
    buffer: list[str] = []

    async for raw in lines:
        line = raw.rstrip("\r\n")

        if not line.strip():
            if buffer:
                payload = "\n".join(buffer)
                buffer = []
                if payload.strip() == UPSTREAM_DONE:
                    return
                yield _decode(payload)
            continue

        if line.startswith(":") or not line.startswith("data:"):
            continue

        value = line[len("data:"):]
        buffer.append(value[1:] if value.startswith(" ") else value)

    if buffer:
        payload = "\n".join(buffer)
        if payload.strip() != UPSTREAM_DONE:
            yield _decode(payload)
