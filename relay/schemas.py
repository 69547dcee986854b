"""Request/response models and the StreamEvent wire format.

Wire format (one frame per event, each followed by a blank line):

    data: {"text": "Hel", "type": "text-delta"}
    data: {"error": "upstream failed", "type": "error"}
    data: [DONE]

A stream always ends with the literal ``[DONE]`` frame. An ``error`` event is
terminal, so it is written as its own frame immediately followed by
``[DONE]``.
"""

from __future__ import annotations

import json
import logging
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"
DONE_FRAME = f"data: {DONE_SENTINEL}\n\n"


class PromptRequest(BaseModel):
    """Incoming request body.

    Either ``prompt`` is given directly, or ``targetRole`` + ``resumeText``
    (optionally ``missingSkills``) from which the relay composes one.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    prompt: str | None = None
    target_role: str | None = Field(default=None, alias="targetRole")
    resume_text: str | None = Field(default=None, alias="resumeText")
    missing_skills: list[str] | None = Field(default=None, alias="missingSkills")


class BufferedResponse(BaseModel):
    text: str


class StreamEvent(BaseModel):
    """One frame of the relay's output stream.

    Kinds:
        delta - a non-empty piece of generated text
        error - the stream failed; terminal
        done  - the stream completed; terminal
    """

    kind: Literal["delta", "error", "done"]
    text: str = ""
    message: str = ""

    @classmethod
    def delta(cls, text: str) -> StreamEvent:
        return cls(kind="delta", text=text)

    @classmethod
    def error(cls, message: str) -> StreamEvent:
        return cls(kind="error", message=message)

    @classmethod
    def done(cls) -> StreamEvent:
        return cls(kind="done")

    @property
    def terminal(self) -> bool:
        return self.kind != "delta"


def encode_event(event: StreamEvent) -> str:
    """Render one event as wire frames."""
    match event.kind:
        case "delta":
            payload = json.dumps({"text": event.text, "type": "text-delta"})
            return f"data: {payload}\n\n"
        case "error":
            payload = json.dumps({"error": event.message, "type": "error"})
            return f"data: {payload}\n\n{DONE_FRAME}"
        case "done":
            return DONE_FRAME
        case _:
            raise ValueError(f"Unknown event kind: {event.kind}")


def parse_frame(line: str) -> StreamEvent | None:
    """Decode a single ``data:`` line. Returns None for anything that is not an event."""
    line = line.strip()
    if not line.startswith(DATA_PREFIX):
        return None

    payload = line[len(DATA_PREFIX):].strip()
    if payload == DONE_SENTINEL:
        return StreamEvent.done()

    try:
        data = json.loads(payload)
    except json.JSONDecodeError:
        logger.warning(f"Skipping malformed frame: {payload[:80]}")
        return None
    if not isinstance(data, dict):
        return None

    if data.get("type") == "error" or "error" in data:
        return StreamEvent.error(str(data.get("error") or "Unknown error"))
    if data.get("type") == "text-delta":
        return StreamEvent.delta(str(data.get("text", "")))
    return None
