import asyncio

import pytest

from conftest import EndlessProvider, FakeProvider, SlowProvider, collect
from relay.config import RelayConfig
from relay.errors import ConfigurationError, UpstreamError, ValidationError
from relay.runtime import Relay
from relay.schemas import StreamEvent


def _kinds(events):
    return [e.kind for e in events]


# ---------------------------------------------------------------------------
# Streaming
# ---------------------------------------------------------------------------


def test_fragments_become_deltas_then_done(streaming_config):
    relay = Relay(streaming_config, FakeProvider(fragments=["Hello", " world"]))
    events = collect(relay.events("hi"))
    assert events == [StreamEvent.delta("Hello"), StreamEvent.delta(" world"), StreamEvent.done()]
    assert "".join(e.text for e in events if e.kind == "delta") == "Hello world"


def test_empty_upstream_still_terminates_with_done(streaming_config):
    relay = Relay(streaming_config, FakeProvider(fragments=[]))
    assert collect(relay.events("hi")) == [StreamEvent.done()]


def test_empty_fragments_are_not_forwarded(streaming_config):
    relay = Relay(streaming_config, FakeProvider(fragments=["", "a", ""]))
    assert _kinds(collect(relay.events("hi"))) == ["delta", "done"]


def test_failure_before_first_fragment_is_single_error(streaming_config):
    provider = FakeProvider(error=UpstreamError("Could not reach fake"))
    events = collect(Relay(streaming_config, provider).events("hi"))
    assert events == [StreamEvent.error("Could not reach fake")]


def test_failure_mid_stream_keeps_deltas_then_error(streaming_config):
    provider = FakeProvider(fragments=["a", "b", "c"], error=UpstreamError("dropped"), fail_after=2)
    events = collect(Relay(streaming_config, provider).events("hi"))
    assert _kinds(events) == ["delta", "delta", "error"]
    assert events[-1].message == "dropped"


def test_unexpected_exception_is_reported_as_error(streaming_config):
    provider = FakeProvider(error=KeyError("candidates"))
    events = collect(Relay(streaming_config, provider).events("hi"))
    assert _kinds(events) == ["error"]
    assert "candidates" in events[0].message


@pytest.mark.parametrize("provider", [
    FakeProvider(),
    FakeProvider(fragments=[]),
    FakeProvider(error=UpstreamError("x")),
    FakeProvider(fragments=["a", "b"], error=UpstreamError("x"), fail_after=1),
])
def test_exactly_one_terminal_event_last(streaming_config, provider):
    events = collect(Relay(streaming_config, provider).events("hi"))
    terminals = [e for e in events if e.terminal]
    assert len(terminals) == 1
    assert events[-1].terminal


def test_client_disconnect_closes_upstream(streaming_config):
    provider = EndlessProvider()
    relay = Relay(streaming_config, provider)
    seen = []

    async def run():
        async for event in relay.events("hi", is_disconnected=lambda: len(seen) >= 1):
            seen.append(event)

    asyncio.run(asyncio.wait_for(run(), timeout=2))

    assert _kinds(seen) == ["delta"]
    assert provider.closed
    assert provider.reads <= 2


def test_async_disconnect_check_is_awaited(streaming_config):
    provider = EndlessProvider()
    relay = Relay(streaming_config, provider)
    seen = []

    async def gone():
        return len(seen) >= 2

    async def run():
        async for event in relay.events("hi", is_disconnected=gone):
            seen.append(event)

    asyncio.run(asyncio.wait_for(run(), timeout=2))
    assert _kinds(seen) == ["delta", "delta"]
    assert provider.closed


def test_abandoned_consumer_closes_upstream(streaming_config):
    provider = EndlessProvider()
    relay = Relay(streaming_config, provider)

    async def run():
        events = relay.events("hi")
        first = await anext(events)
        await events.aclose()
        return first

    assert asyncio.run(run()) == StreamEvent.delta("tick")
    assert provider.closed


def test_stream_timeout_becomes_error():
    config = RelayConfig(provider="mock", timeout_seconds=0.05)
    events = collect(Relay(config, SlowProvider()).events("hi"))
    assert events == [StreamEvent.delta("first"), StreamEvent.error("Upstream request timed out")]


def test_frames_are_wire_encoded(streaming_config):
    relay = Relay(streaming_config, FakeProvider(fragments=["Hi"]))
    frames = collect(relay.frames("hi"))
    assert frames == ['data: {"text": "Hi", "type": "text-delta"}\n\n', "data: [DONE]\n\n"]


def test_error_frames_end_with_terminator(streaming_config):
    relay = Relay(streaming_config, FakeProvider(error=UpstreamError("nope")))
    body = "".join(collect(relay.frames("hi")))
    assert body == 'data: {"error": "nope", "type": "error"}\n\ndata: [DONE]\n\n'


def test_same_prompt_yields_identical_frames(streaming_config):
    relay = Relay(streaming_config, FakeProvider(fragments=["x", "y", "z"]))
    assert collect(relay.frames("same")) == collect(relay.frames("same"))


# ---------------------------------------------------------------------------
# Buffered
# ---------------------------------------------------------------------------


def test_complete_returns_text(buffered_config):
    relay = Relay(buffered_config, FakeProvider(text="full answer"))
    assert asyncio.run(relay.complete("hi")) == "full answer"


def test_empty_completion_returns_placeholder(buffered_config):
    relay = Relay(buffered_config, FakeProvider(text="  "))
    assert asyncio.run(relay.complete("hi")) == buffered_config.empty_response_text


def test_complete_propagates_upstream_error(buffered_config):
    relay = Relay(buffered_config, FakeProvider(error=UpstreamError("rate limited", status_code=429)))
    with pytest.raises(UpstreamError) as exc:
        asyncio.run(relay.complete("hi"))
    assert exc.value.status_code == 429


def test_complete_timeout_is_504():
    config = RelayConfig(provider="mock", mode="buffered", timeout_seconds=0.05)
    with pytest.raises(UpstreamError) as exc:
        asyncio.run(Relay(config, SlowProvider()).complete("hi"))
    assert exc.value.status_code == 504


# ---------------------------------------------------------------------------
# Request checks
# ---------------------------------------------------------------------------


def test_params_follow_config():
    config = RelayConfig(provider="mock", model="custom", temperature=0.2, max_output_tokens=10)
    relay = Relay(config, FakeProvider())
    assert relay.params.model == "custom"
    assert relay.params.temperature == 0.2
    assert relay.params.max_output_tokens == 10
    assert Relay(RelayConfig(provider="mock"), FakeProvider()).params.model == "fake-model"


def test_missing_credential_names_the_variable(streaming_config):
    relay = Relay(streaming_config, FakeProvider(api_key=None))
    with pytest.raises(ConfigurationError) as exc:
        relay.check_credentials()
    assert exc.value.status_code == 500
    assert "FAKE_API_KEY" in exc.value.message


def test_credential_present_passes(streaming_config):
    Relay(streaming_config, FakeProvider(api_key="k")).check_credentials()


@pytest.mark.parametrize("payload", [
    None,
    "just a string",
    ["prompt"],
    {},
    {"prompt": ""},
    {"prompt": 42},
])
def test_prepare_rejects_bad_bodies(streaming_config, payload):
    with pytest.raises(ValidationError):
        Relay(streaming_config, FakeProvider()).prepare(payload)


def test_prepare_truncates_long_prompts():
    config = RelayConfig(provider="mock", max_prompt_chars=5)
    assert Relay(config, FakeProvider()).prepare({"prompt": "abcdefgh"}) == "abcde"


@pytest.mark.parametrize("extra", [
    {"missingSkills": "Python"},
    {"missingSkills": [1, {"a": 2}]},
    {"targetRole": 7},
    {"resumeText": ["cv"]},
])
def test_prepare_keeps_prompt_despite_malformed_optional_fields(streaming_config, extra):
    relay = Relay(streaming_config, FakeProvider())
    assert relay.prepare({"prompt": "hi", **extra}) == "hi"


def test_prepare_malformed_fields_without_prompt_still_rejected(streaming_config):
    with pytest.raises(ValidationError):
        Relay(streaming_config, FakeProvider()).prepare({"missingSkills": "Python"})
