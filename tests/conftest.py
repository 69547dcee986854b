import asyncio

import pytest

from relay.config import RelayConfig
from relay.providers.base import Provider


class FakeProvider(Provider):
    """Deterministic upstream: yields fixed fragments, optionally failing.

    ``error`` is raised after ``fail_after`` fragments (before any when None).
    """

    name = "fake"
    default_model = "fake-model"
    env_key = "FAKE_API_KEY"

    def __init__(self, fragments=("Hello", " world"), text=None, error=None,
                 fail_after=None, api_key="test-key"):
        super().__init__(api_key=api_key)
        self.fragments = list(fragments)
        self.text = "".join(self.fragments) if text is None else text
        self.error = error
        self.fail_after = fail_after
        self.calls = 0
        self.prompts = []
        self.params = []

    async def generate(self, prompt, params):
        self.calls += 1
        self.prompts.append(prompt)
        self.params.append(params)
        if self.error is not None:
            raise self.error
        return self.text

    async def stream(self, prompt, params):
        self.calls += 1
        self.prompts.append(prompt)
        self.params.append(params)
        for i, fragment in enumerate(self.fragments):
            if self.error is not None and i == (self.fail_after or 0):
                raise self.error
            yield fragment
        if self.error is not None and (self.fail_after or 0) >= len(self.fragments):
            raise self.error


class EndlessProvider(Provider):
    """Never finishes on its own; records whether it was closed."""

    name = "endless"
    default_model = "endless"
    env_key = None

    def __init__(self):
        super().__init__()
        self.reads = 0
        self.closed = False

    async def generate(self, prompt, params):
        await asyncio.sleep(3600)
        return ""

    async def stream(self, prompt, params):
        try:
            while True:
                self.reads += 1
                await asyncio.sleep(0)
                yield "tick"
        finally:
            self.closed = True


class SlowProvider(Provider):
    """Takes far longer than any test timeout."""

    name = "slow"
    default_model = "slow"
    env_key = None

    async def generate(self, prompt, params):
        await asyncio.sleep(3600)
        return "late"

    async def stream(self, prompt, params):
        yield "first"
        await asyncio.sleep(3600)
        yield "late"


def collect(agen):
    """Drain an async iterator synchronously."""

    async def _drain():
        return [item async for item in agen]

    return asyncio.run(_drain())


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ("GOOGLE_API_KEY", "OPENAI_API_KEY", "HF_API_TOKEN",
                "ANTHROPIC_API_KEY", "RELAY_PROVIDER", "RELAY_MODE",
                "RELAY_MODEL", "RELAY_CONFIG"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def streaming_config():
    return RelayConfig(provider="mock", mode="streaming")


@pytest.fixture
def buffered_config():
    return RelayConfig(provider="mock", mode="buffered")
