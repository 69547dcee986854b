"""Configuration loader: reads config.yaml, validates with Pydantic.

One relay per process. The upstream credential is resolved from the
environment once, at load time, and is never written afterwards.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"

# Environment variables that override values from the file.
ENV_OVERRIDES = {
    "RELAY_PROVIDER": "provider",
    "RELAY_MODE": "mode",
    "RELAY_MODEL": "model",
}


class RelayConfig(BaseModel):
    """Top-level relay configuration."""

    provider: str = "gemini"
    mode: Literal["buffered", "streaming"] = "streaming"
    model: str | None = None  # provider default when unset

    # Generation parameters forwarded upstream
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_output_tokens: int = Field(default=2048, gt=0)

    # Safety caps
    max_prompt_chars: int = Field(default=10_000, gt=0)
    timeout_seconds: float = Field(default=120.0, gt=0)

    # HTTP surface
    allowed_origin: str = "*"
    endpoint_path: str = "/api/analyze"

    # Upstream access
    api_key_env: str | None = None
    api_key: str | None = Field(default=None, exclude=True, repr=False)
    base_url: str | None = None

    # Canned text for the mock provider
    mock_response: str = (
        "## Resume Improvement Suggestions\n\n"
        "- Lead each bullet with a measurable outcome.\n\n"
        "## Skill-Gap Action Plan\n\n"
        "- Build one small project that uses each missing skill."
    )
    # Returned when the upstream succeeds but produces no text
    empty_response_text: str = "The model did not return any text. Please try again."

    @field_validator("endpoint_path")
    @classmethod
    def must_be_absolute(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError(f"endpoint_path must start with '/', got '{v}'")
        return v

    @model_validator(mode="after")
    def resolve_provider(self) -> RelayConfig:
        from relay.providers import list_providers

        if self.provider not in list_providers():
            raise ValueError(
                f"Unknown provider '{self.provider}'. "
                f"Available: {sorted(list_providers())}"
            )

        if self.api_key is None and self.credential_env:
            self.api_key = os.environ.get(self.credential_env) or None
        return self

    @property
    def credential_env(self) -> str | None:
        """Name of the environment variable holding the upstream key, if any."""
        from relay.providers import get_provider_class

        return self.api_key_env or get_provider_class(self.provider).env_key

    @property
    def streaming(self) -> bool:
        return self.mode == "streaming"


# ---------------------------------------------------------------------------
# Module-level config cache
# ---------------------------------------------------------------------------

_config: RelayConfig | None = None


def load_config(path: str | None = None) -> RelayConfig:
    """Read the config file (if present), apply env overrides, validate, and cache.

    The path defaults to ``$RELAY_CONFIG`` or ``config.yaml``. A missing file
    is not an error: serverless deployments configure through the
    environment only.
    """
    global _config
    path = path or os.environ.get("RELAY_CONFIG", DEFAULT_CONFIG_PATH)

    config_file = Path(path)
    if config_file.exists():
        raw = yaml.safe_load(config_file.read_text()) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"Config file {config_file} must contain a mapping")
    else:
        logger.info(f"No config file at {config_file.resolve()}, using defaults")
        raw = {}

    for env_var, key in ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if value:
            raw[key] = value

    _config = RelayConfig(**raw)

    logger.info(
        f"Loaded config: provider={_config.provider}, mode={_config.mode}, "
        f"credential={'set' if _config.api_key else 'missing'}"
    )
    return _config


def get_config() -> RelayConfig:
    """Return cached config, loading it on first use."""
    if _config is None:
        return load_config()
    return _config
