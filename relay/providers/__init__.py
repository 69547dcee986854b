"""Provider registry: global name-based lookup for upstream providers.

Providers are classes decorated with ``@register``. ``config.yaml`` names a
provider by string and ``build_provider`` turns that into an instance.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from relay.config import RelayConfig
    from relay.providers.base import Provider

_registry: dict[str, type[Provider]] = {}


def register(cls: type[Provider]) -> type[Provider]:
    """Add a Provider class to the registry by its ``.name``."""
    _registry[cls.name] = cls
    return cls


def get_provider_class(name: str) -> type[Provider]:
    """Look up a provider class. Raises ``ValueError`` if the name is not registered."""
    if name not in _registry:
        raise ValueError(
            f"Unknown provider '{name}'. Available: {sorted(_registry.keys())}"
        )
    return _registry[name]


def list_providers() -> list[str]:
    """Return all registered provider names."""
    return list(_registry.keys())


def build_provider(config: RelayConfig, **kwargs: Any) -> Provider:
    """Instantiate the provider named in ``config``."""
    return get_provider_class(config.provider).from_config(config, **kwargs)


# Auto-import providers so the registry is populated on first access.
import relay.providers.gemini as _gemini  # noqa: E402, F401
import relay.providers.openai as _openai  # noqa: E402, F401
import relay.providers.textgen as _textgen  # noqa: E402, F401
import relay.providers.anthropic as _anthropic  # noqa: E402, F401
import relay.providers.mock as _mock  # noqa: E402, F401
