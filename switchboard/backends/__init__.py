"""
Completion backend factory.

Usage:
    from switchboard.backends import make_backend
    backend = make_backend(cfg["provider"], api_key)

Adding a new provider:
    1. Create switchboard/backends/<name>.py implementing BaseBackend.stream().
    2. Add an entry to _REGISTRY below.
    3. Set  provider.name: <name>  in config.yaml.
"""

from .base import BaseBackend, StreamEvent
from .anthropic import AnthropicBackend

_REGISTRY: dict[str, type[BaseBackend]] = {
    "anthropic": AnthropicBackend,
}


def make_backend(provider_cfg: dict, api_key: str) -> BaseBackend:
    """
    Instantiate the configured completion backend.

    Raises:
        ValueError: If the provider name is not registered.
    """
    name = provider_cfg.get("name", "anthropic")
    cls = _REGISTRY.get(name)
    if cls is None:
        available = ", ".join(_REGISTRY.keys())
        raise ValueError(
            f"Unknown completion provider: '{name}'. "
            f"Available: {available}"
        )
    return cls(
        name=name,
        url=provider_cfg.get("url", ""),
        api_key=api_key,
        api_version=provider_cfg.get("api_version", ""),
        timeout=provider_cfg.get("timeout", 120),
    )


__all__ = ["BaseBackend", "StreamEvent", "AnthropicBackend", "make_backend"]
