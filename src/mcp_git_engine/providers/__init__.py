"""Git providers and the factory that selects one."""

import logging
import shutil
from typing import Dict, Optional, Tuple

from ..configuration import EngineConfig
from .base import BaseGitProvider, Capabilities, MINIMAL_OPERATIONS
from .cli import CliGitProvider
from .embedded import EmbeddedGitProvider

logger = logging.getLogger(__name__)

PROVIDER_CLASSES = {
    CliGitProvider.name: CliGitProvider,
    EmbeddedGitProvider.name: EmbeddedGitProvider,
}

# Keyed by provider kind and the serialized config it was built with
_providers: Dict[Tuple[str, str], BaseGitProvider] = {}


def resolve_provider_kind(kind: Optional[str], config: EngineConfig) -> str:
    """Turn ``auto`` (or nothing) into a concrete provider name."""
    kind = (kind or config.provider or "auto").lower()
    if kind == "auto":
        kind = "cli" if shutil.which(config.git_binary) else "embedded"
        logger.info(f"Auto-selected git provider: {kind}")
    if kind not in PROVIDER_CLASSES:
        raise ValueError(f"Unknown git provider: {kind}")
    return kind


def get_provider(
    kind: Optional[str] = None, config: Optional[EngineConfig] = None
) -> BaseGitProvider:
    """Return the provider for ``kind`` and ``config``, creating it on first use.

    Two calls share an instance only when they resolve to the same kind with
    an equal configuration.
    """
    config = config or EngineConfig()
    kind = resolve_provider_kind(kind, config)
    key = (kind, config.model_dump_json())
    provider = _providers.get(key)
    if provider is None:
        provider = PROVIDER_CLASSES[kind](config)
        _providers[key] = provider
        logger.debug(f"Created {provider!r}")
    return provider


def reset_providers() -> None:
    """Forget cached provider instances."""
    _providers.clear()


__all__ = [
    "BaseGitProvider",
    "Capabilities",
    "CliGitProvider",
    "EmbeddedGitProvider",
    "MINIMAL_OPERATIONS",
    "get_provider",
    "reset_providers",
    "resolve_provider_kind",
]
