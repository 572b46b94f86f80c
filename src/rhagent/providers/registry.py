"""Provider registry for the container engine and metadata store."""

import logging
from typing import Dict, Optional, Type

from rhagent.providers.lxc import LxcEngine
from rhagent.providers.store import YamlMetadataStore


logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Registry for managing providers."""

    def __init__(self):
        """Initialize provider registry."""
        self._providers: Dict[str, object] = {}
        self._provider_classes: Dict[str, Type] = {
            "engine": LxcEngine,
            "store": YamlMetadataStore,
        }

    async def initialize(self, config):
        """Instantiate and initialize all providers."""
        for name, provider_class in self._provider_classes.items():
            try:
                provider = provider_class()
                await provider.initialize(config)
                self._providers[name] = provider
                logger.debug(f"Initialized provider: {name}")
            except Exception as e:
                logger.error(f"Failed to initialize provider {name}: {e}")
                raise

    def get_provider(self, name: str) -> Optional[object]:
        """Get a provider by name."""
        return self._providers.get(name)

    def list_providers(self) -> list[str]:
        """List available provider names."""
        return list(self._providers.keys())
