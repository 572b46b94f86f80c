"""Container engine and metadata store providers."""

from rhagent.providers.base import ContainerEngine, MetadataStore
from rhagent.providers.registry import ProviderRegistry

__all__ = [
    "ContainerEngine",
    "MetadataStore",
    "ProviderRegistry",
]
