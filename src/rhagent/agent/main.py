"""Agent wiring: configuration, providers and the clone pipeline."""

import logging
import os
from pathlib import Path
from typing import Optional

from rhagent.agent.clone import CloneOrchestrator
from rhagent.agent.config import ConfigManager
from rhagent.agent.network import NetworkResolver
from rhagent.models.config import RHAgentConfig
from rhagent.models.container import CloneRequest, CloneResult
from rhagent.pki.exchange import TrustExchange
from rhagent.pki.gpg import GpgIdentity
from rhagent.providers import ProviderRegistry
from rhagent.utils.logging import setup_logging


logger = logging.getLogger(__name__)


class ResourceHostAgent:
    """Builds every component from one configuration object."""

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize the agent."""
        self.config_manager = ConfigManager(config_path)
        self.config: Optional[RHAgentConfig] = None
        self.registry: Optional[ProviderRegistry] = None
        self.identity: Optional[GpgIdentity] = None
        self.exchange: Optional[TrustExchange] = None
        self.orchestrator: Optional[CloneOrchestrator] = None

    async def initialize(self):
        """Initialize agent components."""
        self.config = await self.config_manager.load()
        setup_logging(self.config.agent.log_level)

        self.registry = ProviderRegistry()
        await self.registry.initialize(self.config)
        engine = self.registry.get_provider("engine")
        store = self.registry.get_provider("store")

        self.identity = GpgIdentity(self.config, engine)
        self.exchange = TrustExchange(self.config, self.identity)
        self.orchestrator = CloneOrchestrator(
            config=self.config,
            engine=engine,
            store=store,
            identity=self.identity,
            exchange=self.exchange,
            network=NetworkResolver(engine),
        )
        logger.debug("Agent initialized")

    async def clone(self, request: CloneRequest) -> CloneResult:
        if self.orchestrator is None:
            await self.initialize()
        return await self.orchestrator.clone(request)

    async def host_fingerprint(self) -> str:
        """Fingerprint of the resource host key."""
        if self.identity is None:
            await self.initialize()
        return await self.identity.get_fingerprint(self.config.agent.gpg_user)


def create_agent(config_path: Optional[str] = None) -> ResourceHostAgent:
    """Agent for `config_path`, falling back to $RHAGENT_CONFIG."""
    config_path = config_path or os.environ.get("RHAGENT_CONFIG")
    return ResourceHostAgent(Path(config_path) if config_path else None)
