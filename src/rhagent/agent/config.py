"""Configuration loading for the agent."""

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError
from ruamel.yaml import YAML

from rhagent.models.config import RHAgentConfig


logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("/etc/subutai/agent.yaml")


class ConfigManager:
    """Loads the agent configuration file into an RHAgentConfig."""

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize configuration manager."""
        self.config_path = Path(config_path or DEFAULT_CONFIG_PATH)
        self.yaml = YAML()
        self.yaml.default_flow_style = False
        self.config: Optional[RHAgentConfig] = None

    async def load(self) -> RHAgentConfig:
        """Load configuration, saving the defaults first if the file is missing."""
        logger.info(f"Loading configuration from {self.config_path}")

        if not await asyncio.to_thread(self.config_path.exists):
            try:
                await self.save_default_config()
            except OSError as e:
                logger.error(f"Saving default configuration file: {e}")

        data: Dict[str, Any] = {}
        if await asyncio.to_thread(self.config_path.exists):
            data = await self._read_yaml(self.config_path) or {}

        try:
            self.config = RHAgentConfig(**data)
        except ValidationError as e:
            logger.error(f"Invalid config {self.config_path}: {e}")
            raise

        logger.debug(f"Loaded config: {self.config_path}")
        return self.config

    async def save_default_config(self):
        """Write the built-in defaults so operators can edit them."""
        defaults = RHAgentConfig().model_dump()

        def _write():
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with self.config_path.open("w") as f:
                self.yaml.dump(defaults, f)

        await asyncio.to_thread(_write)
        logger.info(f"Saved default configuration to {self.config_path}")

    async def _read_yaml(self, file_path: Path) -> Dict[str, Any]:
        """Read and parse YAML file."""
        content = await asyncio.to_thread(file_path.read_text)
        return self.yaml.load(content)
