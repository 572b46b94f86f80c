"""Collaborator interfaces used by the clone pipeline."""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence, Tuple


class ContainerEngine(ABC):
    """Template and container operations on the host."""

    @abstractmethod
    async def initialize(self, config):
        """Initialize the engine with configuration."""
        pass

    @abstractmethod
    async def template_exists(self, template_id: str) -> bool:
        pass

    @abstractmethod
    async def container_exists(self, name: str) -> bool:
        pass

    @abstractmethod
    async def instance_exists(self, name: str) -> bool:
        """True for any deployed template or container named `name`."""
        pass

    @abstractmethod
    async def import_template(self, ref: str, cdn_token: Optional[str] = None) -> None:
        pass

    @abstractmethod
    async def clone(self, parent_id: str, child: str) -> None:
        pass

    @abstractmethod
    async def set_network_config(self, name: str, items: Sequence[Tuple[str, str]]) -> None:
        pass

    @abstractmethod
    async def set_static_networking(self, name: str) -> None:
        pass

    @abstractmethod
    async def assign_uid(self, name: str) -> str:
        pass

    @abstractmethod
    async def apply_hardening(self, name: str) -> None:
        """Package manager, DNS, runtime workaround and SSH password lockout."""
        pass

    @abstractmethod
    async def start(self, name: str) -> None:
        pass

    @abstractmethod
    async def read_config_value(self, name: str, key: str) -> str:
        pass

    @abstractmethod
    async def list_containers(self) -> List[str]:
        pass

    @abstractmethod
    async def query_quota(self, name: str) -> int:
        pass


class MetadataStore(ABC):
    """Key-value store holding template ids and container records.

    Opened and closed around every use; implementations serialize
    concurrent writers themselves.
    """

    @abstractmethod
    async def open(self) -> None:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass

    @abstractmethod
    async def resolve_template_id(self, name: str) -> Optional[str]:
        pass

    @abstractmethod
    async def put_template(self, name: str, template_id: str) -> None:
        pass

    @abstractmethod
    async def put_container_record(self, name: str, record: Dict[str, str]) -> None:
        pass

    @abstractmethod
    async def get_container_record(self, name: str) -> Optional[Dict[str, str]]:
        pass
