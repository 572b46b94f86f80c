"""Pydantic models for configuration and clone requests."""

from rhagent.models.config import RHAgentConfig, AgentConfig, ManagementConfig, CDNConfig
from rhagent.models.container import CloneRequest, CloneResult, ContainerRecord, NetworkAssignment

__all__ = [
    "RHAgentConfig",
    "AgentConfig",
    "ManagementConfig",
    "CDNConfig",
    "CloneRequest",
    "CloneResult",
    "ContainerRecord",
    "NetworkAssignment",
]
