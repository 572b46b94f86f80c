"""
rhagent - resource host agent.

Clones LXC containers from templates, gives each one an OpenPGP identity
and registers that identity with the management server.
"""

__version__ = "1.0.0"

from rhagent.models.config import RHAgentConfig
from rhagent.models.container import CloneRequest, CloneResult

__all__ = [
    "RHAgentConfig",
    "CloneRequest",
    "CloneResult",
]
