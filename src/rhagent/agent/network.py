"""Static VLAN addressing for containers."""

import asyncio
import ipaddress
import logging
from typing import Optional

from rhagent.models.container import NetworkAssignment
from rhagent.providers.base import ContainerEngine


logger = logging.getLogger(__name__)

IPV4_KEY = "lxc.network.ipv4"
GATEWAY_KEY = "lxc.network.ipv4.gateway"
VLAN_KEY = "#vlan_id"


def synthetic_gateway(cidr: str) -> str:
    """Gateway placed as far from the top of the subnet as the host is from its base.

    The last octet is ``network + 255 - host``, so 192.168.50.10/24 maps to
    192.168.50.245. Only the last octet is considered, whatever the mask.
    """
    interface = ipaddress.IPv4Interface(cidr)
    network = interface.network.network_address.packed
    host = interface.ip.packed
    last = (network[3] + 255 - host[3]) % 256
    return str(ipaddress.IPv4Address(network[:3] + bytes([last])))


class NetworkResolver:
    """Elects VLAN gateways and writes static network config.

    All containers on a VLAN share the gateway recorded by the first one.
    Lookup and write happen under one lock; concurrent clones must share a
    resolver (or pass the same lock) to keep a single gateway per VLAN.
    """

    def __init__(self, engine: ContainerEngine, lock: Optional[asyncio.Lock] = None):
        self.engine = engine
        self.lock = lock or asyncio.Lock()

    async def existing_gateway(self, vlan: str) -> str:
        for name in await self.engine.list_containers():
            if await self.engine.read_config_value(name, VLAN_KEY) == vlan:
                return await self.engine.read_config_value(name, GATEWAY_KEY)
        return ""

    async def resolve_gateway(self, cidr: str, vlan: str) -> str:
        gateway = await self.existing_gateway(vlan)
        if gateway:
            logger.debug(f"Reusing gateway {gateway} of vlan {vlan}")
            return gateway
        return synthetic_gateway(cidr)

    async def configure(self, name: str, netconf: str) -> Optional[NetworkAssignment]:
        """Apply a '<cidr> <vlan>' setting to the container; None if it is incomplete."""
        fields = netconf.split()
        if len(fields) < 2:
            logger.warning(f"Ignoring network setting {netconf!r} for {name}: expected '<cidr> <vlan>'")
            return None
        cidr, vlan = fields[0], fields[1]

        async with self.lock:
            gateway = await self.resolve_gateway(cidr, vlan)
            await self.engine.set_network_config(name, [
                (IPV4_KEY, cidr),
                (GATEWAY_KEY, gateway),
                (VLAN_KEY, vlan),
            ])
            await self.engine.set_static_networking(name)

        logger.info(f"Container {name} uses {cidr} via {gateway} on vlan {vlan}")
        return NetworkAssignment(cidr=cidr, vlan=vlan, gateway=gateway)
