"""LXC container engine backed by lxc-* tools and per-container config files."""

import asyncio
import logging
import re
import shlex
import subprocess
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from rhagent.providers.base import ContainerEngine
from rhagent.utils.process import run_command
from rhagent.utils.templates import render_template


logger = logging.getLogger(__name__)

TEMPLATE_MARKER = ".template"

APT_PROXY_TEMPLATE = """\
Acquire::http::Proxy "{{ proxy }}";
Acquire::https::Proxy "{{ proxy }}";
"""

RESOLV_CONF_TEMPLATE = """\
domain intra.lan
search intra.lan
nameserver {{ nameserver }}
"""

STATIC_INTERFACES_TEMPLATE = """\
auto lo
iface lo inet loopback

auto eth0
iface eth0 inet manual
"""

# Checkpoint/restore needs the console and ptys out of the way
CRIU_CONFIG = [
    ("lxc.console", "none"),
    ("lxc.tty", "0"),
    ("lxc.cgroup.devices.deny", "c 5:1 rwm"),
]

_SSH_PASSWORD_RE = re.compile(r"^\s*#?\s*PasswordAuthentication\s+.*$", re.MULTILINE)


class LxcEngine(ContainerEngine):
    """Container engine for LXC hosts."""

    def __init__(self):
        """Initialize LXC engine."""
        self.lxc_prefix: Optional[Path] = None
        self.import_command: List[str] = []
        self.uid_base = 100000
        self.uid_range = 65536
        self.apt_proxy: Optional[str] = None
        self.nameserver = ""

    async def initialize(self, config):
        """Initialize engine with configuration."""
        self.lxc_prefix = Path(config.agent.lxc_prefix)
        self.import_command = shlex.split(config.agent.import_command)
        self.uid_base = config.agent.uid_base
        self.uid_range = config.agent.uid_range
        self.apt_proxy = config.agent.apt_proxy
        self.nameserver = config.agent.nameserver

    def config_path(self, name: str) -> Path:
        return self.lxc_prefix / name / "config"

    def rootfs(self, name: str) -> Path:
        return self.lxc_prefix / name / "rootfs"

    async def instance_exists(self, name: str) -> bool:
        return await asyncio.to_thread(self.config_path(name).exists)

    async def template_exists(self, template_id: str) -> bool:
        marker = self.lxc_prefix / template_id / TEMPLATE_MARKER
        return await self.instance_exists(template_id) and await asyncio.to_thread(marker.exists)

    async def container_exists(self, name: str) -> bool:
        marker = self.lxc_prefix / name / TEMPLATE_MARKER
        return await self.instance_exists(name) and not await asyncio.to_thread(marker.exists)

    async def import_template(self, ref: str, cdn_token: Optional[str] = None) -> None:
        """Hand the template reference to the external importer."""
        cmd = self.import_command + [ref]
        if cdn_token:
            cmd += ["-t", cdn_token]
        logger.info(f"Importing template {ref}")
        try:
            await run_command(cmd)
        except subprocess.CalledProcessError as e:
            logger.error(f"Failed to import template {ref}: {e}. Stderr: {e.stderr}")
            raise

    async def clone(self, parent_id: str, child: str) -> None:
        """Clone a template into a new container."""
        try:
            await run_command(["lxc-copy", "-n", parent_id, "-N", child, "-s"])
        except subprocess.CalledProcessError as e:
            logger.error(f"Failed to clone {parent_id}: {e}. Stderr: {e.stderr}")
            raise
        marker = self.lxc_prefix / child / TEMPLATE_MARKER
        await asyncio.to_thread(marker.unlink, missing_ok=True)
        logger.debug(f"Cloned template {parent_id} to container {child}")

    async def set_network_config(self, name: str, items: Sequence[Tuple[str, str]]) -> None:
        await self._set_config(name, items)

    async def set_static_networking(self, name: str) -> None:
        """Let the host set the address; the container keeps eth0 unmanaged."""
        interfaces = self.rootfs(name) / "etc" / "network" / "interfaces"
        await self._write_file(interfaces, render_template(STATIC_INTERFACES_TEMPLATE))
        await self._set_config(name, [
            ("lxc.network.type", "veth"),
            ("lxc.network.flags", "up"),
        ])

    async def assign_uid(self, name: str) -> str:
        """Give the container the next free id range after the ones in use."""
        highest = self.uid_base - self.uid_range
        for other in await self.list_containers():
            if other == name:
                continue
            value = await self.read_config_value(other, "lxc.id_map")
            fields = value.split()
            if len(fields) == 4 and fields[2].isdigit():
                highest = max(highest, int(fields[2]))

        uid = str(highest + self.uid_range)
        await self._set_config(name, [
            ("lxc.id_map", f"u 0 {uid} {self.uid_range}"),
            ("lxc.id_map", f"g 0 {uid} {self.uid_range}"),
        ])
        logger.debug(f"Assigned uid {uid} to {name}")
        return uid

    async def apply_hardening(self, name: str) -> None:
        rootfs = self.rootfs(name)

        if self.apt_proxy:
            await self._write_file(
                rootfs / "etc" / "apt" / "apt.conf.d" / "02proxy",
                render_template(APT_PROXY_TEMPLATE, proxy=self.apt_proxy),
            )

        resolv = rootfs / "etc" / "resolv.conf"
        await asyncio.to_thread(resolv.unlink, missing_ok=True)
        await self._write_file(resolv, render_template(RESOLV_CONF_TEMPLATE, nameserver=self.nameserver))

        await self._set_config(name, CRIU_CONFIG)

        sshd = rootfs / "etc" / "ssh" / "sshd_config"
        if await asyncio.to_thread(sshd.exists):
            content = await asyncio.to_thread(sshd.read_text)
            if _SSH_PASSWORD_RE.search(content):
                content = _SSH_PASSWORD_RE.sub("PasswordAuthentication no", content)
            else:
                content = content.rstrip("\n") + "\nPasswordAuthentication no\n"
            await asyncio.to_thread(sshd.write_text, content)

    async def start(self, name: str) -> None:
        logger.info(f"Starting container {name}")
        try:
            await run_command(["lxc-start", "-n", name, "-d"])
            await run_command(["lxc-wait", "-n", name, "-s", "RUNNING", "-t", "30"])
        except subprocess.CalledProcessError as e:
            logger.error(f"Failed to start container {name}: {e}. Stderr: {e.stderr}")
            raise

    async def read_config_value(self, name: str, key: str) -> str:
        """First value of `key` in the container config, or an empty string."""
        path = self.config_path(name)
        if not await asyncio.to_thread(path.exists):
            return ""
        for line in (await asyncio.to_thread(path.read_text)).splitlines():
            fields = line.split("=", 1)
            if len(fields) == 2 and fields[0].strip() == key:
                return fields[1].strip()
        return ""

    async def list_containers(self) -> List[str]:
        if not await asyncio.to_thread(self.lxc_prefix.is_dir):
            return []
        entries = await asyncio.to_thread(lambda: sorted(p.name for p in self.lxc_prefix.iterdir()))
        return [name for name in entries if await self.container_exists(name)]

    async def query_quota(self, name: str) -> int:
        """CPU limit as a percentage of one core, 0 when unlimited."""
        quota = await self.read_config_value(name, "lxc.cgroup.cpu.cfs_quota_us")
        period = await self.read_config_value(name, "lxc.cgroup.cpu.cfs_period_us") or "100000"
        try:
            quota_us, period_us = int(quota), int(period)
        except ValueError:
            return 0
        if quota_us <= 0 or period_us <= 0:
            return 0
        return quota_us * 100 // period_us

    async def _set_config(self, name: str, items: Sequence[Tuple[str, str]]) -> None:
        """Replace every line for the given keys with the new values."""
        path = self.config_path(name)
        keys = {key for key, _ in items}

        def _update():
            lines = path.read_text().splitlines() if path.exists() else []
            kept = [line for line in lines if line.split("=", 1)[0].strip() not in keys]
            kept += [f"{key} = {value}" for key, value in items if value]
            path.write_text("\n".join(kept) + "\n")

        await asyncio.to_thread(_update)
        logger.debug(f"Updated {path}: {', '.join(sorted(keys))}")

    async def _write_file(self, path: Path, content: str) -> None:
        await asyncio.to_thread(lambda: path.parent.mkdir(parents=True, exist_ok=True))
        await asyncio.to_thread(path.write_text, content)
