"""Shared fixtures."""

import pytest

from rhagent.models.config import RHAgentConfig


@pytest.fixture
def agent_config(tmp_path):
    """Configuration rooted in a temporary directory."""
    return RHAgentConfig(
        agent={
            "lxc_prefix": str(tmp_path / "lxc"),
            "data_prefix": str(tmp_path / "data"),
            "host_key_dir": str(tmp_path / "hostkeys"),
        },
        management={"host": "mgmt.example", "allow_insecure": False},
        cdn={"url": "cdn.example", "ssl_port": 8338},
    )


class FakeEngine:
    """In-memory container engine."""

    def __init__(self):
        self.templates = set()
        self.containers = {}
        self.calls = []

    async def initialize(self, config):
        pass

    async def template_exists(self, template_id):
        return template_id in self.templates

    async def container_exists(self, name):
        return name in self.containers

    async def instance_exists(self, name):
        return name in self.templates or name in self.containers

    async def import_template(self, ref, cdn_token=None):
        self.calls.append(("import", ref, cdn_token))
        self.templates.add(ref.split("id:", 1)[-1])

    async def clone(self, parent_id, child):
        self.calls.append(("clone", parent_id, child))
        if parent_id not in self.templates:
            raise RuntimeError(f"no template {parent_id}")
        self.containers[child] = {"lxc.network.veth.pair": f"veth{len(self.containers)}"}

    async def set_network_config(self, name, items):
        self.calls.append(("network", name))
        self.containers[name].update(dict(items))

    async def set_static_networking(self, name):
        self.calls.append(("static", name))

    async def assign_uid(self, name):
        self.calls.append(("uid", name))
        return "165536"

    async def apply_hardening(self, name):
        self.calls.append(("harden", name))

    async def start(self, name):
        self.calls.append(("start", name))

    async def read_config_value(self, name, key):
        return self.containers.get(name, {}).get(key, "")

    async def list_containers(self):
        return list(self.containers)

    async def query_quota(self, name):
        return 0


class FakeStore:
    """In-memory metadata store."""

    def __init__(self):
        self.templates = {}
        self.records = {}
        self.opened = 0
        self.fail_open = False
        self.fail_write = False

    async def open(self):
        if self.fail_open:
            raise OSError("database locked")
        self.opened += 1

    async def close(self):
        pass

    async def resolve_template_id(self, name):
        if self.fail_open:
            raise RuntimeError("store is not open")
        return self.templates.get(name)

    async def put_template(self, name, template_id):
        self.templates[name] = template_id

    async def put_container_record(self, name, record):
        if self.fail_write:
            raise OSError("disk full")
        self.records[name] = dict(record)

    async def get_container_record(self, name):
        return self.records.get(name)


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def fake_store():
    return FakeStore()
