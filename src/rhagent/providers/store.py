"""YAML file metadata store."""

import asyncio
import fcntl
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from ruamel.yaml import YAML

from rhagent.providers.base import MetadataStore


logger = logging.getLogger(__name__)


class StoreClosedError(RuntimeError):
    """Store used without a successful open()."""
    pass


class YamlMetadataStore(MetadataStore):
    """Keeps template ids and container records in a single YAML document.

    An exclusive flock on a sibling lock file is held from open() to
    close(), so concurrent agents writing the same file are serialized.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path: Optional[Path] = Path(path) if path else None
        self.yaml = YAML()
        self.yaml.default_flow_style = False
        self._data: Optional[Dict[str, Any]] = None
        self._lock_file = None
        self._dirty = False

    async def initialize(self, config):
        if self.path is None:
            self.path = Path(config.agent.state_file)

    @property
    def lock_path(self) -> Path:
        return self.path.with_name(self.path.name + ".lock")

    async def open(self) -> None:
        def _open():
            self.path.parent.mkdir(parents=True, exist_ok=True)
            lock_file = open(self.lock_path, "w")
            fcntl.flock(lock_file, fcntl.LOCK_EX)
            try:
                data = self.yaml.load(self.path.read_text()) if self.path.exists() else None
            except Exception:
                fcntl.flock(lock_file, fcntl.LOCK_UN)
                lock_file.close()
                raise
            return lock_file, data

        self._lock_file, data = await asyncio.to_thread(_open)
        data = dict(data or {})
        data.setdefault("templates", {})
        data.setdefault("containers", {})
        self._data = data
        self._dirty = False
        logger.debug(f"Opened metadata store {self.path}")

    async def close(self) -> None:
        if self._lock_file is None:
            return

        def _close():
            try:
                if self._dirty:
                    with self.path.open("w") as f:
                        self.yaml.dump(self._data, f)
            finally:
                fcntl.flock(self._lock_file, fcntl.LOCK_UN)
                self._lock_file.close()

        try:
            await asyncio.to_thread(_close)
        finally:
            self._lock_file = None
            self._data = None
            self._dirty = False

    def _require_open(self) -> Dict[str, Any]:
        if self._data is None:
            raise StoreClosedError(f"Metadata store {self.path} is not open")
        return self._data

    async def resolve_template_id(self, name: str) -> Optional[str]:
        template_id = self._require_open()["templates"].get(name)
        return str(template_id) if template_id is not None else None

    async def put_template(self, name: str, template_id: str) -> None:
        self._require_open()["templates"][name] = template_id
        self._dirty = True

    async def put_container_record(self, name: str, record: Dict[str, str]) -> None:
        self._require_open()["containers"][name] = dict(record)
        self._dirty = True

    async def get_container_record(self, name: str) -> Optional[Dict[str, str]]:
        record = self._require_open()["containers"].get(name)
        return dict(record) if record is not None else None
