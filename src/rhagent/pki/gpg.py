"""GnuPG keyrings for the resource host and its containers."""

import asyncio
import contextlib
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional

from rhagent.errors import FatalError
from rhagent.models.config import RHAgentConfig
from rhagent.pki.parsing import parse_fingerprint, parse_listed_key_id
from rhagent.providers.base import ContainerEngine
from rhagent.utils.process import CommandResult, run_command
from rhagent.utils.templates import render_template


logger = logging.getLogger(__name__)

KEY_TYPE = "RSA"
KEY_LENGTH = 2048

KEY_PARAMS_TEMPLATE = """\
%echo Generating default keys
Key-Type: {{ key_type }}
Key-Length: {{ key_length }}
Name-Real: {{ name }}
Name-Comment: {{ name }} GPG key
Name-Email: {{ email }}
Expire-Date: 0
Passphrase: {{ passphrase }}
%pubring {{ path }}/public.pub
%secring {{ path }}/secret.sec
%commit
%echo Done
"""


class GpgIdentity:
    """Generates and inspects keypairs with the gpg binary.

    Container keyrings live in ``<lxc_prefix>/<name>/public.pub`` and
    ``secret.sec``. A name that is not a deployed instance is treated as the
    host itself: its key is generated in the host key directory and then
    imported into the default keyring under ``agent.gpg_home``.
    """

    def __init__(self, config: RHAgentConfig, engine: ContainerEngine):
        self.config = config
        self.engine = engine
        self.gpg = config.agent.gpg_binary
        self.lxc_prefix = Path(config.agent.lxc_prefix)
        self.host_key_dir = Path(config.agent.host_key_dir)
        self.gpg_home = Path(config.agent.gpg_home)
        # One keyring generation per name at a time
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    def keyring_dir(self, name: str) -> Path:
        return self.lxc_prefix / name

    def public_keyring(self, name: str) -> Path:
        return self.keyring_dir(name) / "public.pub"

    def secret_keyring(self, name: str) -> Path:
        return self.keyring_dir(name) / "secret.sec"

    def email(self, name: str) -> str:
        return f"{name}@{self.config.agent.key_domain}"

    async def run_gpg(self, *args: str, check: bool = False, input: Optional[bytes] = None) -> CommandResult:
        """Run gpg against the agent's default keyring."""
        env = dict(os.environ, GNUPGHOME=str(self.gpg_home))
        return await run_command([self.gpg, *args], check=check, input=input, env=env)

    @contextlib.asynccontextmanager
    async def _name_lock(self, name: str):
        """Hold the lock for `name`; it is dropped once nobody waits on it."""
        lock = self._locks.setdefault(name, asyncio.Lock())
        self._lock_users[name] = self._lock_users.get(name, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[name] -= 1
            if not self._lock_users[name]:
                del self._lock_users[name]
                del self._locks[name]

    async def generate_key(self, name: str) -> None:
        """Create the keypair for `name` unless its secret keyring exists."""
        async with self._name_lock(name):
            is_instance = await self.engine.instance_exists(name)
            if is_instance:
                path = self.keyring_dir(name)
                email = self.email(name)
            else:
                path = self.host_key_dir
                email = name
                await asyncio.to_thread(lambda: path.mkdir(mode=0o700, parents=True, exist_ok=True))

            secret = path / "secret.sec"
            if await asyncio.to_thread(secret.exists):
                logger.debug(f"Secret key for {name} already exists in {path}")
            else:
                await self._gen_key(name, email, path)

            if not is_instance:
                await self._import_host_key(path)

    async def _gen_key(self, name: str, email: str, path: Path) -> None:
        params = render_template(
            KEY_PARAMS_TEMPLATE,
            key_type=KEY_TYPE,
            key_length=KEY_LENGTH,
            name=name,
            email=email,
            passphrase=self.config.agent.gpg_password,
            path=path,
        )
        defaults = path / "defaults"
        try:
            await asyncio.to_thread(defaults.write_text, params)
        except OSError as e:
            raise FatalError(f"Writing default key ident: {e}") from e

        logger.info(f"Generating key for {name}")
        result = await run_command(
            [self.gpg, "--batch", "--gen-key", str(defaults)],
            check=False,
            env=dict(os.environ, GNUPGHOME=str(path)),
        )
        if result.returncode != 0:
            raise FatalError(f"Generating key for {name}: {result.stderr.strip()}")

    async def _import_host_key(self, path: Path) -> None:
        """Copy the host keypair into the default keyring."""
        for args in (
            ("--allow-secret-key-import", "--import", str(path / "secret.sec")),
            ("--import", str(path / "public.pub")),
        ):
            result = await self.run_gpg(*args)
            if result.returncode != 0:
                logger.debug(f"Importing {args[-1]}: {result.output.strip()}")
                await self._remove_stale_locks()

    async def _remove_stale_locks(self) -> None:
        def _remove():
            for lock in self.gpg_home.glob("*.lock"):
                lock.unlink(missing_ok=True)

        await asyncio.to_thread(_remove)

    async def get_fingerprint(self, name: str) -> str:
        """Fingerprint of the host key or of a container key."""
        if name == self.config.agent.gpg_user:
            result = await self.run_gpg("--fingerprint", name)
        else:
            result = await self.run_gpg("--fingerprint", "--keyring", str(self.public_keyring(name)), name)
        if result.returncode != 0:
            logger.debug(f"Getting fingerprint by {name}: {result.stderr.strip()}")
        return parse_fingerprint(result.stdout)

    async def get_pk(self, name: str) -> str:
        """Armored public key from the default keyring, generated if missing."""
        result = await self.run_gpg("--export", "-a", name)
        if result.returncode != 0:
            logger.warning(f"Getting public key: {result.stderr.strip()}")
        if not result.stdout:
            logger.warning("GPG key for RH not found. Creating new.")
            await self.generate_key(name)
            result = await self.run_gpg("--export", "-a", name)
        return result.stdout

    async def get_container_pk(self, name: str) -> str:
        result = await self.run_gpg(
            "--no-default-keyring", "--keyring", str(self.public_keyring(name)),
            "--export", "-a", self.email(name),
        )
        if result.returncode != 0:
            logger.warning(f"Getting container public key: {result.stderr.strip()}")
        return result.stdout

    async def import_pk(self, key: bytes) -> str:
        """Import a public key into the default keyring; returns gpg output."""
        def _write():
            with tempfile.NamedTemporaryFile(prefix="rhagent-epub", delete=False) as f:
                f.write(key)
                return f.name

        try:
            key_file = await asyncio.to_thread(_write)
        except OSError as e:
            logger.warning(f"Creating public key file: {e}")
            return str(e)

        try:
            result = await self.run_gpg("--import", key_file)
            if result.returncode != 0:
                logger.warning(f"Importing public key from {key_file}: {result.stderr.strip()}")
        finally:
            await asyncio.to_thread(Path(key_file).unlink, missing_ok=True)
        return result.output

    async def encrypt(
        self,
        user: str,
        recipient: str,
        message: bytes,
        keyring: Optional[Path] = None,
        secret_keyring: Optional[Path] = None,
    ) -> str:
        """Sign as `user` and encrypt to `recipient`; returns armored text."""
        args = [
            "--batch", "--passphrase", self.config.agent.gpg_password,
            "--trust-model", "always", "--armor",
            "-u", user, "-r", recipient, "--sign", "--encrypt", "--no-tty",
        ]
        if keyring and secret_keyring:
            args += ["--no-default-keyring", "--keyring", str(keyring), "--secret-keyring", str(secret_keyring)]
        result = await self.run_gpg(*args, check=True, input=message)
        return result.stdout

    async def decrypt(
        self,
        message: str,
        secret_keyring: Optional[Path] = None,
        keyring: Optional[Path] = None,
    ) -> str:
        args = ["--batch", "--passphrase", self.config.agent.gpg_password, "--no-tty"]
        if keyring and secret_keyring:
            args += ["--no-default-keyring", "--keyring", str(keyring), "--secret-keyring", str(secret_keyring)]
        result = await self.run_gpg(*args, input=message.encode())
        if result.returncode != 0:
            logger.warning(f"Decrypting message: {result.stderr.strip()}")
        return result.stdout

    async def extract_key_id(self, key: bytes) -> str:
        """Key id of an armored key without importing it."""
        result = await self.run_gpg(input=key)
        if result.returncode != 0:
            logger.warning(f"Extracting ID from Key: {result.stderr.strip()}")
        return parse_listed_key_id(result.stdout)
