"""Registration of container keys with the management server."""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import httpx

from rhagent.errors import FatalError, TrustExchangeError
from rhagent.models.config import RHAgentConfig
from rhagent.pki.gpg import GpgIdentity
from rhagent.pki.parsing import parse_import_key_id
from rhagent.utils.process import run_command


logger = logging.getLogger(__name__)

KEY_FETCH_TIMEOUT = 5.0
REGISTRATION_TIMEOUT = 15.0
ACCEPTED_STATUSES = (200, 202)


class TrustExchange:
    """Exchanges keys between a new container and the management server.

    The management key is imported into the container keyring, then the
    registration token, the container fingerprint and its exported public
    key are signed with the container key, encrypted to the management key
    and posted to the server. Only the encrypted file leaves the host.
    """

    def __init__(
        self,
        config: RHAgentConfig,
        identity: GpgIdentity,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.identity = identity
        self.transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            verify=not self.config.management.allow_insecure,
            timeout=timeout,
            transport=self.transport,
        )

    def management_key_path(self, container: str) -> Path:
        return self.identity.keyring_dir(container) / "mgn.key"

    def token_path(self, container: str) -> Path:
        return self.identity.keyring_dir(container) / "stdin.txt"

    def encrypted_token_path(self, container: str) -> Path:
        return self.identity.keyring_dir(container) / "stdin.txt.asc"

    async def exchange_and_encrypt(self, container: str, token: str) -> None:
        """Register the container key with the management server."""
        logger.info(f"Exchanging keys for {container} with management")
        keyring = str(self.identity.public_keyring(container))

        await self.fetch_management_key(container)

        imported = await run_command(
            [self.identity.gpg, "-v", "--no-default-keyring", "--keyring", keyring,
             "--import", str(self.management_key_path(container))],
            check=False,
        )
        if imported.returncode != 0:
            raise FatalError(f"Importing Management public key to keyring: {imported.stderr.strip()}")
        key_id = parse_import_key_id(imported.stderr)
        logger.debug(f"Management key id {key_id}")

        exported = await run_command(
            [self.identity.gpg, "--no-default-keyring", "--keyring", keyring,
             "--export", "--armor", self.identity.email(container)],
            check=False,
        )
        if exported.returncode != 0:
            raise FatalError(f"Exporting armored key: {exported.stderr.strip()}")

        try:
            await self.write_token(container, token, exported.stdout, exported.stderr)
            await self.encrypt_token(container, key_id)
            await self.send_token(container)
        finally:
            # stdin.txt holds the token in clear text
            await self.remove_token_files(container)

    async def fetch_management_key(self, container: str) -> Path:
        """Download the management public key next to the container keyring."""
        management = self.config.management
        url = management.base_url + management.rest_public_key
        try:
            async with self._client(KEY_FETCH_TIMEOUT) as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise FatalError(f"Getting Management public key: {e}") from e

        path = self.management_key_path(container)
        try:
            await asyncio.to_thread(path.write_bytes, response.content)
            await asyncio.to_thread(path.chmod, 0o644)
        except OSError as e:
            raise FatalError(f"Writing Management public key: {e}") from e
        return path

    async def write_token(self, container: str, token: str, public_key: str, diagnostics: str) -> None:
        await self.remove_token_files(container)
        fingerprint = await self.identity.get_fingerprint(container)
        payload = f"{token}\n{fingerprint}\n{public_key}{diagnostics}"
        try:
            await asyncio.to_thread(self.token_path(container).write_text, payload)
        except OSError as e:
            raise FatalError(f"Writing token file: {e}") from e

    async def encrypt_token(self, container: str, key_id: str) -> None:
        """Sign and encrypt stdin.txt in place, producing stdin.txt.asc."""
        result = await run_command(
            [self.identity.gpg, "--batch", "--no-tty",
             "--passphrase", self.config.agent.gpg_password,
             "--no-default-keyring",
             "--keyring", str(self.identity.public_keyring(container)),
             "--secret-keyring", str(self.identity.secret_keyring(container)),
             "--trust-model", "always", "--armor",
             "-u", self.identity.email(container), "-r", key_id,
             "--sign", "--encrypt", str(self.token_path(container))],
            check=False,
        )
        if result.returncode != 0:
            await self.remove_token_files(container)
            raise FatalError(f"Encrypting stdin.txt: {result.stderr.strip()}")

    async def send_token(self, container: str) -> None:
        """POST the encrypted token; both token files are removed afterwards."""
        try:
            try:
                body = await asyncio.to_thread(self.encrypted_token_path(container).read_bytes)
            except OSError as e:
                raise FatalError(f"Reading encrypted stdin.txt.asc: {e}") from e

            try:
                async with self._client(REGISTRATION_TIMEOUT) as client:
                    response = await client.post(
                        self.config.management.registration_url,
                        content=body,
                        headers={"Content-Type": "text/plain"},
                    )
            except httpx.HTTPError as e:
                raise FatalError(f"Sending registration request to management: {e}") from e
        finally:
            await self.remove_token_files(container)

        if response.status_code not in ACCEPTED_STATUSES:
            raise TrustExchangeError(
                f"Failed to exchange GPG Public Keys. StatusCode: {response.status_code}"
            )
        logger.info(f"Management accepted key of {container}")

    async def remove_token_files(self, container: str) -> None:
        for path in (self.encrypted_token_path(container), self.token_path(container)):
            logger.debug(f"Removing {path}")
            await asyncio.to_thread(path.unlink, missing_ok=True)
