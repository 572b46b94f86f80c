"""Owner keys from the CDN and clear-signature verification."""

import asyncio
import json
import logging
import tempfile
from pathlib import Path
from typing import List, Optional

import httpx

from rhagent.errors import FatalError
from rhagent.models.config import RHAgentConfig
from rhagent.utils.process import run_command


logger = logging.getLogger(__name__)

CDN_TIMEOUT = 15.0


class KurjunClient:
    """Read-only client for the Kurjun key endpoint."""

    def __init__(self, config: RHAgentConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.transport = transport

    async def user_pk(self, owner: str) -> List[str]:
        """Public keys published by `owner`; empty if the reply is not a key list."""
        cdn = self.config.cdn
        try:
            async with httpx.AsyncClient(
                verify=not cdn.allow_insecure,
                timeout=CDN_TIMEOUT,
                transport=self.transport,
            ) as client:
                response = await client.get(f"{cdn.kurjun}/auth/keys", params={"user": owner})
        except httpx.HTTPError as e:
            raise FatalError(f"Getting owner public key: {e}") from e

        try:
            keys = json.loads(response.content)
        except ValueError:
            logger.debug(f"Unexpected key list for {owner}: {response.text[:200]}")
            return []
        if not isinstance(keys, list) or not all(isinstance(k, str) for k in keys):
            return []
        return keys


async def verify_signature(config: RHAgentConfig, key: str, signature: str) -> str:
    """Signed text of a clear-signed `signature` made by `key`, else "".

    Runs `agent.gpg_binary` in a throwaway gpg home so nothing touches the
    agent keyrings.
    """
    gpg = config.agent.gpg_binary
    with tempfile.TemporaryDirectory(prefix="rhagent-verify") as home:
        key_file = Path(home) / "signer.asc"
        signed_file = Path(home) / "signed.asc"
        await asyncio.to_thread(key_file.write_text, key)
        await asyncio.to_thread(signed_file.write_text, signature)

        try:
            imported = await run_command(
                [gpg, "--homedir", home, "--batch", "--import", str(key_file)],
                check=False,
            )
            if imported.returncode != 0:
                logger.warning(f"Reading user public key: {imported.stderr.strip()}")
                return ""

            result = await run_command(
                [gpg, "--homedir", home, "--batch", "--no-tty", "--status-fd", "2",
                 "--trust-model", "always", "--decrypt", str(signed_file)],
                check=False,
            )
        except OSError as e:
            logger.warning(f"Running {gpg}: {e}")
            return ""

    if result.returncode != 0 or "[GNUPG:] GOODSIG" not in result.stderr:
        logger.debug(f"Checking signature: {result.stderr.strip()}")
        return ""
    return result.stdout
