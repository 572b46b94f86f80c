"""OpenSSL certificate helpers."""

import asyncio
import logging
from pathlib import Path
from typing import Tuple

from rhagent.utils.process import run_command


logger = logging.getLogger(__name__)


async def validate_pem(cert: Path) -> bool:
    """True if `cert` parses as an x509 certificate."""
    result = await run_command(["openssl", "x509", "-in", str(cert), "-text", "-noout"], check=False)
    if result.returncode != 0:
        logger.debug(f"Validating OpenSSL x509 certificate: {result.stderr.strip()}")
    return "Public Key" in result.stdout and "X509" in result.stdout


async def parse_pem(cert: Path) -> Tuple[bytes, bytes]:
    """Split a PEM bundle into (certificate, private key)."""
    result = await run_command(["openssl", "pkey", "-in", str(cert)], check=False)
    if result.returncode != 0:
        return b"", b""

    key = result.stdout.encode()
    try:
        content = await asyncio.to_thread(Path(cert).read_bytes)
    except OSError as e:
        logger.debug(f"Cannot read file {cert}: {e}")
        return b"", key
    return content.replace(key, b""), key
