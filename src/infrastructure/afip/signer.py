"""Login ticket request (TRA) construction and CMS signing.

WSAA authenticates a caller by a ``loginTicketRequest`` XML document signed
with the certificate registered at AFIP. The signature is a CMS (PKCS#7)
envelope that embeds the document, DER-encoded and sent base64-encoded.

Signing is a pluggable capability (``CmsSigner``). The default implementation
shells out to ``openssl smime -sign``; tests inject a fake.
"""

import asyncio
import base64
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Protocol

from loguru import logger
from lxml import etree

from src.core.config import AfipConfig
from src.core.exceptions import SigningError


def build_login_ticket_request(
    service: str,
    now: datetime | None = None,
    *,
    clock_skew_seconds: int = 60,
    lifetime_hours: int = 12,
) -> bytes:
    """Build the unsigned ``loginTicketRequest`` document.

    The generation time is set slightly in the past to tolerate clock skew
    between this host and WSAA.

    Args:
        service: AFIP service the ticket is requested for.
        now: Reference time (defaults to the current UTC time).
        clock_skew_seconds: How far in the past ``generationTime`` is set.
        lifetime_hours: Requested ticket lifetime.

    Returns:
        bytes: UTF-8 encoded XML document with declaration.
    """
    now = (now or datetime.now(UTC)).astimezone(UTC).replace(microsecond=0)

    root = etree.Element("loginTicketRequest", version="1.0")
    header = etree.SubElement(root, "header")
    etree.SubElement(header, "uniqueId").text = str(int(now.timestamp()))
    etree.SubElement(header, "generationTime").text = (
        now - timedelta(seconds=clock_skew_seconds)
    ).isoformat()
    etree.SubElement(header, "expirationTime").text = (
        now + timedelta(hours=lifetime_hours)
    ).isoformat()
    etree.SubElement(root, "service").text = service

    return etree.tostring(root, xml_declaration=True, encoding="UTF-8")


class CmsSigner(Protocol):
    """Capability that produces an attached CMS signature."""

    async def sign(self, document: bytes, cert_path: str, key_path: str) -> bytes:
        """Sign ``document`` and return the DER-encoded CMS envelope."""
        ...


class OpenSSLCmsSigner:
    """CMS signer backed by the ``openssl`` command line tool.

    Args:
        binary: OpenSSL executable name or path.
        timeout_seconds: Upper bound for the signing subprocess.
    """

    def __init__(self, binary: str = "openssl", timeout_seconds: float = 5.0) -> None:
        self.binary = binary
        self.timeout_seconds = timeout_seconds

    async def sign(self, document: bytes, cert_path: str, key_path: str) -> bytes:
        for label, path in (("certificate", cert_path), ("private key", key_path)):
            if not Path(path).is_file():
                raise SigningError(
                    f"AFIP {label} not found", context={"path": Path(path).name}
                )

        try:
            process = await asyncio.create_subprocess_exec(
                self.binary,
                "smime",
                "-sign",
                "-signer",
                cert_path,
                "-inkey",
                key_path,
                "-outform",
                "DER",
                "-nodetach",
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise SigningError(
                f"Cannot run {self.binary}", context={"binary": self.binary}, cause=e
            ) from e

        try:
            async with asyncio.timeout(self.timeout_seconds):
                stdout, stderr = await process.communicate(document)
        except TimeoutError as e:
            raise SigningError(
                "CMS signing timed out",
                context={"timeout_seconds": self.timeout_seconds},
                cause=e,
            ) from e
        finally:
            # Also reached on cancellation from an outer timeout
            if process.returncode is None:
                process.kill()
                await process.wait()

        if process.returncode != 0:
            raise SigningError(
                "CMS signing failed",
                context={
                    "returncode": process.returncode,
                    "stderr": stderr.decode(errors="replace").strip()[:500],
                },
            )
        if not stdout:
            raise SigningError("CMS signing produced no output")

        return stdout


class TicketSigner:
    """Builds and signs login ticket requests for the configured service."""

    def __init__(self, config: AfipConfig, signer: CmsSigner) -> None:
        self.config = config
        self.signer = signer

    async def build_signed_request(self, now: datetime | None = None) -> str:
        """Return the base64-encoded CMS for a fresh login ticket request.

        Raises:
            SigningError: Certificate or key not configured, or signing failed.
        """
        if not self.config.cert_path or not self.config.key_path:
            raise SigningError(
                "AFIP certificate and private key must be configured "
                "(AFIP__CERT_PATH, AFIP__KEY_PATH)"
            )

        document = build_login_ticket_request(
            self.config.service,
            now,
            clock_skew_seconds=self.config.clock_skew_seconds,
            lifetime_hours=self.config.ticket_lifetime_hours,
        )
        cms = await self.signer.sign(
            document, self.config.cert_path, self.config.key_path
        )
        logger.debug(
            "Signed login ticket request",
            service=self.config.service,
            cms_bytes=len(cms),
        )
        return base64.b64encode(cms).decode("ascii")
