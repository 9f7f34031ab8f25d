"""Unit tests for login ticket request construction and CMS signing."""

import asyncio
import base64
from datetime import UTC, datetime
from pathlib import Path

import pytest
from lxml import etree
from pytest_mock import MockerFixture

from src.core.config import AfipConfig
from src.core.exceptions import SigningError
from src.infrastructure.afip.signer import (
    OpenSSLCmsSigner,
    TicketSigner,
    build_login_ticket_request,
)
from tests.fixtures.fakes import FakeCmsSigner

NOW = datetime(2026, 10, 19, 15, 30, 45, 123456, tzinfo=UTC)


@pytest.fixture
def pem_files(tmp_path: Path) -> tuple[str, str]:
    """Placeholder certificate and key files."""
    cert = tmp_path / "afip.crt"
    key = tmp_path / "afip.key"
    cert.write_text("cert")
    key.write_text("key")
    return str(cert), str(key)


@pytest.mark.unit
class TestBuildLoginTicketRequest:
    """TRA document."""

    def test_document_fields(self) -> None:
        """Header times bracket ``now`` and the service is named."""
        root = etree.fromstring(build_login_ticket_request("ws_sr_padron_a5", NOW))

        assert root.tag == "loginTicketRequest"
        assert root.get("version") == "1.0"
        assert root.findtext("header/uniqueId") == str(int(NOW.timestamp()))
        assert root.findtext("header/generationTime") == "2026-10-19T15:29:45+00:00"
        assert root.findtext("header/expirationTime") == "2026-10-20T03:30:45+00:00"
        assert root.findtext("service") == "ws_sr_padron_a5"

    def test_custom_skew_and_lifetime(self) -> None:
        """Skew and lifetime are configurable."""
        root = etree.fromstring(
            build_login_ticket_request(
                "ws_sr_padron_a5", NOW, clock_skew_seconds=600, lifetime_hours=1
            )
        )

        assert root.findtext("header/generationTime") == "2026-10-19T15:20:45+00:00"
        assert root.findtext("header/expirationTime") == "2026-10-19T16:30:45+00:00"

    def test_has_xml_declaration(self) -> None:
        """The document is a standalone UTF-8 XML file."""
        document = build_login_ticket_request("ws_sr_padron_a5", NOW)

        assert document.startswith(b"<?xml version='1.0' encoding='UTF-8'?>")


@pytest.mark.unit
class TestOpenSSLCmsSigner:
    """OpenSSL subprocess signer."""

    async def test_missing_certificate(self, tmp_path: Path) -> None:
        """Signing fails before spawning anything when files are missing."""
        signer = OpenSSLCmsSigner()

        with pytest.raises(SigningError, match="certificate not found"):
            await signer.sign(b"<x/>", str(tmp_path / "nope.crt"), "k")

    async def test_successful_signing(
        self, mocker: MockerFixture, pem_files: tuple[str, str]
    ) -> None:
        """The document is piped to ``openssl smime -sign`` and DER is returned."""
        process = mocker.Mock(returncode=0)
        process.communicate = mocker.AsyncMock(return_value=(b"DER", b""))
        spawn = mocker.patch(
            "src.infrastructure.afip.signer.asyncio.create_subprocess_exec",
            return_value=process,
        )
        cert, key = pem_files

        result = await OpenSSLCmsSigner("openssl").sign(b"<tra/>", cert, key)

        assert result == b"DER"
        args = spawn.call_args.args
        assert args[:3] == ("openssl", "smime", "-sign")
        assert "-nodetach" in args
        assert args[args.index("-signer") + 1] == cert
        assert args[args.index("-inkey") + 1] == key
        process.communicate.assert_awaited_once_with(b"<tra/>")

    async def test_non_zero_exit(
        self, mocker: MockerFixture, pem_files: tuple[str, str]
    ) -> None:
        """OpenSSL failures surface with their stderr."""
        process = mocker.Mock(returncode=1)
        process.communicate = mocker.AsyncMock(return_value=(b"", b"unable to load"))
        mocker.patch(
            "src.infrastructure.afip.signer.asyncio.create_subprocess_exec",
            return_value=process,
        )

        with pytest.raises(SigningError) as exc_info:
            await OpenSSLCmsSigner().sign(b"<tra/>", *pem_files)

        assert exc_info.value.context["stderr"] == "unable to load"

    async def test_binary_missing(
        self, mocker: MockerFixture, pem_files: tuple[str, str]
    ) -> None:
        """A missing executable is a signing error."""
        mocker.patch(
            "src.infrastructure.afip.signer.asyncio.create_subprocess_exec",
            side_effect=FileNotFoundError("openssl"),
        )

        with pytest.raises(SigningError, match="Cannot run openssl"):
            await OpenSSLCmsSigner().sign(b"<tra/>", *pem_files)

    async def test_timeout_kills_process(
        self, mocker: MockerFixture, pem_files: tuple[str, str]
    ) -> None:
        """A hung subprocess is killed."""

        async def hang(_: bytes) -> tuple[bytes, bytes]:
            await asyncio.sleep(10)
            return b"", b""

        process = mocker.Mock(returncode=None)
        process.communicate = hang
        process.wait = mocker.AsyncMock(return_value=-9)
        mocker.patch(
            "src.infrastructure.afip.signer.asyncio.create_subprocess_exec",
            return_value=process,
        )

        with pytest.raises(SigningError, match="timed out"):
            await OpenSSLCmsSigner(timeout_seconds=0.01).sign(b"<tra/>", *pem_files)

        process.kill.assert_called_once()

    async def test_cancellation_kills_process(
        self, mocker: MockerFixture, pem_files: tuple[str, str]
    ) -> None:
        """An outer timeout cancelling the signer still kills the subprocess."""
        started = asyncio.Event()

        async def hang(_: bytes) -> tuple[bytes, bytes]:
            started.set()
            await asyncio.sleep(10)
            return b"", b""

        process = mocker.Mock(returncode=None)
        process.communicate = hang
        process.wait = mocker.AsyncMock(return_value=-9)
        mocker.patch(
            "src.infrastructure.afip.signer.asyncio.create_subprocess_exec",
            return_value=process,
        )
        task = asyncio.create_task(
            OpenSSLCmsSigner(timeout_seconds=5).sign(b"<tra/>", *pem_files)
        )
        await started.wait()

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        process.kill.assert_called_once()
        process.wait.assert_awaited_once()

    async def test_finished_process_is_not_killed(
        self, mocker: MockerFixture, pem_files: tuple[str, str]
    ) -> None:
        """A process that already exited is left alone."""
        process = mocker.Mock(returncode=0)
        process.communicate = mocker.AsyncMock(return_value=(b"DER", b""))
        mocker.patch(
            "src.infrastructure.afip.signer.asyncio.create_subprocess_exec",
            return_value=process,
        )

        await OpenSSLCmsSigner().sign(b"<tra/>", *pem_files)

        process.kill.assert_not_called()


@pytest.mark.unit
class TestTicketSigner:
    """Signed request assembly."""

    async def test_returns_base64_cms(self, afip_config: AfipConfig) -> None:
        """The CMS is base64-encoded and the TRA names the service."""
        cms_signer = FakeCmsSigner(b"\x30\x82signed")

        result = await TicketSigner(afip_config, cms_signer).build_signed_request(NOW)

        assert base64.b64decode(result) == b"\x30\x82signed"
        document, cert, key = cms_signer.calls[0]
        assert etree.fromstring(document).findtext("service") == "ws_sr_padron_a5"
        assert (cert, key) == ("/secrets/afip.crt", "/secrets/afip.key")

    async def test_requires_certificate_configuration(self) -> None:
        """Without a certificate there is nothing to sign with."""
        signer = TicketSigner(AfipConfig(), FakeCmsSigner())

        with pytest.raises(SigningError, match="AFIP__CERT_PATH"):
            await signer.build_signed_request()
