"""WSAA client: exchanges a signed login request for a trust ticket."""

from datetime import datetime
from time import perf_counter

import httpx
from loguru import logger

from src.core.config import AfipConfig
from src.core.constants import MILLISECONDS_PER_SECOND
from src.core.exceptions import ProviderError, ProviderTimeoutError
from src.core.observability import trace_operation
from src.domain.models import TrustTicket
from src.infrastructure.afip.signer import TicketSigner
from src.infrastructure.afip.soap import (
    SOAP_CONTENT_TYPE,
    body_of,
    build_envelope,
    find_child,
    find_descendant,
    first_text,
    parse_xml,
    raise_for_fault,
)

WSAA_NS = "http://wsaa.view.sua.dvadac.desein.afip.gov"

# Where token and sign live in the loginTicketResponse, tried in order
CREDENTIAL_CONTAINERS = ("credentials", "credential", "header")


def parse_login_response(content: bytes | str) -> TrustTicket:
    """Parse a ``loginCms`` SOAP response into a ``TrustTicket``.

    The SOAP body carries the ``loginTicketResponse`` as an escaped XML string
    inside ``loginCmsReturn``; that string is parsed a second time.

    Raises:
        SoapFaultError: The response carries a Fault.
        ProviderError: Malformed XML, or token/sign missing.
    """
    envelope = parse_xml(content, "WSAA")
    body = body_of(envelope, "WSAA")
    raise_for_fault(body, "WSAA loginCms")

    response = find_child(body, ["loginCmsResponse"])
    holder = find_child(response, ["loginCmsReturn", "return"])
    if holder is None:
        holder = find_descendant(body, ["loginCmsReturn", "return"])
    inner = (holder.text or "").strip() if holder is not None else ""
    if not inner:
        raise ProviderError("WSAA response carries no loginCmsReturn")

    ticket_response = parse_xml(inner, "WSAA loginTicketResponse")

    token = sign = ""
    for container_name in CREDENTIAL_CONTAINERS:
        container = find_child(ticket_response, [container_name])
        token = token or first_text(container, ["token"])
        sign = sign or first_text(container, ["sign"])
        if token and sign:
            break
    if not token or not sign:
        raise ProviderError("WSAA ticket is missing token or sign")

    expiration = first_text(find_child(ticket_response, ["header"]), ["expirationTime"])
    expires_at = None
    if expiration:
        try:
            expires_at = datetime.fromisoformat(expiration)
        except ValueError:
            logger.warning("Unparseable WSAA expirationTime: {}", expiration)

    return TrustTicket(access_token=token, signature=sign, expires_at=expires_at)


class WsaaClient:
    """Requests login tickets from the WSAA ``loginCms`` operation.

    Args:
        http_client: Shared async HTTP client.
        signer: Produces the signed login ticket request.
        config: AFIP configuration (endpoint, timeout).
    """

    def __init__(
        self, http_client: httpx.AsyncClient, signer: TicketSigner, config: AfipConfig
    ) -> None:
        self.http_client = http_client
        self.signer = signer
        self.config = config

    async def login(self) -> TrustTicket:
        """Acquire a new trust ticket.

        Raises:
            SigningError: The request could not be signed.
            SoapFaultError: WSAA rejected the request.
            ProviderTimeoutError: WSAA did not answer in time.
            ProviderError: Transport failure or unusable response.
        """
        cms = await self.signer.build_signed_request()
        envelope = build_envelope(WSAA_NS, "loginCms", {"in0": cms}, prefix="wsaa")
        url = self.config.get_wsaa_url()

        start = perf_counter()
        with trace_operation("afip.wsaa.login_cms", service=self.config.service):
            try:
                response = await self.http_client.post(
                    url,
                    content=envelope,
                    headers={
                        "Content-Type": SOAP_CONTENT_TYPE,
                        "SOAPAction": "loginCms",
                    },
                    timeout=self.config.request_timeout_seconds,
                )
            except httpx.TimeoutException as e:
                raise ProviderTimeoutError(
                    "WSAA request timed out",
                    context={"timeout_seconds": self.config.request_timeout_seconds},
                    cause=e,
                ) from e
            except httpx.HTTPError as e:
                raise ProviderError(
                    f"WSAA request failed: {type(e).__name__}", cause=e
                ) from e

            # Faults usually come with HTTP 500; the body decides
            ticket = parse_login_response(response.content)

        logger.info(
            "Acquired WSAA ticket",
            service=self.config.service,
            status_code=response.status_code,
            expires_at=ticket.expires_at.isoformat() if ticket.expires_at else None,
            duration_ms=round((perf_counter() - start) * MILLISECONDS_PER_SECOND),
        )
        return ticket
