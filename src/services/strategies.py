"""Lookup strategies: interchangeable ways to resolve a CUIT to a taxpayer.

Each strategy returns a ``PersonaSummary`` for a known taxpayer, ``None`` for
an unknown one, and raises a ``PadronGatewayError`` for anything else. The IVA
condition in the summary is the provider's own wording; canonicalization is
the orchestrator's job.
"""

from collections.abc import Mapping
from typing import Any, Protocol

import httpx
import orjson
from loguru import logger

from src.core.config import DelegatedApiConfig
from src.core.constants import SOURCE_DELEGATED, SOURCE_DIRECT, SOURCE_FIXTURE
from src.core.exceptions import (
    PersonaNotFoundError,
    ProviderUnavailableError,
    RateLimitedError,
    SoapFaultError,
)
from src.core.observability import trace_operation
from src.core.types import ProviderPayload
from src.domain.models import CustomerAddress, PersonaRecord, PersonaSummary
from src.infrastructure.afip.padron import PadronClient
from src.infrastructure.afip.ticket_cache import TicketCache
from src.services.fixtures import FIXTURE_RECORDS

NOT_FOUND_MARKERS = ("not found", "inexistente", "no existe persona")
REJECTED_TICKET_MARKERS = ("expirad", "expired", "token invalido", "firma invalida")


class LookupStrategy(Protocol):
    """Resolves a normalized CUIT/CUIL to a taxpayer summary."""

    source: str

    async def lookup_by_tax_id(self, tax_id: str) -> PersonaSummary | None:
        """Return the taxpayer, None when unknown; raise on provider failure."""
        ...


def infer_iva_condition(record: PersonaRecord) -> str:
    """Infer the IVA condition from registered regimes and taxes."""
    regimes = [r.upper() for r in record.regimes]
    taxes = [t.upper() for t in record.taxes]

    if any("MONOTRIB" in item for item in regimes + taxes):
        return "MONOTRIBUTO"
    if any("IVA EXENTO" in tax for tax in taxes):
        return "EXENTO"
    if any("IVA" in tax for tax in taxes):
        return "RI"
    return "CF"


def summarize_persona(record: PersonaRecord, source: str) -> PersonaSummary:
    """Reduce a full registry record to the customer-facing summary."""
    address = record.fiscal_address
    return PersonaSummary(
        name=record.legal_name,
        iva_condition=infer_iva_condition(record),
        address=CustomerAddress(
            street=" ".join(part for part in (address.street, address.number) if part),
            city=address.locality,
            state=address.province,
            zip=address.postal_code,
        ),
        source=source,
    )


class DirectLookupStrategy:
    """Queries Padron A5 directly with a WSAA trust ticket."""

    source = SOURCE_DIRECT

    def __init__(self, ticket_cache: TicketCache, padron_client: PadronClient) -> None:
        self.ticket_cache = ticket_cache
        self.padron_client = padron_client

    async def fetch_persona(self, tax_id: str) -> PersonaRecord:
        """Fetch the full registry record.

        Raises:
            PersonaNotFoundError: Unknown taxpayer, including "not found" faults.
            SoapFaultError: Any other fault; a rejected ticket is invalidated first.
        """
        ticket = await self.ticket_cache.get_valid_ticket()
        try:
            return await self.padron_client.get_persona(ticket, tax_id)
        except SoapFaultError as e:
            fault = e.fault_string.lower()
            if any(marker in fault for marker in NOT_FOUND_MARKERS):
                raise PersonaNotFoundError(
                    "Padron A5 reports no such taxpayer",
                    context={"cuit": tax_id, "fault_string": e.fault_string},
                    cause=e,
                ) from e
            if any(marker in fault for marker in REJECTED_TICKET_MARKERS):
                self.ticket_cache.invalidate()
            raise

    async def lookup_by_tax_id(self, tax_id: str) -> PersonaSummary | None:
        try:
            record = await self.fetch_persona(tax_id)
        except PersonaNotFoundError:
            return None
        return summarize_persona(record, self.source)


class DelegatedLookupStrategy:
    """Queries a third-party REST proxy of the registry.

    Expected payload::

        {"razonSocial": ..., "condicionIva": ...,
         "domicilio": {"calle": ..., "localidad": ..., "provincia": ..., "cp": ...}}
    """

    source = SOURCE_DELEGATED

    def __init__(
        self, http_client: httpx.AsyncClient, config: DelegatedApiConfig
    ) -> None:
        self.http_client = http_client
        self.config = config

    async def lookup_by_tax_id(self, tax_id: str) -> PersonaSummary | None:
        if not self.config.base_url or not self.config.api_key:
            raise ProviderUnavailableError(
                "Delegated padron API is not configured "
                "(DELEGATED_API__BASE_URL, DELEGATED_API__API_KEY)"
            )

        url = f"{self.config.base_url.rstrip('/')}/padron/{tax_id}"
        with trace_operation("padron.delegated.lookup", cuit=tax_id):
            try:
                response = await self.http_client.get(
                    url,
                    headers={"Authorization": f"Bearer {self.config.api_key}"},
                    timeout=self.config.timeout_seconds,
                )
            except httpx.HTTPError as e:
                raise ProviderUnavailableError(
                    f"Delegated padron API unreachable: {type(e).__name__}",
                    context={"cuit": tax_id},
                    cause=e,
                ) from e

        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        if response.status_code == httpx.codes.TOO_MANY_REQUESTS:
            raise RateLimitedError(
                "Delegated padron API rate limit reached",
                context={
                    "cuit": tax_id,
                    "retry_after": response.headers.get("Retry-After"),
                },
            )
        if response.is_error:
            raise ProviderUnavailableError(
                "Delegated padron API error",
                context={"cuit": tax_id, "status_code": response.status_code},
            )

        if not response.content.strip():
            return None
        try:
            data = orjson.loads(response.content)
        except orjson.JSONDecodeError as e:
            raise ProviderUnavailableError(
                "Delegated padron API returned invalid JSON",
                context={"cuit": tax_id},
                cause=e,
            ) from e
        if not data or not isinstance(data, dict):
            return None

        return self._to_summary(data)

    def _to_summary(self, data: ProviderPayload) -> PersonaSummary:
        address = data.get("domicilio") or {}
        return PersonaSummary(
            name=str(data.get("razonSocial") or data.get("nombre") or ""),
            iva_condition=str(data.get("condicionIva") or data.get("iva") or ""),
            address=CustomerAddress(
                street=str(address.get("calle") or ""),
                city=str(address.get("localidad") or ""),
                state=str(address.get("provincia") or ""),
                zip=str(address.get("cp") or ""),
            ),
            source=self.source,
        )


class FixtureLookupStrategy:
    """Serves canned records; no network access."""

    source = SOURCE_FIXTURE

    def __init__(self, records: Mapping[str, Mapping[str, Any]] | None = None) -> None:
        self.records = FIXTURE_RECORDS if records is None else records

    async def lookup_by_tax_id(self, tax_id: str) -> PersonaSummary | None:
        entry = self.records.get(tax_id)
        if entry is None:
            logger.debug("No fixture record", cuit=tax_id)
            return None
        return PersonaSummary(
            name=str(entry.get("name", "")),
            iva_condition=str(entry.get("iva_condition", "")),
            address=CustomerAddress(**(entry.get("address") or {})),
            source=self.source,
        )
