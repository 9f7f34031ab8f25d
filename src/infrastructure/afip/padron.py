"""Padron A5 client: taxpayer lookups by CUIT/CUIL.

Responses vary in shape between environments and service versions. Fields
may sit directly under ``return`` or inside ``datosGenerales`` /
``datosRegimenGeneral`` / ``datosMonotributo``, and several fields have more
than one name. Normalization therefore works from ordered alias lists per
logical field; the first non-empty alias wins.
"""

from collections.abc import Iterator
from time import perf_counter
from typing import Final

import httpx
from loguru import logger
from lxml import etree

from src.core.config import AfipConfig
from src.core.constants import MILLISECONDS_PER_SECOND
from src.core.exceptions import (
    ConfigurationError,
    PersonaNotFoundError,
    ProviderError,
    ProviderTimeoutError,
)
from src.core.observability import trace_operation
from src.domain.models import Activity, FiscalAddress, PersonaRecord, TrustTicket
from src.infrastructure.afip.soap import (
    SOAP_CONTENT_TYPE,
    body_of,
    build_envelope,
    find_child,
    find_descendant,
    first_text,
    iter_children,
    parse_xml,
    raise_for_fault,
)

A5_NS = "http://a5.soap.ws.server.puc.sr/"

FIELD_ALIASES: Final[dict[str, tuple[str, ...]]] = {
    "tax_id": ("idPersona", "id", "cuit"),
    "legal_name": ("denominacion", "razonSocial"),
    "last_name": ("apellido",),
    "first_name": ("nombre",),
    "fiscal_status": ("estadoClave", "estado", "estadoClaveFiscal"),
    "address": ("domicilioFiscal", "domicilio"),
    "street": ("calle", "descCalle", "direccion"),
    "number": ("numero", "nro"),
    "floor": ("piso",),
    "unit": ("departamento", "depto"),
    "locality": ("localidad", "descLocalidad"),
    "province": ("provincia", "descProvincia", "descripcionProvincia"),
    "postal_code": ("codPostal", "cp"),
    "activity_code": ("codigoActividad", "codigo", "idActividad", "id"),
    "activity_description": ("descripcionActividad", "descripcion", "desc"),
    "tax_description": ("descripcionImpuesto", "descripcion"),
    "regime_description": ("descripcionRegimen", "descripcion"),
}

PERSONA_ELEMENTS: Final[tuple[str, ...]] = (
    "return",
    "getPersonaReturn",
    "personaReturn",
    "persona",
)
SECTION_ELEMENTS: Final[tuple[str, ...]] = (
    "datosGenerales",
    "datosRegimenGeneral",
    "datosMonotributo",
)


def _sections(persona: etree._Element) -> list[etree._Element]:
    sections = [persona]
    for name in SECTION_ELEMENTS:
        sections.extend(iter_children(persona, name))
    return sections


def _field(sections: list[etree._Element], field: str) -> str:
    for section in sections:
        if value := first_text(section, FIELD_ALIASES[field]):
            return value
    return ""


def _repeated(
    sections: list[etree._Element], container: str, item: str
) -> Iterator[etree._Element]:
    """Yield ``container/item`` elements, or bare repeated ``item`` elements."""
    for section in sections:
        for holder in iter_children(section, container):
            yield from iter_children(holder, item)
        yield from iter_children(section, item)


def _describe(element: etree._Element, field: str) -> str:
    """Description of a tax/regime entry, which may be plain text or nested."""
    if len(element):
        return first_text(element, FIELD_ALIASES[field])
    return (element.text or "").strip()


def _activity(element: etree._Element) -> Activity | None:
    code = first_text(element, FIELD_ALIASES["activity_code"])
    description = first_text(element, FIELD_ALIASES["activity_description"])
    if not code and not description:
        return None
    return Activity(code=code, description=description)


def normalize_persona(persona: etree._Element, requested_id: str = "") -> PersonaRecord:
    """Normalize a raw ``return`` element into a ``PersonaRecord``.

    Args:
        persona: The persona element of a getPersona response.
        requested_id: Used as tax id when the record omits it.

    Returns:
        PersonaRecord: Normalized record; missing values are empty.

    Example:
        >>> persona = etree.fromstring(
        ...     "<return><idPersona>20304050609</idPersona>"
        ...     "<domicilio><descCalle>San Martin</descCalle></domicilio></return>"
        ... )
        >>> normalize_persona(persona).fiscal_address.street
        'San Martin'
    """
    sections = _sections(persona)

    legal_name = _field(sections, "legal_name")
    if not legal_name:
        legal_name = " ".join(
            part
            for part in (_field(sections, "last_name"), _field(sections, "first_name"))
            if part
        )

    address_element = None
    for section in sections:
        address_element = find_child(section, FIELD_ALIASES["address"])
        if address_element is not None:
            break
    address_sections = [address_element] if address_element is not None else []
    address = FiscalAddress(
        street=_field(address_sections, "street"),
        number=_field(address_sections, "number"),
        floor=_field(address_sections, "floor"),
        unit=_field(address_sections, "unit"),
        locality=_field(address_sections, "locality"),
        province=_field(address_sections, "province"),
        postal_code=_field(address_sections, "postal_code"),
    )

    activities = [
        activity
        for element in _repeated(sections, "actividades", "actividad")
        if (activity := _activity(element)) is not None
    ]
    taxes = [
        text
        for element in _repeated(sections, "impuestos", "impuesto")
        if (text := _describe(element, "tax_description"))
    ]
    regimes = [
        text
        for element in _repeated(sections, "regimenes", "regimen")
        if (text := _describe(element, "regime_description"))
    ]

    return PersonaRecord(
        tax_id=_field(sections, "tax_id") or requested_id,
        legal_name=legal_name,
        fiscal_status=_field(sections, "fiscal_status"),
        fiscal_address=address,
        activities=activities,
        taxes=taxes,
        regimes=regimes,
    )


def parse_persona_response(content: bytes | str, tax_id: str) -> PersonaRecord:
    """Parse a ``getPersona`` SOAP response.

    Raises:
        SoapFaultError: The response carries a Fault.
        PersonaNotFoundError: The response has no persona record.
        ProviderError: Malformed XML.
    """
    envelope = parse_xml(content, "Padron A5")
    body = body_of(envelope, "Padron A5")
    raise_for_fault(body, "Padron A5 getPersona")

    response = find_child(body, ["getPersonaResponse"])
    persona = find_child(response, PERSONA_ELEMENTS)
    if persona is None:
        persona = find_descendant(body, PERSONA_ELEMENTS)
    if persona is None or (not len(persona) and not (persona.text or "").strip()):
        raise PersonaNotFoundError(
            "Padron A5 returned no record", context={"cuit": tax_id}
        )

    return normalize_persona(persona, tax_id)


class PadronClient:
    """Calls the Padron A5 ``getPersona`` operation.

    Args:
        http_client: Shared async HTTP client.
        config: AFIP configuration (endpoint, represented CUIT, timeout).
    """

    def __init__(self, http_client: httpx.AsyncClient, config: AfipConfig) -> None:
        self.http_client = http_client
        self.config = config

    async def get_persona(self, ticket: TrustTicket, tax_id: str) -> PersonaRecord:
        """Look up a taxpayer.

        Args:
            ticket: Valid trust ticket for ``ws_sr_padron_a5``.
            tax_id: Normalized 11-digit CUIT/CUIL.

        Returns:
            PersonaRecord: The normalized registry record.

        Raises:
            ConfigurationError: No represented CUIT configured.
            PersonaNotFoundError: The registry has no such taxpayer.
            SoapFaultError: The registry answered with a Fault.
            ProviderTimeoutError: The registry did not answer in time.
            ProviderError: Transport failure or unusable response.
        """
        if not self.config.represented_cuit:
            raise ConfigurationError(
                "AFIP__REPRESENTED_CUIT must be set to query Padron A5"
            )

        envelope = build_envelope(
            A5_NS,
            "getPersona",
            {
                "token": ticket.access_token,
                "sign": ticket.signature,
                "cuitRepresentada": self.config.represented_cuit,
                "idPersona": tax_id,
            },
            prefix="a5",
        )

        start = perf_counter()
        with trace_operation("afip.padron_a5.get_persona", cuit=tax_id):
            try:
                response = await self.http_client.post(
                    self.config.get_padron_url(),
                    content=envelope,
                    headers={
                        "Content-Type": SOAP_CONTENT_TYPE,
                        "SOAPAction": "getPersona",
                    },
                    timeout=self.config.request_timeout_seconds,
                )
            except httpx.TimeoutException as e:
                raise ProviderTimeoutError(
                    "Padron A5 request timed out",
                    context={"cuit": tax_id},
                    cause=e,
                ) from e
            except httpx.HTTPError as e:
                raise ProviderError(
                    f"Padron A5 request failed: {type(e).__name__}",
                    context={"cuit": tax_id},
                    cause=e,
                ) from e

            record = parse_persona_response(response.content, tax_id)

        logger.debug(
            "Padron A5 record fetched",
            cuit=tax_id,
            status_code=response.status_code,
            duration_ms=round((perf_counter() - start) * MILLISECONDS_PER_SECOND),
        )
        return record
