"""Minimal SOAP 1.1 helpers shared by the WSAA and Padron A5 clients.

AFIP services answer with slightly different shapes depending on environment
and version (namespaced or not, ``return`` vs ``getPersonaReturn``), so every
lookup here matches elements by local name and accepts a list of aliases.
"""

from collections.abc import Iterable, Iterator, Mapping

from lxml import etree

from src.core.error_context import redact_payload
from src.core.exceptions import ProviderError, SoapFaultError

SOAP_ENV_NS = "http://schemas.xmlsoap.org/soap/envelope/"
SOAP_CONTENT_TYPE = "text/xml; charset=utf-8"

_PARSER = etree.XMLParser(
    resolve_entities=False, no_network=True, remove_blank_text=True
)


def build_envelope(
    namespace: str, operation: str, params: Mapping[str, str], prefix: str = "ns"
) -> bytes:
    """Build a SOAP envelope calling ``operation`` with flat text parameters.

    Args:
        namespace: Service namespace of the operation element.
        operation: Operation local name (e.g. ``loginCms``).
        params: Child element names and their text, in order.
        prefix: Namespace prefix for the operation element.

    Returns:
        bytes: UTF-8 encoded envelope.
    """
    envelope = etree.Element(
        etree.QName(SOAP_ENV_NS, "Envelope"),
        nsmap={"soapenv": SOAP_ENV_NS, prefix: namespace},
    )
    etree.SubElement(envelope, etree.QName(SOAP_ENV_NS, "Header"))
    body = etree.SubElement(envelope, etree.QName(SOAP_ENV_NS, "Body"))
    call = etree.SubElement(body, etree.QName(namespace, operation))
    for name, value in params.items():
        # Parameters are unqualified, as in the published WSDLs
        etree.SubElement(call, name).text = value
    return etree.tostring(envelope, xml_declaration=True, encoding="UTF-8")


def parse_xml(content: bytes | str, what: str) -> etree._Element:
    """Parse an XML payload, mapping syntax errors to ``ProviderError``."""
    if isinstance(content, str):
        content = content.encode("utf-8")
    if not content or not content.strip():
        raise ProviderError(f"Empty {what} response")
    try:
        return etree.fromstring(content, parser=_PARSER)
    except etree.XMLSyntaxError as e:
        raise ProviderError(
            f"Malformed {what} response",
            context={"detail": str(e), "body_excerpt": redact_payload(content)},
            cause=e,
        ) from e


def localname(element: etree._Element) -> str:
    """Local name of an element, ignoring its namespace."""
    if not isinstance(element.tag, str):
        return ""
    return etree.QName(element).localname


def iter_children(element: etree._Element, name: str) -> Iterator[etree._Element]:
    """Yield direct children whose local name is ``name``."""
    for child in element:
        if localname(child) == name:
            yield child


def find_child(
    element: etree._Element | None, names: Iterable[str]
) -> etree._Element | None:
    """Return the first direct child matching any alias, tried in order."""
    if element is None:
        return None
    for name in names:
        for child in iter_children(element, name):
            return child
    return None


def find_descendant(
    element: etree._Element, names: Iterable[str]
) -> etree._Element | None:
    """Return the first descendant matching any alias, tried in order."""
    for name in names:
        for node in element.iter():
            if node is not element and localname(node) == name:
                return node
    return None


def first_text(element: etree._Element | None, names: Iterable[str]) -> str:
    """Text of the first non-empty child matching any alias, or ``""``."""
    if element is None:
        return ""
    for name in names:
        for child in iter_children(element, name):
            text = (child.text or "").strip()
            if text:
                return text
    return ""


def body_of(envelope: etree._Element, what: str) -> etree._Element:
    """Return the ``Body`` element of an envelope.

    Raises:
        ProviderError: The document is not a SOAP envelope.
    """
    body = find_child(envelope, ["Body"])
    if body is None:
        raise ProviderError(
            f"{what} response is not a SOAP envelope",
            context={"body_excerpt": redact_payload(etree.tostring(envelope))},
        )
    return body


def raise_for_fault(body: etree._Element, what: str) -> None:
    """Raise ``SoapFaultError`` when the body carries a Fault.

    The ``faultstring`` is preferred; ``faultcode`` is used when the service
    sends no description.
    """
    fault = find_child(body, ["Fault"])
    if fault is None:
        return
    fault_string = first_text(fault, ["faultstring"]) or first_text(
        fault, ["faultcode"]
    )
    raise SoapFaultError(f"{what} returned a SOAP fault", fault_string or "unknown")
