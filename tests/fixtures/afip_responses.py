"""Canned WSAA and Padron A5 SOAP payloads."""

from xml.sax.saxutils import escape

SOAP_ENV = "http://schemas.xmlsoap.org/soap/envelope/"


def envelope(body: str) -> str:
    """Wrap ``body`` in a SOAP 1.1 envelope."""
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f'<soapenv:Envelope xmlns:soapenv="{SOAP_ENV}">'
        f"<soapenv:Body>{body}</soapenv:Body></soapenv:Envelope>"
    )


def fault(fault_string: str = "", fault_code: str = "soapenv:Server") -> str:
    """SOAP Fault envelope."""
    string_element = (
        f"<faultstring>{fault_string}</faultstring>" if fault_string else ""
    )
    return envelope(
        f"<soapenv:Fault><faultcode>{fault_code}</faultcode>{string_element}"
        "</soapenv:Fault>"
    )


def login_ticket_response(
    token: str = "TOKEN-123",
    sign: str = "SIGN-456",
    expiration: str | None = "2026-10-20T10:00:00-03:00",
    container: str = "credentials",
) -> str:
    """Inner ``loginTicketResponse`` document."""
    expiration_element = (
        f"<expirationTime>{expiration}</expirationTime>" if expiration else ""
    )
    credentials = f"<token>{token}</token><sign>{sign}</sign>"
    if container == "header":
        header = (
            f"<header><uniqueId>1</uniqueId>{expiration_element}{credentials}</header>"
        )
        return f'<loginTicketResponse version="1.0">{header}</loginTicketResponse>'
    return (
        '<loginTicketResponse version="1.0">'
        f"<header><uniqueId>1</uniqueId>{expiration_element}</header>"
        f"<{container}>{credentials}</{container}>"
        "</loginTicketResponse>"
    )


def login_cms_response(inner: str | None = None) -> str:
    """``loginCms`` response carrying an escaped ticket document."""
    inner = login_ticket_response() if inner is None else inner
    return envelope(
        '<loginCmsResponse xmlns="http://wsaa.view.sua.dvadac.desein.afip.gov">'
        f"<loginCmsReturn>{escape(inner)}</loginCmsReturn>"
        "</loginCmsResponse>"
    )


PERSONA_OK = envelope(
    '<ns2:getPersonaResponse xmlns:ns2="http://a5.soap.ws.server.puc.sr/">'
    "<return>"
    "<idPersona>20304050609</idPersona>"
    "<denominacion>ACME SA</denominacion>"
    "<estadoClave>ACTIVO</estadoClave>"
    "<domicilioFiscal>"
    "<calle>Falsa</calle><numero>123</numero><piso>2</piso>"
    "<departamento>B</departamento>"
    "<localidad>CABA</localidad><provincia>Capital Federal</provincia>"
    "<codPostal>1000</codPostal>"
    "</domicilioFiscal>"
    "<actividades>"
    "<actividad><codigoActividad>1111</codigoActividad>"
    "<descripcionActividad>Comercio</descripcionActividad></actividad>"
    "<actividad><codigoActividad>2222</codigoActividad>"
    "<descripcionActividad>Servicios</descripcionActividad></actividad>"
    "</actividades>"
    "<impuesto><descripcionImpuesto>IVA</descripcionImpuesto></impuesto>"
    "<regimen><descripcionRegimen>MONOTRIBUTO</descripcionRegimen></regimen>"
    "</return>"
    "</ns2:getPersonaResponse>"
)

PERSONA_ALIASES = envelope(
    "<getPersonaResponse>"
    "<getPersonaReturn>"
    "<cuit>30712345671</cuit>"
    "<razonSocial>EMPRESA DEMO SA</razonSocial>"
    "<estado>ACTIVO</estado>"
    "<domicilio>"
    "<descCalle>San Martin</descCalle><nro>455</nro><depto>C</depto>"
    "<descLocalidad>Rosario</descLocalidad><descProvincia>Santa Fe</descProvincia>"
    "<cp>2000</cp>"
    "</domicilio>"
    "<actividad><codigo>620100</codigo><descripcion>Software</descripcion></actividad>"
    "<impuestos><impuesto>IVA</impuesto><impuesto>GANANCIAS SOCIEDADES</impuesto>"
    "</impuestos>"
    "</getPersonaReturn>"
    "</getPersonaResponse>"
)

PERSONA_NESTED = envelope(
    '<ns2:getPersonaResponse xmlns:ns2="http://a5.soap.ws.server.puc.sr/">'
    "<personaReturn>"
    "<datosGenerales>"
    "<idPersona>27123456780</idPersona>"
    "<apellido>PEREZ</apellido><nombre>MARIA</nombre>"
    "<estadoClave>ACTIVO</estadoClave>"
    "<domicilioFiscal><direccion>BELGRANO 87</direccion>"
    "<localidad>CORDOBA</localidad>"
    "<descripcionProvincia>CORDOBA</descripcionProvincia>"
    "<codPostal>5000</codPostal></domicilioFiscal>"
    "</datosGenerales>"
    "<datosRegimenGeneral>"
    "<impuesto><descripcionImpuesto>IVA EXENTO</descripcionImpuesto></impuesto>"
    "</datosRegimenGeneral>"
    "</personaReturn>"
    "</ns2:getPersonaResponse>"
)

PERSONA_EMPTY = envelope(
    '<ns2:getPersonaResponse xmlns:ns2="http://a5.soap.ws.server.puc.sr/">'
    "</ns2:getPersonaResponse>"
)
