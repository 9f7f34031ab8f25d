"""Canned taxpayer records served by the fixture lookup strategy.

Used in development and tests where no AFIP certificate or delegated API is
available. Every key is a valid CUIT/CUIL.
"""

from typing import Final

FIXTURE_RECORDS: Final[dict[str, dict[str, object]]] = {
    "20304050609": {
        "name": "APELLIDO NOMBRE",
        "iva_condition": "Monotributo",
        "address": {
            "street": "Av. Corrientes 1234",
            "city": "Ciudad Autonoma de Buenos Aires",
            "state": "CABA",
            "zip": "C1043",
        },
    },
    "30712345671": {
        "name": "EMPRESA DEMO S.A.",
        "iva_condition": "IVA Responsable Inscripto",
        "address": {
            "street": "San Martin 455",
            "city": "Rosario",
            "state": "Santa Fe",
            "zip": "S2000",
        },
    },
    "27123456780": {
        "name": "PEREZ MARIA",
        "iva_condition": "Consumidor Final",
        "address": {
            "street": "Belgrano 87",
            "city": "Cordoba",
            "state": "Cordoba",
            "zip": "X5000",
        },
    },
    "33693450239": {
        "name": "ADMINISTRACION FEDERAL DE INGRESOS PUBLICOS",
        "iva_condition": "IVA Exento",
        "address": {
            "street": "Hipolito Yrigoyen 370",
            "city": "Ciudad Autonoma de Buenos Aires",
            "state": "CABA",
            "zip": "C1086",
        },
    },
    "23222222222": {
        "name": "GOMEZ JUAN",
        "iva_condition": "Sin informar",
        "address": {},
    },
}
