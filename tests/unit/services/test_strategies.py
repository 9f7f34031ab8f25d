"""Unit tests for the lookup strategies."""

from collections.abc import Callable

import httpx
import pytest

from src.core.config import AfipConfig, DelegatedApiConfig
from src.core.exceptions import (
    PersonaNotFoundError,
    ProviderUnavailableError,
    RateLimitedError,
    SoapFaultError,
)
from src.domain.models import Activity, FiscalAddress, PersonaRecord, TrustTicket
from src.infrastructure.afip.padron import PadronClient
from src.infrastructure.afip.ticket_cache import TicketCache
from src.infrastructure.cache import InMemoryCacheStore
from src.services.strategies import (
    DelegatedLookupStrategy,
    DirectLookupStrategy,
    FixtureLookupStrategy,
    infer_iva_condition,
    summarize_persona,
)
from tests.fixtures.afip_responses import PERSONA_OK, fault
from tests.fixtures.fakes import FakeTicketSource

type Handler = Callable[[httpx.Request], httpx.Response]

DELEGATED = DelegatedApiConfig(base_url="https://proxy.test/v1/", api_key="k-123")


def make_direct(
    afip_config: AfipConfig, handler: Handler
) -> tuple[DirectLookupStrategy, FakeTicketSource]:
    """Direct strategy over a mock registry."""
    source = FakeTicketSource(TrustTicket(access_token="TOKEN", signature="SIGN"))
    tickets = TicketCache(InMemoryCacheStore(), source, afip_config)
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return DirectLookupStrategy(tickets, PadronClient(http_client, afip_config)), source


def make_delegated(
    handler: Handler, config: DelegatedApiConfig = DELEGATED
) -> DelegatedLookupStrategy:
    """Delegated strategy over a mock proxy."""
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return DelegatedLookupStrategy(http_client, config)


@pytest.mark.unit
class TestInferIvaCondition:
    """IVA condition from registered taxes and regimes."""

    @pytest.mark.parametrize(
        ("taxes", "regimes", "expected"),
        [
            (["IVA"], ["MONOTRIBUTO"], "MONOTRIBUTO"),
            (["MONOTRIBUTO SOCIAL"], [], "MONOTRIBUTO"),
            (["IVA EXENTO"], [], "EXENTO"),
            (["GANANCIAS", "IVA"], [], "RI"),
            (["GANANCIAS PERSONAS HUMANAS"], [], "CF"),
            ([], [], "CF"),
        ],
    )
    def test_inference(
        self, taxes: list[str], regimes: list[str], expected: str
    ) -> None:
        """Monotributo wins, then exempt, then registered."""
        record = PersonaRecord(tax_id="20304050609", taxes=taxes, regimes=regimes)

        assert infer_iva_condition(record) == expected

    def test_summary_joins_street_and_number(self) -> None:
        """The customer address carries street and number together."""
        record = PersonaRecord(
            tax_id="30712345671",
            legal_name="EMPRESA DEMO SA",
            fiscal_address=FiscalAddress(
                street="San Martin",
                number="455",
                locality="Rosario",
                province="Santa Fe",
                postal_code="2000",
            ),
            activities=[Activity(code="620100")],
        )

        summary = summarize_persona(record, "AFIP_A5_DIRECT")

        assert summary.name == "EMPRESA DEMO SA"
        assert summary.address.street == "San Martin 455"
        assert summary.address.city == "Rosario"
        assert summary.address.state == "Santa Fe"
        assert summary.address.zip == "2000"
        assert summary.source == "AFIP_A5_DIRECT"


@pytest.mark.unit
class TestDirectLookupStrategy:
    """Padron A5 with a WSAA ticket."""

    async def test_found(self, afip_config: AfipConfig) -> None:
        """A registry record is summarized."""
        strategy, _ = make_direct(
            afip_config, lambda request: httpx.Response(200, text=PERSONA_OK)
        )

        summary = await strategy.lookup_by_tax_id("20304050609")

        assert summary is not None
        assert summary.name == "ACME SA"
        assert summary.iva_condition == "MONOTRIBUTO"
        assert summary.address.street == "Falsa 123"
        assert summary.source == "AFIP_A5_DIRECT"

    @pytest.mark.parametrize(
        "fault_string",
        ["No existe persona con ese Id", "Persona inexistente", "Not Found"],
    )
    async def test_not_found_fault_is_none(
        self, afip_config: AfipConfig, fault_string: str
    ) -> None:
        """Faults saying the taxpayer does not exist mean unknown, not failure."""
        strategy, _ = make_direct(
            afip_config,
            lambda request: httpx.Response(500, text=fault(fault_string)),
        )

        assert await strategy.lookup_by_tax_id("20111111112") is None

    async def test_fetch_persona_raises_not_found(
        self, afip_config: AfipConfig
    ) -> None:
        """The raw fetch reports unknown taxpayers as an error."""
        strategy, _ = make_direct(
            afip_config,
            lambda request: httpx.Response(500, text=fault("No existe persona")),
        )

        with pytest.raises(PersonaNotFoundError):
            await strategy.fetch_persona("20111111112")

    async def test_rejected_ticket_is_invalidated(
        self, afip_config: AfipConfig
    ) -> None:
        """An expired-token fault drops the ticket so the retry logs in again."""
        responses = iter(
            [
                httpx.Response(500, text=fault("Token expirado")),
                httpx.Response(200, text=PERSONA_OK),
            ]
        )
        strategy, source = make_direct(afip_config, lambda request: next(responses))

        with pytest.raises(SoapFaultError):
            await strategy.lookup_by_tax_id("20304050609")
        summary = await strategy.lookup_by_tax_id("20304050609")

        assert summary is not None
        assert source.logins == 2

    async def test_other_faults_keep_the_ticket(self, afip_config: AfipConfig) -> None:
        """Unrelated faults propagate without discarding the ticket."""
        responses = iter(
            [
                httpx.Response(500, text=fault("Error interno de base de datos")),
                httpx.Response(200, text=PERSONA_OK),
            ]
        )
        strategy, source = make_direct(afip_config, lambda request: next(responses))

        with pytest.raises(SoapFaultError):
            await strategy.lookup_by_tax_id("20304050609")
        await strategy.lookup_by_tax_id("20304050609")

        assert source.logins == 1


@pytest.mark.unit
class TestDelegatedLookupStrategy:
    """Third-party REST proxy."""

    async def test_found(self) -> None:
        """The proxy payload is mapped to a summary."""
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(
                200,
                json={
                    "razonSocial": "EMPRESA DEMO S.A.",
                    "condicionIva": "IVA Responsable Inscripto",
                    "domicilio": {
                        "calle": "San Martin 455",
                        "localidad": "Rosario",
                        "provincia": "Santa Fe",
                        "cp": "S2000",
                    },
                },
            )

        summary = await make_delegated(handler).lookup_by_tax_id("30712345671")

        assert summary is not None
        assert summary.name == "EMPRESA DEMO S.A."
        assert summary.iva_condition == "IVA Responsable Inscripto"
        assert summary.address.zip == "S2000"
        assert summary.source == "AFIP_PADRON"
        assert str(requests[0].url) == "https://proxy.test/v1/padron/30712345671"
        assert requests[0].headers["Authorization"] == "Bearer k-123"

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(404),
            httpx.Response(200, content=b""),
            httpx.Response(200, json={}),
            httpx.Response(200, json=[]),
        ],
    )
    async def test_unknown_taxpayer(self, response: httpx.Response) -> None:
        """404 and empty payloads mean the taxpayer is unknown."""
        strategy = make_delegated(lambda request: response)

        assert await strategy.lookup_by_tax_id("20111111112") is None

    async def test_rate_limited(self) -> None:
        """429 is reported as rate limiting, keeping Retry-After."""
        strategy = make_delegated(
            lambda request: httpx.Response(429, headers={"Retry-After": "5"})
        )

        with pytest.raises(RateLimitedError) as exc_info:
            await strategy.lookup_by_tax_id("20304050609")

        assert exc_info.value.context["retry_after"] == "5"

    @pytest.mark.parametrize("status_code", [500, 503, 401])
    async def test_error_status(self, status_code: int) -> None:
        """Other error statuses mean the provider is unavailable."""
        strategy = make_delegated(lambda request: httpx.Response(status_code))

        with pytest.raises(ProviderUnavailableError) as exc_info:
            await strategy.lookup_by_tax_id("20304050609")

        assert exc_info.value.context["status_code"] == status_code

    async def test_invalid_json(self) -> None:
        """Unparseable payloads are provider failures."""
        strategy = make_delegated(
            lambda request: httpx.Response(200, content=b"<html>")
        )

        with pytest.raises(ProviderUnavailableError, match="invalid JSON"):
            await strategy.lookup_by_tax_id("20304050609")

    async def test_unreachable(self) -> None:
        """Transport errors are provider failures."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(ProviderUnavailableError, match="unreachable"):
            await make_delegated(handler).lookup_by_tax_id("20304050609")

    async def test_not_configured(self) -> None:
        """Missing URL or key fails without any request."""
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200)

        strategy = make_delegated(handler, DelegatedApiConfig())

        with pytest.raises(ProviderUnavailableError, match="not configured"):
            await strategy.lookup_by_tax_id("20304050609")
        assert calls == []


@pytest.mark.unit
class TestFixtureLookupStrategy:
    """Canned records."""

    async def test_known_record(self) -> None:
        """Fixture records are served with the provider's IVA wording."""
        summary = await FixtureLookupStrategy().lookup_by_tax_id("30712345671")

        assert summary is not None
        assert summary.name == "EMPRESA DEMO S.A."
        assert summary.iva_condition == "IVA Responsable Inscripto"
        assert summary.source == "FIXTURE"

    async def test_unknown_record(self) -> None:
        """Unknown ids are None."""
        assert await FixtureLookupStrategy().lookup_by_tax_id("20111111112") is None

    async def test_custom_records(self) -> None:
        """Records can be injected."""
        strategy = FixtureLookupStrategy(
            {"20111111112": {"name": "TEST", "address": {"city": "Salta"}}}
        )

        summary = await strategy.lookup_by_tax_id("20111111112")

        assert summary is not None
        assert summary.address.city == "Salta"
        assert summary.iva_condition == ""
