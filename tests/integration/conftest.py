"""Shared fixtures for integration tests.

Apps are built with an injected lookup pipeline: ``ASGITransport`` does not
run the lifespan, and outbound AFIP traffic must go to an
``httpx.MockTransport`` instead of the network.
"""

from collections.abc import AsyncGenerator, Awaitable, Callable, Generator
from typing import Any

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from loguru import logger
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from src.api.main import create_app
from src.core.config import Settings, get_settings
from src.core.context import RequestContext
from src.core.logging import _state
from src.infrastructure.cache import InMemoryCacheStore
from src.services.factory import Services, build_services
from tests.fixtures.fakes import FakeAfip, FakeCmsSigner

WSAA_HOST = "wsaa.test"
PADRON_HOST = "padron.test"

type ClientFactory = Callable[..., Awaitable[AsyncClient]]


def make_settings(**overrides: Any) -> Settings:
    """Settings pointing every AFIP call at the fake hosts."""
    values: dict[str, Any] = {
        "environment": "development",
        "observability_config": {"enable_tracing": False},
        "afip": {
            "cert_path": "/secrets/afip.crt",
            "key_path": "/secrets/afip.key",
            "represented_cuit": "30712345671",
            "wsaa_url": f"https://{WSAA_HOST}/ws/services/LoginCms",
            "padron_url": f"https://{PADRON_HOST}/personaServiceA5",
        },
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def fake_afip() -> FakeAfip:
    """Fake WSAA and Padron A5 endpoints."""
    return FakeAfip(WSAA_HOST)


@pytest.fixture
async def client_factory(fake_afip: FakeAfip) -> AsyncGenerator[ClientFactory]:
    """Factory for test clients over an app with a fake-backed pipeline.

    Usage:
        async def test_something(client_factory):
            client = await client_factory(enrichment={"provider": "direct"})
    """
    clients: list[AsyncClient] = []
    pipelines: list[Services] = []

    async def _create_client(**overrides: Any) -> AsyncClient:
        settings = make_settings(**overrides)
        services = build_services(
            settings,
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(fake_afip)),
            cache=InMemoryCacheStore(),
            cms_signer=FakeCmsSigner(),
        )
        pipelines.append(services)

        app = create_app(settings, services=services)
        app.dependency_overrides[get_settings] = lambda: settings

        client = AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
        clients.append(client)
        return client

    yield _create_client

    for client in clients:
        await client.aclose()
    for services in pipelines:
        await services.aclose()


@pytest.fixture
async def client(client_factory: ClientFactory) -> AsyncClient:
    """Client over the default (fixture) lookup provider."""
    return await client_factory()


@pytest.fixture(autouse=True)
def clear_settings_cache(monkeypatch: pytest.MonkeyPatch) -> Generator[None]:
    """Fresh settings per test, unaffected by the developer's environment."""
    for name in ("ENVIRONMENT", "ENRICHMENT__PROVIDER", "CACHE__BACKEND"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()

    yield

    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def clean_request_context() -> Generator[None]:
    """Clear RequestContext before and after each test."""
    RequestContext.clear()

    yield

    RequestContext.clear()


@pytest.fixture(autouse=True)
def reset_logging_and_tracing_state() -> Generator[None]:
    """Keep app creation from adding stdout handlers or instrumenting twice."""
    logger.remove()
    _state.configured = True
    if FastAPIInstrumentor().is_instrumented_by_opentelemetry:
        FastAPIInstrumentor().uninstrument()

    yield

    _state.configured = True
    logger.remove()
