"""Shared fixtures for unit tests."""

import os
from collections.abc import Generator
from datetime import UTC, datetime

import pytest
from pytest_mock import MockerFixture, MockType

from src.core.config import AfipConfig, EnrichmentConfig, Settings, get_settings
from src.core.context import RequestContext
from src.core.error_context import _get_sensitive_fields
from src.infrastructure.cache import InMemoryCacheStore

FIXED_NOW = datetime(2026, 10, 20, 12, 0, tzinfo=UTC)


@pytest.fixture
def mock_settings(monkeypatch: pytest.MonkeyPatch) -> Settings:
    """Real Settings built from test environment values."""
    monkeypatch.setenv("APP_NAME", "TestApp")
    monkeypatch.setenv("APP_VERSION", "1.0.0")
    monkeypatch.setenv("ENVIRONMENT", "development")
    monkeypatch.setenv("DEBUG", "false")
    monkeypatch.setenv("API_HOST", "127.0.0.1")
    monkeypatch.setenv("API_PORT", "3000")

    return Settings()


@pytest.fixture
def mock_uvicorn(mocker: MockerFixture) -> MockType:
    """Mock uvicorn.run so no server starts."""
    return mocker.patch("uvicorn.run")


@pytest.fixture
def isolated_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Environment without a PORT override."""
    monkeypatch.delenv("PORT", raising=False)
    return monkeypatch


@pytest.fixture
def mock_main_dependencies(
    mocker: MockerFixture,
    mock_settings: Settings,
) -> dict[str, MockType]:
    """Mock everything main() touches, keyed by name."""
    mocks = {
        "get_settings": mocker.patch("main.get_settings"),
        "setup_logging": mocker.patch("main.setup_logging"),
        "logger": mocker.patch("main.logger"),
        "uvicorn_run": mocker.patch("uvicorn.run"),
    }
    mocks["get_settings"].return_value = mock_settings
    return mocks


@pytest.fixture
def afip_config() -> AfipConfig:
    """AFIP configuration pointing at fake endpoints."""
    return AfipConfig(
        cert_path="/secrets/afip.crt",
        key_path="/secrets/afip.key",
        represented_cuit="30712345671",
        wsaa_url="https://wsaa.test/LoginCms",
        padron_url="https://padron.test/personaServiceA5",
    )


@pytest.fixture
def enrichment_config() -> EnrichmentConfig:
    """Enrichment configuration with the default retry budget."""
    return EnrichmentConfig(
        max_attempts=3, base_delay_ms=250, jitter_ms=100, cache_ttl_seconds=3600
    )


@pytest.fixture
def memory_cache() -> InMemoryCacheStore:
    """Empty in-process cache."""
    return InMemoryCacheStore()


@pytest.fixture
def fixed_clock() -> datetime:
    """A fixed point in time used as the clock in time-dependent tests."""
    return FIXED_NOW


@pytest.fixture(autouse=True)
def clean_lru_cache() -> Generator[None]:
    """Clear the settings caches before and after each test."""
    get_settings.cache_clear()
    _get_sensitive_fields.cache_clear()
    yield
    get_settings.cache_clear()
    _get_sensitive_fields.cache_clear()


@pytest.fixture(autouse=True)
def clean_env(
    monkeypatch: pytest.MonkeyPatch,
) -> Generator[pytest.MonkeyPatch]:
    """Drop gateway settings from the environment, restoring it afterwards."""
    original_env = os.environ.copy()

    env_prefixes = [
        "APP_",
        "API_",
        "ENVIRONMENT",
        "DEBUG",
        "LOG_CONFIG__",
        "OBSERVABILITY_CONFIG__",
        "AFIP__",
        "DELEGATED_API__",
        "CACHE__",
        "ENRICHMENT__",
    ]
    for key in list(os.environ.keys()):
        if any(key.startswith(prefix) for prefix in env_prefixes):
            monkeypatch.delenv(key, raising=False)

    yield monkeypatch

    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture(autouse=True)
def clean_context() -> Generator[None]:
    """Clear request context before and after each test."""
    RequestContext.clear()
    yield
    RequestContext.clear()
