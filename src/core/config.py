"""Centralized configuration management with environment-aware defaults.

This module implements the configuration system using Pydantic Settings,
providing type-safe configuration with validation and environment variable
support. Nested sections use the ``__`` delimiter, so the Padron provider is
selected with ``ENRICHMENT__PROVIDER=direct`` and the AFIP certificate with
``AFIP__CERT_PATH=/secrets/afip.crt``.

Configuration sources (in order of precedence):
1. Environment variables
2. .env file in project root
3. Default values in model definitions
4. Environment-based defaults (production vs development)
"""

import os
from enum import Enum
from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

WSAA_TESTING_URL = "https://wsaahomo.afip.gov.ar/ws/services/LoginCms"
WSAA_PRODUCTION_URL = "https://wsaa.afip.gov.ar/ws/services/LoginCms"
PADRON_A5_TESTING_URL = (
    "https://awshomo.afip.gov.ar/sr-padron/webservices/personaServiceA5"
)
PADRON_A5_PRODUCTION_URL = (
    "https://aws.afip.gov.ar/sr-padron/webservices/personaServiceA5"
)


class LookupProvider(str, Enum):
    """Closed set of lookup strategies the orchestrator can be built with."""

    DIRECT = "direct"
    DELEGATED = "delegated"
    FIXTURE = "fixture"


class LogConfig(BaseModel):
    """Logging configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_formatter_type: Literal["console", "json", "gcp"] | None = Field(
        default=None,
        description="Log output formatter. Auto-detected if not specified.",
    )
    sensitive_fields: list[str] = Field(
        default_factory=lambda: [
            "password",
            "token",
            "sign",
            "secret",
            "api_key",
            "authorization",
        ],
        description="Field names to redact",
    )


class ObservabilityConfig(BaseModel):
    """OpenTelemetry tracing configuration."""

    enable_tracing: bool = Field(
        default=False,
        description="Enable OpenTelemetry tracing",
    )
    exporter_type: Literal["console", "otlp", "none"] = Field(
        default="console",
        description="Trace exporter type. Defaults to console for development.",
    )
    exporter_endpoint: str | None = Field(
        default=None,
        description="OTLP exporter endpoint",
    )
    trace_sample_rate: float = Field(
        default=1.0,
        ge=0.0,
        le=1.0,
        description="Trace sampling rate (0.0 to 1.0)",
    )

    @field_validator("exporter_endpoint", mode="before")
    @classmethod
    def empty_str_to_none(cls, v: str | None) -> str | None:
        """Convert empty strings to None for nullable fields."""
        if v == "":
            return None
        return v


class AfipConfig(BaseModel):
    """AFIP web services (WSAA and Padron A5) configuration."""

    environment: Literal["testing", "production"] = Field(
        default="testing",
        description="AFIP environment; 'testing' targets homologacion endpoints",
    )
    service: str = Field(
        default="ws_sr_padron_a5",
        description="Service the login ticket is requested for",
    )
    cert_path: str | None = Field(
        default=None, description="PEM certificate registered with AFIP"
    )
    key_path: str | None = Field(
        default=None, description="PEM private key matching the certificate"
    )
    openssl_binary: str = Field(
        default="openssl", description="OpenSSL executable used for CMS signing"
    )
    represented_cuit: str | None = Field(
        default=None,
        description="CUIT on whose behalf the registry is queried (cuitRepresentada)",
    )
    wsaa_url: str | None = Field(default=None, description="WSAA URL override")
    padron_url: str | None = Field(default=None, description="Padron A5 URL override")
    request_timeout_seconds: float = Field(
        default=10.0, gt=0, le=60, description="Timeout for SOAP calls"
    )
    signing_timeout_seconds: float = Field(
        default=5.0, gt=0, le=60, description="Timeout for the signing subprocess"
    )
    ticket_lifetime_hours: int = Field(
        default=12, ge=1, le=24, description="Requested login ticket lifetime"
    )
    clock_skew_seconds: int = Field(
        default=60,
        ge=0,
        description="How far in the past the ticket request generation time is set",
    )
    ticket_safety_margin_seconds: int = Field(
        default=60,
        ge=0,
        description="Seconds subtracted from the ticket expiration when caching it",
    )
    ticket_min_ttl_seconds: int = Field(
        default=30, ge=1, description="Floor for the cached ticket TTL"
    )
    ticket_fallback_ttl_seconds: int = Field(
        default=3600,
        ge=1,
        description="Ticket TTL used when WSAA omits the expiration time",
    )
    persona_cache_ttl_seconds: int = Field(
        default=86400, ge=1, description="TTL for raw registry records"
    )

    @field_validator(
        "cert_path",
        "key_path",
        "represented_cuit",
        "wsaa_url",
        "padron_url",
        mode="before",
    )
    @classmethod
    def empty_str_to_none(cls, v: str | None) -> str | None:
        """Convert empty strings to None for nullable fields."""
        if v == "":
            return None
        return v

    @property
    def is_production(self) -> bool:
        """Whether the production AFIP endpoints are targeted."""
        return self.environment == "production"

    def get_wsaa_url(self) -> str:
        """Resolve the WSAA LoginCms endpoint for the configured environment."""
        if self.wsaa_url:
            return self.wsaa_url
        return WSAA_PRODUCTION_URL if self.is_production else WSAA_TESTING_URL

    def get_padron_url(self) -> str:
        """Resolve the Padron A5 endpoint for the configured environment."""
        if self.padron_url:
            return self.padron_url
        return PADRON_A5_PRODUCTION_URL if self.is_production else PADRON_A5_TESTING_URL


class DelegatedApiConfig(BaseModel):
    """Third-party REST proxy used by the delegated lookup strategy."""

    base_url: str | None = Field(default=None, description="Proxy base URL")
    api_key: str | None = Field(default=None, description="Bearer API key")
    timeout_seconds: float = Field(
        default=3.0, gt=0, le=60, description="Request timeout"
    )

    @field_validator("base_url", "api_key", mode="before")
    @classmethod
    def empty_str_to_none(cls, v: str | None) -> str | None:
        """Convert empty strings to None for nullable fields."""
        if v == "":
            return None
        return v


class CacheConfig(BaseModel):
    """Shared key-value cache configuration."""

    backend: Literal["redis", "memory"] = Field(
        default="memory",
        description="Cache backend; 'redis' shares tickets and results across workers",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0", description="Redis connection URL"
    )
    key_prefix: str = Field(default="", description="Prefix applied to every key")
    socket_timeout_seconds: float = Field(
        default=1.0, gt=0, le=30, description="Redis socket timeout"
    )
    max_entries: int = Field(
        default=10_000, ge=1, description="Capacity of the in-memory backend"
    )


class EnrichmentConfig(BaseModel):
    """Customer enrichment orchestrator configuration."""

    provider: LookupProvider = Field(
        default=LookupProvider.FIXTURE,
        description="Lookup strategy: direct, delegated or fixture",
    )
    cache_ttl_seconds: int = Field(
        default=3600, ge=1, description="TTL for normalized customer records"
    )
    max_attempts: int = Field(
        default=3, ge=1, le=10, description="Lookup attempts before giving up"
    )
    base_delay_ms: int = Field(
        default=250, ge=0, description="Base backoff delay between attempts"
    )
    jitter_ms: int = Field(default=100, ge=0, description="Maximum random jitter")
    attempt_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=120,
        description=(
            "Upper bound for a single attempt; keep above signing, WSAA and "
            "Padron timeouts combined"
        ),
    )

    @field_validator("provider", mode="before")
    @classmethod
    def normalize_provider(cls, v: object) -> object:
        """Accept provider names case-insensitively, plus the legacy aliases."""
        if isinstance(v, str):
            value = v.strip().lower()
            aliases = {"afip": "delegated", "mock": "fixture", "afip_ws": "direct"}
            return aliases.get(value, value)
        return v


class Settings(BaseSettings):
    """Main settings class for the application."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        env_nested_delimiter="__",
    )

    # Application settings
    app_name: str = Field(default="Padron Gateway", description="Application name")
    app_version: str = Field(default="0.4.0", description="Application version")
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Environment the application is running in",
    )
    debug: bool = Field(default=True, description="Debug mode flag")

    # API settings
    api_host: str = Field(default="127.0.0.1", description="API host")
    api_port: int = Field(default=8000, description="API port")
    docs_url: str | None = Field(default="/docs", description="Swagger UI URL")
    openapi_url: str | None = Field(
        default="/openapi.json", description="OpenAPI schema URL"
    )

    log_config: LogConfig = Field(
        default_factory=LogConfig, description="Logging configuration"
    )
    observability_config: ObservabilityConfig = Field(
        default_factory=ObservabilityConfig, description="Observability configuration"
    )
    afip: AfipConfig = Field(
        default_factory=AfipConfig, description="AFIP web services configuration"
    )
    delegated_api: DelegatedApiConfig = Field(
        default_factory=DelegatedApiConfig, description="Delegated REST proxy"
    )
    cache: CacheConfig = Field(
        default_factory=CacheConfig, description="Shared cache configuration"
    )
    enrichment: EnrichmentConfig = Field(
        default_factory=EnrichmentConfig, description="Enrichment configuration"
    )

    def model_post_init(self, __context: object) -> None:
        """Post initialization to set environment-based defaults."""
        super().model_post_init(__context)

        if self.log_config.log_formatter_type is None:
            self.log_config.log_formatter_type = self._detect_formatter()

        if (
            self.environment == "production"
            and self.observability_config.trace_sample_rate == 1.0
        ):
            self.observability_config.trace_sample_rate = 0.1

    def _detect_formatter(self) -> Literal["console", "json", "gcp"]:
        """Auto-detect log formatter based on environment."""
        if os.getenv("K_SERVICE"):  # Cloud Run
            return "gcp"
        if self.environment == "development":
            return "console"
        return "json"

    @field_validator("docs_url", "openapi_url", mode="before")
    @classmethod
    def empty_str_to_none(cls, v: str | None) -> str | None:
        """Convert empty strings to None for nullable fields."""
        _ = cls
        if v == "":
            return None
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
