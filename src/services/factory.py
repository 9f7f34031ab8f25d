"""Composition root: builds the lookup pipeline from settings.

The provider is resolved here, once. Nothing downstream re-reads the
environment to decide which strategy to use.
"""

import httpx
from loguru import logger

from src.core.config import LookupProvider, Settings
from src.infrastructure.afip.padron import PadronClient
from src.infrastructure.afip.signer import CmsSigner, OpenSSLCmsSigner, TicketSigner
from src.infrastructure.afip.ticket_cache import TicketCache
from src.infrastructure.afip.wsaa import WsaaClient
from src.infrastructure.cache import CacheStore, create_cache_store
from src.infrastructure.http import build_async_client
from src.services.audit import AuditSink
from src.services.enrichment import EnrichmentOrchestrator
from src.services.persona import PersonaService
from src.services.strategies import (
    DelegatedLookupStrategy,
    DirectLookupStrategy,
    FixtureLookupStrategy,
    LookupStrategy,
)


class Services:
    """Long-lived objects shared by every request."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        cache: CacheStore,
        ticket_cache: TicketCache,
        orchestrator: EnrichmentOrchestrator,
        persona_service: PersonaService,
    ) -> None:
        self.http_client = http_client
        self.cache = cache
        self.ticket_cache = ticket_cache
        self.orchestrator = orchestrator
        self.persona_service = persona_service

    async def aclose(self) -> None:
        """Close network resources."""
        await self.http_client.aclose()
        await self.cache.close()


def build_strategy(
    provider: LookupProvider,
    *,
    settings: Settings,
    http_client: httpx.AsyncClient,
    direct: DirectLookupStrategy,
) -> LookupStrategy:
    """Pick the lookup strategy for ``provider``."""
    if provider == LookupProvider.DIRECT:
        return direct
    if provider == LookupProvider.DELEGATED:
        return DelegatedLookupStrategy(http_client, settings.delegated_api)
    return FixtureLookupStrategy()


def build_services(
    settings: Settings,
    *,
    http_client: httpx.AsyncClient | None = None,
    cache: CacheStore | None = None,
    cms_signer: CmsSigner | None = None,
    audit_sink: AuditSink | None = None,
) -> Services:
    """Wire the cache, AFIP clients, strategy and orchestrator.

    Every collaborator can be injected; the defaults come from ``settings``.

    Args:
        settings: Application settings.
        http_client: Shared outbound client.
        cache: Cache backend.
        cms_signer: Signing capability for WSAA login requests.
        audit_sink: Destination of lookup audit records.

    Returns:
        Services: The wired object graph.
    """
    afip = settings.afip
    if http_client is None:
        http_client = build_async_client(
            settings, timeout_seconds=afip.request_timeout_seconds
        )
    # an empty in-memory store is falsy
    if cache is None:
        cache = create_cache_store(settings.cache)
    if cms_signer is None:
        cms_signer = OpenSSLCmsSigner(
            afip.openssl_binary, afip.signing_timeout_seconds
        )

    wsaa_client = WsaaClient(http_client, TicketSigner(afip, cms_signer), afip)
    ticket_cache = TicketCache(cache, wsaa_client, afip)
    direct = DirectLookupStrategy(ticket_cache, PadronClient(http_client, afip))

    provider = settings.enrichment.provider
    strategy = build_strategy(
        provider, settings=settings, http_client=http_client, direct=direct
    )
    logger.info(
        "Lookup strategy selected",
        provider=provider.value,
        source=strategy.source,
        afip_environment=afip.environment,
    )

    return Services(
        http_client=http_client,
        cache=cache,
        ticket_cache=ticket_cache,
        orchestrator=EnrichmentOrchestrator(
            strategy, cache, settings.enrichment, audit_sink
        ),
        persona_service=PersonaService(direct, cache, afip),
    )
