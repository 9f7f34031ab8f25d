"""Trust ticket cache with single-flight acquisition.

WSAA refuses to issue a new ticket while a previous one for the same service
is still valid, so concurrent requests must never race to log in. The first
caller on a cold cache acquires the ticket under a lock; everyone waiting on
the lock re-reads the cache and reuses it.
"""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Protocol

import orjson
from loguru import logger
from pydantic import ValidationError

from src.core.config import AfipConfig
from src.core.constants import TICKET_CACHE_KEY_PREFIX
from src.domain.models import TrustTicket
from src.infrastructure.cache import CacheStore


class TicketSource(Protocol):
    """Anything that can acquire a fresh ticket (normally ``WsaaClient``)."""

    async def login(self) -> TrustTicket:
        """Acquire a new ticket."""
        ...


def compute_ticket_ttl(
    expires_at: datetime | None,
    now: datetime,
    *,
    safety_margin_seconds: int = 60,
    min_ttl_seconds: int = 30,
    fallback_ttl_seconds: int = 3600,
) -> int:
    """Seconds a ticket may be cached.

    Args:
        expires_at: Expiration reported by WSAA, if any.
        now: Current time.
        safety_margin_seconds: Subtracted from the remaining lifetime.
        min_ttl_seconds: Floor for the result.
        fallback_ttl_seconds: Used when there is no expiration.

    Returns:
        int: ``max(expires_at - now - margin, floor)`` or the fallback.

    Example:
        >>> now = datetime(2026, 1, 1, tzinfo=UTC)
        >>> compute_ticket_ttl(now + timedelta(hours=1), now)
        3540
    """
    if expires_at is None:
        return fallback_ttl_seconds
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=UTC)
    remaining = int((expires_at - now).total_seconds())
    return max(remaining - safety_margin_seconds, min_ttl_seconds)


class TicketCache:
    """Hands out valid trust tickets, acquiring one only when needed.

    The shared cache is the source of truth across workers. An in-process
    memo of the last acquired ticket keeps the service working when the cache
    backend is unreachable.
    """

    def __init__(
        self,
        cache: CacheStore,
        source: TicketSource,
        config: AfipConfig,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.cache = cache
        self.source = source
        self.config = config
        self.key = f"{TICKET_CACHE_KEY_PREFIX}:{config.service}"
        self._clock = clock or (lambda: datetime.now(UTC))
        self._lock = asyncio.Lock()
        self._memo: TrustTicket | None = None
        self._memo_expires_at: datetime | None = None
        self._issued: TrustTicket | None = None
        self._rejected_token: str | None = None
        self.acquisitions = 0

    async def get_valid_ticket(self) -> TrustTicket:
        """Return a cached ticket or acquire, cache and return a new one.

        Raises:
            PadronGatewayError: Whatever the ticket source raises on acquisition.
        """
        ticket = await self._lookup()
        if ticket is None:
            async with self._lock:
                ticket = await self._lookup() or await self._acquire()
        self._issued = ticket
        return ticket

    def invalidate(self) -> None:
        """Drop the current ticket after the registry rejected it.

        The last ticket handed out, whether acquired here or read from the
        shared cache, is ignored from now on, so the next call acquires a new
        one.
        """
        if self._issued is not None:
            logger.info("Invalidating WSAA ticket", service=self.config.service)
            self._rejected_token = self._issued.access_token
        self._issued = None
        self._memo = None
        self._memo_expires_at = None

    async def _lookup(self) -> TrustTicket | None:
        if (
            self._memo is not None
            and self._memo_expires_at is not None
            and self._clock() < self._memo_expires_at
        ):
            return self._memo

        raw = await self.cache.get(self.key)
        if raw is None:
            return None
        try:
            ticket = TrustTicket.from_cache(orjson.loads(raw))
        except (orjson.JSONDecodeError, KeyError, TypeError, ValidationError) as e:
            logger.warning(
                "Ignoring unreadable cached ticket: {}",
                type(e).__name__,
                cache_key=self.key,
            )
            return None
        if ticket.access_token == self._rejected_token:
            return None
        return ticket

    async def _acquire(self) -> TrustTicket:
        self.acquisitions += 1
        ticket = await self.source.login()

        now = self._clock()
        ttl = compute_ticket_ttl(
            ticket.expires_at,
            now,
            safety_margin_seconds=self.config.ticket_safety_margin_seconds,
            min_ttl_seconds=self.config.ticket_min_ttl_seconds,
            fallback_ttl_seconds=self.config.ticket_fallback_ttl_seconds,
        )
        self._memo = ticket
        self._memo_expires_at = now + timedelta(seconds=ttl)

        stored = await self.cache.set(
            self.key, orjson.dumps(ticket.to_cache()).decode(), ttl
        )
        logger.debug(
            "Cached WSAA ticket",
            cache_key=self.key,
            ttl_seconds=ttl,
            stored=stored,
        )
        return ticket
