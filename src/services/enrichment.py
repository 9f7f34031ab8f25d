"""Customer enrichment: resilient, cached taxpayer lookups by CUIT/CUIL.

``EnrichmentOrchestrator.enrich_by_tax_id`` is the public entry point. A
lookup moves through these states::

    VALIDATING -> CACHE_CHECK -> LOOKUP_ATTEMPT (up to max_attempts)
               -> NORMALIZE -> CACHE_WRITE -> DONE

with ``REJECTED`` (invalid input) and ``UNAVAILABLE`` (attempts exhausted) as
failure terminals. Callers only ever see a record, ``None`` (unknown
taxpayer), ``InvalidInputError``, ``RateLimitedError`` or
``ProviderUnavailableError``.
"""

import asyncio
import random
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from enum import Enum

from loguru import logger
from pydantic import ValidationError

from src.core.config import EnrichmentConfig
from src.core.constants import (
    MILLISECONDS_PER_SECOND,
    RESULT_CACHE_KEY_PREFIX,
    SOURCE_CACHE,
)
from src.core.context import RequestContext
from src.core.exceptions import (
    InvalidInputError,
    PadronGatewayError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    RateLimitedError,
)
from src.core.observability import trace_operation
from src.domain import cuit
from src.domain.models import (
    Actor,
    AuditRecord,
    NormalizedCustomerRecord,
    PersonaSummary,
)
from src.infrastructure.cache import CacheStore
from src.services.audit import AuditSink, LoguruAuditSink
from src.services.strategies import LookupStrategy

type SleepFunc = Callable[[float], Awaitable[None]]
type JitterFunc = Callable[[float, float], float]


class LookupState(Enum):
    """States of a single enrichment lookup."""

    VALIDATING = "VALIDATING"
    CACHE_CHECK = "CACHE_CHECK"
    LOOKUP_ATTEMPT = "LOOKUP_ATTEMPT"
    NORMALIZE = "NORMALIZE"
    CACHE_WRITE = "CACHE_WRITE"
    DONE = "DONE"
    REJECTED = "REJECTED"
    UNAVAILABLE = "UNAVAILABLE"


def result_cache_key(tax_id: str) -> str:
    """Cache key for a normalized customer record."""
    return f"{RESULT_CACHE_KEY_PREFIX}:{tax_id}"


class EnrichmentOrchestrator:
    """Validates, caches, retries and normalizes taxpayer lookups.

    Args:
        strategy: Lookup strategy, selected once at construction.
        cache: Shared cache collaborator.
        config: Retry, backoff and TTL settings.
        audit_sink: Receives one record per served lookup.
        sleep: Awaitable sleep used between attempts.
        jitter: ``(low, high) -> float`` random source for backoff jitter.
        clock: Current time, stamped on fresh records.
    """

    def __init__(
        self,
        strategy: LookupStrategy,
        cache: CacheStore,
        config: EnrichmentConfig,
        audit_sink: AuditSink | None = None,
        *,
        sleep: SleepFunc = asyncio.sleep,
        jitter: JitterFunc = random.uniform,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.strategy = strategy
        self.cache = cache
        self.config = config
        self.audit_sink = audit_sink or LoguruAuditSink()
        self._sleep = sleep
        self._jitter = jitter
        self._clock = clock or (lambda: datetime.now(UTC))
        self._in_flight: dict[
            str, asyncio.Future[NormalizedCustomerRecord | None]
        ] = {}

    async def enrich_by_tax_id(
        self, raw: object, actor: Actor | None = None
    ) -> NormalizedCustomerRecord | None:
        """Look up a taxpayer by CUIT/CUIL.

        Args:
            raw: CUIT/CUIL with or without mask.
            actor: Who asked; defaults to the actor of the current request.

        Returns:
            NormalizedCustomerRecord | None: The record, or None when the
            provider does not know the taxpayer.

        Raises:
            InvalidInputError: Malformed identifier (no I/O is performed).
            RateLimitedError: The provider kept throttling until attempts ran out.
            ProviderUnavailableError: Attempts ran out for any other reason.
        """
        self._transition(LookupState.VALIDATING)
        if not cuit.is_valid(raw):
            self._transition(LookupState.REJECTED)
            raise InvalidInputError(
                "Invalid CUIT/CUIL", context={"input": str(raw)[:32]}
            )

        tax_id = cuit.normalize(raw)
        actor = actor or Actor(id=RequestContext.get_actor_id())

        with logger.contextualize(
            cuit=tax_id, provider=self.strategy.source, actor_id=actor.id
        ):
            self._transition(LookupState.CACHE_CHECK)
            cached = await self._read_cached(tax_id)
            if cached is not None:
                self._transition(LookupState.DONE, cache_hit=True)
                await self._audit(actor, tax_id, SOURCE_CACHE)
                return cached

            record = await self._coalesced_lookup(tax_id)
            if record is not None:
                await self._audit(actor, tax_id, record.source)
            return record

    async def _coalesced_lookup(self, tax_id: str) -> NormalizedCustomerRecord | None:
        """Share one in-flight lookup between concurrent callers for a CUIT."""
        future = self._in_flight.get(tax_id)
        if future is None:
            future = asyncio.ensure_future(self._lookup_and_store(tax_id))
            self._in_flight[tax_id] = future
            future.add_done_callback(lambda f: self._forget(tax_id, f))
        else:
            logger.debug("Joining in-flight lookup")
        # One caller being cancelled must not cancel the others
        return await asyncio.shield(future)

    def _forget(
        self, tax_id: str, future: asyncio.Future[NormalizedCustomerRecord | None]
    ) -> None:
        if self._in_flight.get(tax_id) is future:
            del self._in_flight[tax_id]

    async def _lookup_and_store(self, tax_id: str) -> NormalizedCustomerRecord | None:
        last_error: Exception | None = None
        max_attempts = self.config.max_attempts

        for attempt in range(max_attempts):
            self._transition(LookupState.LOOKUP_ATTEMPT, attempt=attempt + 1)
            try:
                summary = await self._attempt(tax_id, attempt + 1)
            except PadronGatewayError as e:
                last_error = e
                logger.warning(
                    "Lookup attempt failed: {}",
                    e,
                    attempt=attempt + 1,
                    error_code=e.error_code,
                    status_code=e.status_code,
                )
                if not e.retryable:
                    break
            except Exception as e:
                last_error = e
                logger.opt(exception=e).error(
                    "Unexpected lookup failure", attempt=attempt + 1
                )
            else:
                if summary is None:
                    self._transition(LookupState.DONE, found=False)
                    return None
                return await self._normalize_and_store(tax_id, summary)

            if attempt + 1 < max_attempts:
                await self._sleep(self.backoff_delay(attempt))

        self._transition(LookupState.UNAVAILABLE)
        raise self._exhausted_error(tax_id, last_error)

    async def _attempt(self, tax_id: str, attempt: int) -> PersonaSummary | None:
        with trace_operation(
            "enrichment.lookup_attempt",
            cuit=tax_id,
            attempt=attempt,
            provider=self.strategy.source,
        ):
            try:
                async with asyncio.timeout(self.config.attempt_timeout_seconds):
                    return await self.strategy.lookup_by_tax_id(tax_id)
            except TimeoutError as e:
                raise ProviderTimeoutError(
                    "Lookup attempt timed out",
                    context={
                        "cuit": tax_id,
                        "timeout_seconds": self.config.attempt_timeout_seconds,
                    },
                    cause=e,
                ) from e

    def backoff_delay(self, attempt: int) -> float:
        """Seconds to wait after the zero-based ``attempt`` failed.

        ``base_delay * 2**attempt`` plus uniform jitter in ``[0, jitter_ms]``.
        """
        delay_ms = self.config.base_delay_ms * 2**attempt + self._jitter(
            0, self.config.jitter_ms
        )
        return delay_ms / MILLISECONDS_PER_SECOND

    def _exhausted_error(
        self, tax_id: str, last_error: Exception | None
    ) -> PadronGatewayError:
        context = {"cuit": tax_id, "attempts": self.config.max_attempts}
        if isinstance(last_error, PadronGatewayError):
            context["last_error_code"] = last_error.error_code
            if last_error.status_code == RateLimitedError.status_code:
                return RateLimitedError(
                    "Padron provider rate limit reached",
                    context=context,
                    cause=last_error,
                )
        return ProviderUnavailableError(
            "Padron provider unavailable", context=context, cause=last_error
        )

    async def _normalize_and_store(
        self, tax_id: str, summary: PersonaSummary
    ) -> NormalizedCustomerRecord:
        self._transition(LookupState.NORMALIZE)
        record = NormalizedCustomerRecord(
            doc_type=cuit.classify(tax_id),
            doc_number=tax_id,
            name=summary.name,
            iva_condition=cuit.normalize_fiscal_status(summary.iva_condition) or "CF",
            address=summary.address,
            source=summary.source,
            fetched_at=self._clock(),
        )

        self._transition(LookupState.CACHE_WRITE)
        await self.cache.set(
            result_cache_key(tax_id),
            record.model_dump_json(),
            self.config.cache_ttl_seconds,
        )

        self._transition(LookupState.DONE, found=True, source=record.source)
        return record

    async def _read_cached(self, tax_id: str) -> NormalizedCustomerRecord | None:
        raw = await self.cache.get(result_cache_key(tax_id))
        if raw is None:
            return None
        try:
            record = NormalizedCustomerRecord.model_validate_json(raw)
        except ValidationError:
            logger.warning("Ignoring unreadable cached record")
            return None
        return record.model_copy(update={"source": SOURCE_CACHE})

    async def _audit(self, actor: Actor, tax_id: str, source: str) -> None:
        entry = AuditRecord(
            actor_id=actor.id, tax_id=tax_id, source=source, timestamp=self._clock()
        )
        try:
            await self.audit_sink.record(entry)
        except Exception as e:
            logger.opt(exception=e).warning("Audit sink failed")

    @staticmethod
    def _transition(state: LookupState, **context: object) -> None:
        logger.debug("Lookup state {}", state.value, state=state.value, **context)
