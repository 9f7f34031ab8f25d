"""Audit trail of taxpayer lookups."""

from typing import Protocol

from loguru import logger

from src.domain.models import AuditRecord


class AuditSink(Protocol):
    """Receives one record per served lookup."""

    async def record(self, entry: AuditRecord) -> None:
        """Persist or forward an audit record."""
        ...


class LoguruAuditSink:
    """Writes audit records as structured log lines tagged ``audit=True``.

    Downstream log routing can filter on the ``audit`` field to ship these
    lines to long-term storage.
    """

    async def record(self, entry: AuditRecord) -> None:
        logger.bind(
            audit=True,
            actor_id=entry.actor_id,
            cuit=entry.tax_id,
            source=entry.source,
            at=entry.timestamp.isoformat(),
        ).info("Taxpayer lookup served")
