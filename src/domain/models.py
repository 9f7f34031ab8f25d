"""Pydantic models shared by the lookup pipeline.

All models are frozen: a new lookup produces a new record instead of
patching an old one, and a renewed ticket supersedes the previous one.
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.core.constants import SYSTEM_ACTOR_ID
from src.domain.cuit import DocType, IvaCondition


class FrozenModel(BaseModel):
    """Base for immutable value objects."""

    model_config = ConfigDict(frozen=True)


class TrustTicket(FrozenModel):
    """A WSAA login ticket (Ticket de Acceso)."""

    access_token: str = Field(..., min_length=1, description="WSAA token")
    signature: str = Field(..., min_length=1, description="WSAA sign")
    expires_at: datetime | None = Field(
        default=None, description="Expiration reported by WSAA"
    )

    def to_cache(self) -> dict[str, Any]:
        """Serialize with the field names WSAA itself uses."""
        return {
            "token": self.access_token,
            "sign": self.signature,
            "expiration": self.expires_at.isoformat() if self.expires_at else None,
        }

    @classmethod
    def from_cache(cls, data: dict[str, Any]) -> "TrustTicket":
        """Rebuild a ticket from its cached representation."""
        return cls(
            access_token=data["token"],
            signature=data["sign"],
            expires_at=data.get("expiration"),
        )


class FiscalAddress(FrozenModel):
    """Domicilio fiscal as reported by the registry."""

    street: str = ""
    number: str = ""
    floor: str = ""
    unit: str = ""
    locality: str = ""
    province: str = ""
    postal_code: str = ""


class Activity(FrozenModel):
    """An economic activity registered for the taxpayer."""

    code: str = ""
    description: str = ""


class PersonaRecord(FrozenModel):
    """Normalized Padron A5 taxpayer record."""

    tax_id: str
    legal_name: str = ""
    fiscal_status: str = ""
    fiscal_address: FiscalAddress = Field(default_factory=FiscalAddress)
    activities: list[Activity] = Field(default_factory=list)
    taxes: list[str] = Field(default_factory=list)
    regimes: list[str] = Field(default_factory=list)


class CustomerAddress(FrozenModel):
    """Address shape used for customer records."""

    street: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""


class PersonaSummary(FrozenModel):
    """What every lookup strategy returns for a known taxpayer.

    ``iva_condition`` is the provider's own wording; the orchestrator maps it
    to a canonical category.
    """

    name: str = ""
    iva_condition: str = ""
    address: CustomerAddress = Field(default_factory=CustomerAddress)
    source: str


class NormalizedCustomerRecord(FrozenModel):
    """Public result of a customer enrichment lookup."""

    doc_type: DocType
    doc_number: str
    name: str
    iva_condition: IvaCondition
    address: CustomerAddress
    source: str
    fetched_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class Actor(FrozenModel):
    """Who requested a lookup."""

    id: str = SYSTEM_ACTOR_ID


class AuditRecord(FrozenModel):
    """One entry of the lookup audit trail."""

    actor_id: str
    tax_id: str
    source: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
