"""Versioned lookup endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, Response, status

from src.api.constants import API_V1_PREFIX
from src.api.schemas.errors import ErrorResponse
from src.domain.models import NormalizedCustomerRecord, PersonaRecord
from src.services.factory import Services

router = APIRouter(prefix=API_V1_PREFIX)


def get_services(request: Request) -> Services:
    """Return the lookup pipeline built at startup."""
    services: Services = request.app.state.services
    return services


@router.get(
    "/customers/enrich",
    tags=["customers"],
    response_model=NormalizedCustomerRecord,
    responses={
        status.HTTP_204_NO_CONTENT: {"description": "Taxpayer not found"},
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_429_TOO_MANY_REQUESTS: {"model": ErrorResponse},
        status.HTTP_502_BAD_GATEWAY: {"model": ErrorResponse},
    },
)
async def enrich_customer(
    services: Annotated[Services, Depends(get_services)],
    cuit: Annotated[
        str, Query(description="CUIT/CUIL, with or without dashes", max_length=32)
    ] = "",
) -> NormalizedCustomerRecord | Response:
    """Look up a customer's fiscal identity by CUIT/CUIL.

    The lookup is attributed to the ``X-Actor-ID`` header when present.
    """
    record = await services.orchestrator.enrich_by_tax_id(cuit)
    if record is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return record


@router.get(
    "/padron/{cuit}",
    tags=["padron"],
    response_model=PersonaRecord,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
        status.HTTP_502_BAD_GATEWAY: {"model": ErrorResponse},
    },
)
async def get_padron_record(
    cuit: str, services: Annotated[Services, Depends(get_services)]
) -> PersonaRecord:
    """Return the full Padron A5 record, queried directly with a WSAA ticket."""
    return await services.persona_service.get_persona(cuit)
