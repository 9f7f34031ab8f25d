"""Raw registry record lookups with a long-lived cache."""

from loguru import logger
from pydantic import ValidationError

from src.core.config import AfipConfig
from src.core.constants import PERSONA_CACHE_KEY_PREFIX
from src.core.exceptions import InvalidInputError
from src.domain import cuit
from src.domain.models import PersonaRecord
from src.infrastructure.cache import CacheStore
from src.services.strategies import DirectLookupStrategy


def persona_cache_key(tax_id: str) -> str:
    """Cache key for a raw registry record."""
    return f"{PERSONA_CACHE_KEY_PREFIX}:{tax_id}"


class PersonaService:
    """Serves full Padron A5 records, always through the direct path.

    Registry data changes rarely, so records are cached for a day by default
    (``AFIP__PERSONA_CACHE_TTL_SECONDS``).
    """

    def __init__(
        self, direct: DirectLookupStrategy, cache: CacheStore, config: AfipConfig
    ) -> None:
        self.direct = direct
        self.cache = cache
        self.config = config

    async def get_persona(self, raw: object) -> PersonaRecord:
        """Return the registry record for a CUIT/CUIL.

        Raises:
            InvalidInputError: Malformed identifier.
            PersonaNotFoundError: Unknown taxpayer.
            PadronGatewayError: Ticket or registry failure.
        """
        if not cuit.is_valid(raw):
            raise InvalidInputError(
                "Invalid CUIT/CUIL", context={"input": str(raw)[:32]}
            )
        tax_id = cuit.normalize(raw)
        key = persona_cache_key(tax_id)

        cached = await self.cache.get(key)
        if cached is not None:
            try:
                return PersonaRecord.model_validate_json(cached)
            except ValidationError:
                logger.warning("Ignoring unreadable cached persona", cuit=tax_id)

        record = await self.direct.fetch_persona(tax_id)
        await self.cache.set(
            key, record.model_dump_json(), self.config.persona_cache_ttl_seconds
        )
        return record
