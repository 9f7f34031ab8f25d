"""Request context middleware for correlation and lookup attribution.

Every request gets a correlation ID (taken from ``X-Correlation-ID`` or
generated) and an actor ID (taken from ``X-Actor-ID``, defaulting to the
system actor). Both are stored in contextvars so the enrichment orchestrator
and the audit trail can read them without threading them through every call,
and the correlation ID is bound to every log line emitted while serving the
request.
"""

from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from src.api.constants import (
    ACTOR_ID_HEADER,
    CORRELATION_ID_HEADER,
    MAX_ACTOR_ID_LENGTH,
)
from src.core.context import RequestContext, generate_correlation_id


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Sets correlation and actor IDs for the duration of a request."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Process the request with context management.

        Args:
            request: The incoming request.
            call_next: The next middleware/endpoint.

        Returns:
            Response: Response with correlation ID header.
        """
        correlation_id = (
            request.headers.get(CORRELATION_ID_HEADER) or generate_correlation_id()
        )
        RequestContext.set_correlation_id(correlation_id)

        actor_id = (request.headers.get(ACTOR_ID_HEADER) or "").strip()
        if actor_id:
            RequestContext.set_actor_id(actor_id[:MAX_ACTOR_ID_LENGTH])

        with logger.contextualize(correlation_id=correlation_id):
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = correlation_id
            return response
