"""Request context management for correlation IDs and lookup attribution."""

import uuid
from contextvars import ContextVar

from src.core.constants import SYSTEM_ACTOR_ID

# Context variables survive across await points within one task
_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)
_actor_id_var: ContextVar[str | None] = ContextVar("actor_id", default=None)


class RequestContext:
    """Manages request context using contextvars for async-safe storage.

    The correlation ID ties together every log line and span produced while
    serving one request; the actor ID records who asked for a lookup so the
    audit trail can attribute it.
    """

    @staticmethod
    def set_correlation_id(correlation_id: str) -> None:
        """Set the correlation ID for the current context.

        Args:
            correlation_id: The correlation ID to store in the context.
        """
        _correlation_id_var.set(correlation_id)

    @staticmethod
    def get_correlation_id() -> str | None:
        """Get the correlation ID from the current context.

        Returns:
            str | None: The correlation ID if set, None otherwise.
        """
        return _correlation_id_var.get()

    @staticmethod
    def set_actor_id(actor_id: str) -> None:
        """Set the actor ID for the current context."""
        _actor_id_var.set(actor_id)

    @staticmethod
    def get_actor_id() -> str:
        """Get the actor ID, falling back to the system actor."""
        return _actor_id_var.get() or SYSTEM_ACTOR_ID

    @staticmethod
    def clear() -> None:
        """Clear all context variables."""
        _correlation_id_var.set(None)
        _actor_id_var.set(None)


def generate_correlation_id() -> str:
    """Generate a unique correlation ID for request tracking.

    Returns:
        str: A string representation of a UUID4.
    """
    return str(uuid.uuid4())


def generate_request_id() -> str:
    """Generate a unique request ID for individual request tracking.

    Returns:
        str: A prefixed UUID4 string in format 'req-<uuid4>'.
    """
    return f"req-{uuid.uuid4()}"
