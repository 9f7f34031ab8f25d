"""Type aliases for dynamic data structures throughout the application."""

from typing import Any

# Context dictionary for error details and debugging information
type ErrorContext = dict[str, Any]

# Raw payload returned by the delegated REST proxy
type ProviderPayload = dict[str, Any]
