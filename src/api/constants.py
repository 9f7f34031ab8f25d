"""API-related constants."""

# HTTP Headers
CORRELATION_ID_HEADER = "X-Correlation-ID"
ACTOR_ID_HEADER = "X-Actor-ID"

# Routing
API_V1_PREFIX = "/api/v1"

# Longest actor identifier accepted from the header
MAX_ACTOR_ID_LENGTH = 128
