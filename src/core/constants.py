"""Core application constants."""

# Time constants
MILLISECONDS_PER_SECOND = 1000

# Security and redaction
REDACTED = "[REDACTED]"

# Cache key namespaces
TICKET_CACHE_KEY_PREFIX = "afip:ta"
RESULT_CACHE_KEY_PREFIX = "padron"
PERSONA_CACHE_KEY_PREFIX = "afip:a5:persona"

# Result sources
SOURCE_CACHE = "CACHE"
SOURCE_DIRECT = "AFIP_A5_DIRECT"
SOURCE_DELEGATED = "AFIP_PADRON"
SOURCE_FIXTURE = "FIXTURE"

# Actor used when a lookup is not attributed to a user
SYSTEM_ACTOR_ID = "system"
