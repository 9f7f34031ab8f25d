"""HTTP surface of the Padron Gateway, built on FastAPI.

Key components:
- **main**: Application factory and lifecycle (builds and closes the
  shared HTTP client, cache and lookup pipeline)
- **routes**: Customer enrichment, raw registry lookups, health and info
- **middleware**: Correlation/actor context and centralized error handling
- **schemas**: Standardized error response body
- **utils**: orjson response class
"""
