"""FastAPI middleware and exception handlers.

- **RequestContextMiddleware**: Correlation and actor IDs per request
- **error_handler**: Maps gateway errors to HTTP responses with a uniform body
"""
