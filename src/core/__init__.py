"""Core infrastructure package for shared application functionality.

- **config**: Centralized configuration management with environment support
- **constants**: Cache key namespaces, result sources and shared literals
- **context**: Correlation ID and actor attribution via contextvars
- **exceptions**: Error taxonomy with status tags and retry semantics
- **error_context**: Credential redaction for safe logging
- **logging**: Structured logging with Loguru
- **observability**: Distributed tracing with OpenTelemetry
- **types**: Type aliases for better code clarity
"""
