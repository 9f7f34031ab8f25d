"""Standardized error response body.

Every error the API returns, whether raised by the lookup pipeline, by
request validation or by an unexpected failure, is rendered as an
``ErrorResponse`` so clients can branch on ``error_code`` and quote the
``correlation_id`` when reporting problems.
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field


class ServiceInfo(BaseModel):
    """Service that generated the error."""

    name: str = Field(
        ..., description="Name of the service", examples=["Padron Gateway"]
    )
    version: str = Field(..., description="Version of the service", examples=["0.4.0"])
    environment: str = Field(
        ...,
        description="Environment where the service is running",
        examples=["development", "staging", "production"],
    )


class ErrorResponse(BaseModel):
    """Error body returned for every non-2xx response."""

    error_code: str = Field(
        ...,
        description="Unique error code identifying the error type",
        examples=["INVALID_INPUT", "RATE_LIMITED", "PROVIDER_UNAVAILABLE"],
    )

    message: str = Field(
        ...,
        description="Human-readable error message",
        examples=["Invalid CUIT/CUIL", "Padron provider unavailable"],
    )

    details: dict[str, Any] | None = Field(
        default=None,
        description="Additional error details (sanitized)",
        examples=[{"cuit": "20304050609", "attempts": 3}],
    )

    correlation_id: str | None = Field(
        default=None,
        description="Request correlation ID for tracing and debugging",
        examples=["550e8400-e29b-41d4-a716-446655440000"],
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="Timestamp when the error occurred (with timezone)",
    )

    severity: str | None = Field(
        default=None,
        description="Error severity (LOW, MEDIUM, HIGH, CRITICAL)",
        examples=["LOW", "HIGH"],
    )

    service_info: ServiceInfo | None = Field(
        default=None,
        description="Information about the service that generated the error",
    )

    request_id: str | None = Field(
        default=None,
        description="Unique identifier of this response",
        examples=["req-660e8400-e29b-41d4-a716-446655440000"],
    )

    debug_info: dict[str, Any] | None = Field(
        default=None,
        description="Debug information (only populated in development environments)",
    )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "error_code": "INVALID_INPUT",
                    "message": "Invalid CUIT/CUIL",
                    "details": {"input": "123"},
                    "correlation_id": "550e8400-e29b-41d4-a716-446655440000",
                    "timestamp": "2026-06-14T12:00:00+00:00",
                    "severity": "LOW",
                },
                {
                    "error_code": "PROVIDER_UNAVAILABLE",
                    "message": "Padron provider unavailable",
                    "details": {"cuit": "20304050609", "attempts": 3},
                    "correlation_id": "550e8400-e29b-41d4-a716-446655440001",
                    "timestamp": "2026-06-14T12:00:01+00:00",
                    "severity": "HIGH",
                    "service_info": {
                        "name": "Padron Gateway",
                        "version": "0.4.0",
                        "environment": "production",
                    },
                },
            ]
        }
    }
