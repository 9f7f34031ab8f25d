"""Global exception handlers for the FastAPI application.

Gateway errors carry their own HTTP-equivalent ``status_code`` (400 invalid
CUIT, 404 unknown taxpayer, 429 throttled, 502 provider down, 500
misconfiguration); these handlers only render them. Every failure leaves as an
``ErrorResponse`` body whose details have been through the sanitizer, so WSAA
tokens and signatures never reach a client.
"""

import traceback
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import Response
from loguru import logger
from starlette.exceptions import HTTPException

from src.api.schemas.errors import ErrorResponse, ServiceInfo
from src.api.utils.responses import ORJSONResponse
from src.core.config import Settings, get_settings
from src.core.context import RequestContext, generate_request_id
from src.core.error_context import sanitize_dict, sanitize_error_context
from src.core.exceptions import ErrorCode, PadronGatewayError


def get_service_info(settings: Settings) -> ServiceInfo:
    """Service metadata attached to every error body."""
    return ServiceInfo(
        name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )


def render_error(
    status_code: int,
    error_code: str,
    message: str,
    severity: str,
    *,
    details: dict[str, Any] | None = None,
    debug_info: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> ORJSONResponse:
    """Build the uniform error body for the current request."""
    settings = get_settings()
    error_response = ErrorResponse(
        error_code=error_code,
        message=message,
        details=details,
        correlation_id=RequestContext.get_correlation_id(),
        request_id=generate_request_id(),
        severity=severity,
        service_info=get_service_info(settings),
        debug_info=debug_info if settings.environment == "development" else None,
    )
    return ORJSONResponse(
        status_code=status_code,
        content=error_response.model_dump(mode="json"),
        headers=headers,
    )


async def gateway_error_handler(request: Request, exc: Exception) -> Response:
    """Render a ``PadronGatewayError`` with its own status and severity.

    Raises:
        TypeError: If exc is not a PadronGatewayError instance
    """
    if not isinstance(exc, PadronGatewayError):
        raise TypeError(f"Expected PadronGatewayError, got {type(exc).__name__}")

    error_context = sanitize_error_context(
        exc,
        {
            "request_method": request.method,
            "request_path": str(request.url.path),
        },
    )
    log = logger.error if exc.should_alert else logger.warning
    log(
        "Lookup failed with {}: {}",
        exc.error_code,
        exc.message,
        status_code=exc.status_code,
        retryable=exc.retryable,
        fingerprint=exc.fingerprint,
        **error_context,
    )

    debug_info: dict[str, Any] = {
        "stack_trace": exc.stack_trace,
        "exception_type": type(exc).__name__,
    }
    if exc.cause:
        debug_info["cause"] = {
            "type": type(exc.cause).__name__,
            "message": str(exc.cause),
        }

    return render_error(
        exc.status_code,
        exc.error_code,
        exc.message,
        exc.severity.value,
        details=sanitize_dict(exc.context) if exc.context else None,
        debug_info=debug_info,
    )


async def validation_error_handler(request: Request, exc: Exception) -> Response:
    """Render request validation failures grouped by parameter name.

    Raises:
        TypeError: If exc is not a RequestValidationError instance
    """
    if not isinstance(exc, RequestValidationError):
        raise TypeError(f"Expected RequestValidationError, got {type(exc).__name__}")

    # ['query', 'cuit'] -> 'cuit'
    field_errors: dict[str, list[str]] = {}
    for error in exc.errors():
        field_name = ".".join(str(loc) for loc in error.get("loc", ())[1:]) or "root"
        field_errors.setdefault(field_name, []).append(
            error.get("msg", "Invalid value")
        )

    logger.warning(
        "Request validation failed",
        path=str(request.url.path),
        validation_errors=field_errors,
    )

    return render_error(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        ErrorCode.VALIDATION_ERROR.value,
        "Request validation failed",
        "LOW",
        details={"validation_errors": field_errors},
    )


async def http_exception_handler(request: Request, exc: Exception) -> Response:
    """Render routing errors (unknown path, wrong method).

    Raises:
        TypeError: If exc is not an HTTPException instance
    """
    if not isinstance(exc, HTTPException):
        raise TypeError(f"Expected HTTPException, got {type(exc).__name__}")

    if exc.status_code == status.HTTP_404_NOT_FOUND:
        error_code, severity = ErrorCode.NOT_FOUND.value, "LOW"
    elif exc.status_code < status.HTTP_500_INTERNAL_SERVER_ERROR:
        error_code, severity = ErrorCode.VALIDATION_ERROR.value, "LOW"
    else:
        error_code, severity = ErrorCode.INTERNAL_ERROR.value, "HIGH"

    logger.warning(
        "HTTP {} on {} {}",
        exc.status_code,
        request.method,
        request.url.path,
        detail=exc.detail,
    )

    return render_error(
        exc.status_code,
        error_code,
        str(exc.detail),
        severity,
        headers=getattr(exc, "headers", None),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> Response:
    """Render anything unexpected as a 500; production hides what went wrong."""
    logger.opt(exception=exc).error(
        "Unhandled exception: {}",
        type(exc).__name__,
        request_method=request.method,
        request_path=str(request.url.path),
    )

    if get_settings().environment == "production":
        return render_error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            ErrorCode.INTERNAL_ERROR.value,
            "An internal server error occurred",
            "CRITICAL",
        )

    return render_error(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        ErrorCode.INTERNAL_ERROR.value,
        f"Internal server error: {type(exc).__name__}",
        "CRITICAL",
        details={"error": str(exc), "type": type(exc).__name__},
        debug_info={
            "stack_trace": traceback.format_tb(exc.__traceback__),
            "exception_type": type(exc).__name__,
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application."""
    app.add_exception_handler(PadronGatewayError, gateway_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    logger.info("Exception handlers registered")
