"""Structured exception hierarchy for the Padron Gateway.

Every failure the gateway can produce is a ``PadronGatewayError`` carrying an
``ErrorCode``, a ``Severity``, an HTTP-equivalent ``status_code`` tag and a
``retryable`` flag. The tag is what callers of the enrichment entry point
branch on (400, 429, 502); the flag is what the retry loop consults.

Key components:
- **ErrorCode enum**: Standardized error identifiers for programmatic handling
- **Severity enum**: Error classification for monitoring and alerting
- **PadronGatewayError**: Base exception with rich context and fingerprinting
- **Public taxonomy**: InvalidInputError, RateLimitedError,
  ProviderUnavailableError, the only errors surfaced by the orchestrator
- **Provider internals**: ProviderError and its subclasses raised by the
  WSAA/Padron clients and lookup strategies, later mapped to the public taxonomy
"""

import hashlib
import traceback
from enum import Enum

from src.core.types import ErrorContext

FINGERPRINT_FRAMES = 5


class ErrorCode(Enum):
    """Standardized error codes for the Padron Gateway."""

    # System errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    """An unexpected internal error occurred in the system."""

    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    """The gateway is misconfigured (missing certificate, signer unavailable)."""

    # Input errors
    INVALID_INPUT = "INVALID_INPUT"
    """The tax identifier is malformed or fails its check digit."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    """Request validation failed due to invalid or malformed data."""

    # Resource errors
    NOT_FOUND = "NOT_FOUND"
    """The registry has no record for the requested identifier."""

    # Provider errors
    RATE_LIMITED = "RATE_LIMITED"
    """The upstream provider throttled the request."""

    PROVIDER_UNAVAILABLE = "PROVIDER_UNAVAILABLE"
    """The upstream provider could not serve the request after retries."""

    PROVIDER_ERROR = "PROVIDER_ERROR"
    """The upstream provider returned an unusable response."""

    PROVIDER_TIMEOUT = "PROVIDER_TIMEOUT"
    """The upstream provider did not answer within the configured timeout."""

    SOAP_FAULT = "SOAP_FAULT"
    """The upstream SOAP service answered with a Fault element."""


class Severity(Enum):
    """Severity levels used to pick log levels and alerting."""

    LOW = "LOW"
    """Expected errors caused by caller input."""

    MEDIUM = "MEDIUM"
    """Degraded upstream behaviour that the system recovers from."""

    HIGH = "HIGH"
    """Upstream outages surfaced to callers."""

    CRITICAL = "CRITICAL"
    """Misconfiguration that prevents the gateway from working at all."""


class PadronGatewayError(Exception):
    """Base exception class for all Padron Gateway exceptions.

    Args:
        error_code: Unique identifier for the error type (string or ErrorCode enum)
        message: Human-readable error message
        severity: Severity level of the error (defaults to MEDIUM)
        context: Additional context information about the error
        cause: The original exception that caused this error
    """

    status_code: int = 500
    retryable: bool = False

    def __init__(
        self,
        error_code: str | ErrorCode,
        message: str,
        severity: Severity = Severity.MEDIUM,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.error_code = (
            error_code.value if isinstance(error_code, ErrorCode) else error_code
        )
        self.message = message
        self.severity = severity
        self.context = context or {}
        self.cause = cause

        # Capture stack trace at creation time
        self.stack_trace = traceback.format_stack()[:-1]

        self.fingerprint = self._generate_fingerprint()

        super().__init__(message)
        if cause:
            self.__cause__ = cause

    def _generate_fingerprint(self) -> str:
        """Hash of the error type, code and the last project frames that raised it.

        The same WSAA or Padron failure raised from the same call site always
        gets the same fingerprint, whatever the CUIT or message.
        """
        relevant_frames = self.stack_trace[-FINGERPRINT_FRAMES:]

        fingerprint_data = f"{self.__class__.__name__}:{self.error_code}"

        for frame in relevant_frames:
            if "site-packages" not in frame and "src/" in frame:
                lines = frame.strip().split("\n")
                if lines:
                    fingerprint_data += f":{lines[0]}"

        return hashlib.sha256(fingerprint_data.encode()).hexdigest()[:16]

    @property
    def is_expected(self) -> bool:
        """Whether the error occurs during normal operation (LOW or MEDIUM)."""
        return self.severity in (Severity.LOW, Severity.MEDIUM)

    @property
    def should_alert(self) -> bool:
        """Whether the error should trigger alerts (HIGH or CRITICAL)."""
        return self.severity in (Severity.HIGH, Severity.CRITICAL)

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        class_name = self.__class__.__name__
        context_str = f", context={self.context}" if self.context else ""
        return (
            f"{class_name}(error_code='{self.error_code}', "
            f"message='{self.message}', status_code={self.status_code}, "
            f"severity={self.severity.value}{context_str})"
        )


class InvalidInputError(PadronGatewayError):
    """Raised when a tax identifier fails format or checksum validation.

    Never retried: the same input always fails the same way.
    """

    status_code = 400

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.INVALID_INPUT,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.LOW, context, cause)


class RateLimitedError(PadronGatewayError):
    """Raised when the upstream provider throttles the gateway."""

    status_code = 429
    retryable = True

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.RATE_LIMITED,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.MEDIUM, context, cause)


class ProviderUnavailableError(PadronGatewayError):
    """Raised by the orchestrator when every lookup attempt failed."""

    status_code = 502
    retryable = True

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.PROVIDER_UNAVAILABLE,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.HIGH, context, cause)


class ProviderError(PadronGatewayError):
    """Raised by provider clients for transport or protocol failures.

    This is an internal error: the orchestrator retries it and surfaces
    ``ProviderUnavailableError`` once the attempt budget is spent.
    """

    status_code = 502
    retryable = True

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.PROVIDER_ERROR,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.MEDIUM, context, cause)


class ProviderTimeoutError(ProviderError):
    """Raised when a remote call exceeds its timeout."""

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.PROVIDER_TIMEOUT, context, cause)


class SoapFaultError(ProviderError):
    """Raised when a SOAP response carries a Fault element.

    Args:
        message: Description of the failing call
        fault_string: The ``faultstring`` (or ``faultcode``) sent by the service
        context: Additional context information about the error
    """

    def __init__(
        self,
        message: str,
        fault_string: str,
        context: ErrorContext | None = None,
    ) -> None:
        self.fault_string = fault_string
        super().__init__(
            f"{message}: {fault_string}",
            ErrorCode.SOAP_FAULT,
            {**(context or {}), "fault_string": fault_string},
        )


class PersonaNotFoundError(PadronGatewayError):
    """Raised when the registry answers successfully but with no record."""

    status_code = 404

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.NOT_FOUND,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.LOW, context, cause)


class ConfigurationError(PadronGatewayError):
    """Raised when the gateway is missing configuration it cannot work without."""

    status_code = 500

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.CONFIGURATION_ERROR,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.CRITICAL, context, cause)


class SigningError(ConfigurationError):
    """Raised when the CMS signing capability is unavailable or fails."""
