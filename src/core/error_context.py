"""Credential redaction for logs and error payloads.

WSAA tickets are bearer credentials: anyone holding a token/sign pair can
query the registry on the represented taxpayer's behalf until the ticket
expires. Two kinds of data may carry them:

- **structured context** (dicts passed to the logger or attached to errors),
  redacted by field name: a built-in pattern plus
  ``LOG_CONFIG__SENSITIVE_FIELDS``;
- **raw SOAP text** (excerpts of unparseable AFIP responses), where ``token``,
  ``sign`` and ``in0`` elements are masked in place, escaped or not.

Redaction returns copies; the original data is never modified.
"""

from __future__ import annotations

import re
from functools import lru_cache
from re import Pattern
from typing import Any, Final

from src.core.config import get_settings
from src.core.constants import REDACTED

type SanitizableValue = (
    str | int | float | bool | None | dict[str, Any] | list[Any] | tuple[Any, ...]
)

DEFAULT_SENSITIVE_PATTERN: Final[Pattern[str]] = re.compile(
    r"(password|passwd|secret|token|api[_-]?key|apikey|authorization|"
    r"credential|private[_-]?key|key[_-]?path|cert[_-]?path|"
    r"(^|_)sign($|_)|signature|cms)",
    re.IGNORECASE,
)

# <token>..</token>, <ns:sign>..</ns:sign> and their &lt;-escaped forms
XML_CREDENTIAL_PATTERN: Final[Pattern[str]] = re.compile(
    r"(?P<open>(?:<|&lt;)(?P<tag>(?:[\w-]+:)?(?:token|sign|in0))(?:>|&gt;))"
    r".*?"
    r"(?P<close>(?:<|&lt;)/(?P=tag)(?:>|&gt;))",
    re.IGNORECASE | re.DOTALL,
)

MAX_DEPTH: Final[int] = 10
EXCERPT_LENGTH: Final[int] = 500


@lru_cache(maxsize=1)
def _get_sensitive_fields() -> list[str]:
    """Sensitive field names from ``LOG_CONFIG__SENSITIVE_FIELDS``."""
    return get_settings().log_config.sensitive_fields


def is_sensitive_field(field_name: str) -> bool:
    """Whether values stored under ``field_name`` must be redacted.

    Matches the built-in pattern (ticket material, keys, certificate paths)
    or, exactly and case-insensitively, a configured sensitive field.
    """
    if DEFAULT_SENSITIVE_PATTERN.search(field_name):
        return True

    field_lower = field_name.lower()
    return any(field_lower == field.lower() for field in _get_sensitive_fields())


def sanitize_value(
    value: SanitizableValue, field_name: str = "", depth: int = 0
) -> SanitizableValue:
    """Redact ``value`` if its field is sensitive, recursing into containers.

    Anything nested deeper than ``MAX_DEPTH`` is redacted wholesale.
    """
    if depth > MAX_DEPTH:
        return REDACTED

    if field_name and is_sensitive_field(field_name):
        return REDACTED

    if isinstance(value, dict):
        return {k: sanitize_value(v, k, depth + 1) for k, v in value.items()}
    if isinstance(value, list):
        return [sanitize_value(item, "", depth + 1) for item in value]
    if isinstance(value, tuple):
        return tuple(sanitize_value(item, "", depth + 1) for item in value)
    return value


def sanitize_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Copy of ``data`` with sensitive fields redacted."""
    return {key: sanitize_value(value, key) for key, value in data.items()}


def redact_payload(content: bytes | str, limit: int = EXCERPT_LENGTH) -> str:
    """Masked excerpt of a raw SOAP payload, safe to log or attach to an error.

    Credentials are masked before truncation so a cut never exposes half a
    token.

    Example:
        >>> redact_payload("<credentials><token>PD94</token></credentials>")
        '<credentials><token>[REDACTED]</token></credentials>'
    """
    if isinstance(content, bytes):
        content = content.decode("utf-8", errors="replace")
    masked = XML_CREDENTIAL_PATTERN.sub(
        lambda m: f"{m.group('open')}{REDACTED}{m.group('close')}", content
    )
    return masked[:limit]


def sanitize_error_context(
    error: Exception, context: dict[str, Any] | None = None
) -> dict[str, Any]:
    """Build the log context for ``error``.

    Args:
        error: The exception being logged.
        context: Extra request or lookup context, sanitized like the error's
            own public attributes.

    Returns:
        dict[str, Any]: Error type and message, the extra context and the
        error's attributes (under ``error_attributes``), all redacted.
    """
    error_context: dict[str, Any] = {
        "error_type": type(error).__name__,
        "error_message": str(error),
    }

    if context:
        error_context.update(sanitize_dict(context))

    # loguru renders the traceback itself
    skipped = {"stack_trace", "cause", "args"}
    if hasattr(error, "__dict__"):
        error_attrs = {
            k: v
            for k, v in error.__dict__.items()
            if not k.startswith("_") and k not in skipped
        }
        if error_attrs:
            error_context["error_attributes"] = sanitize_dict(error_attrs)

    return error_context
