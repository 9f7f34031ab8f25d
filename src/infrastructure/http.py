"""Shared outbound HTTP client.

One ``httpx.AsyncClient`` is created per process and reused by the WSAA
client, the Padron A5 client and the delegated lookup strategy so that
connections are pooled. Each caller still passes its own per-request timeout.
"""

import httpx

from src.core.config import Settings

DEFAULT_TIMEOUT_SECONDS = 10.0


def build_async_client(
    settings: Settings | None = None,
    *,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    extra_headers: dict[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create an ``httpx.AsyncClient`` with explicit timeouts.

    Args:
        settings: Application settings, used for the User-Agent header.
        timeout_seconds: Default timeout for requests that don't set one.
        extra_headers: Headers merged over the defaults.
        transport: Optional transport, e.g. ``httpx.MockTransport`` in tests.

    Returns:
        httpx.AsyncClient: Client to be closed with ``aclose()`` on shutdown.
    """
    headers: dict[str, str] = {}
    if settings is not None:
        headers["User-Agent"] = f"{settings.app_name}/{settings.app_version}"
    if extra_headers:
        headers.update(extra_headers)

    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout_seconds),
        headers=headers,
        transport=transport,
    )
