"""FastAPI application initialization and configuration module.

This module handles:
- Application lifecycle (building and closing the shared HTTP client,
  cache backend and lookup pipeline)
- Middleware and exception handler registration
- Health check and info endpoints
- OpenTelemetry instrumentation
"""

from collections.abc import AsyncGenerator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Annotated, Any

from fastapi import Depends, FastAPI, Request
from loguru import logger

from src.api.middleware.error_handler import register_exception_handlers
from src.api.middleware.request_context import RequestContextMiddleware
from src.api.routes import get_services, router
from src.api.utils.responses import ORJSONResponse
from src.core.config import Settings, get_settings
from src.core.logging import setup_logging
from src.core.observability import instrument_app, setup_tracing
from src.services.factory import Services, build_services


def make_lifespan(
    settings: Settings,
) -> Callable[[FastAPI], AbstractAsyncContextManager[None]]:
    """Build the lifespan handler for ``settings``.

    Services injected through ``create_app`` are left to their owner; services
    built here are closed on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app_instance: FastAPI) -> AsyncGenerator[None]:
        owned = getattr(app_instance.state, "services", None) is None
        if owned:
            app_instance.state.services = build_services(settings)

        logger.info(
            "Application startup complete - {} v{}",
            app_instance.title,
            app_instance.version,
        )

        yield

        logger.info("Application shutdown initiated")
        if owned:
            await app_instance.state.services.aclose()
            app_instance.state.services = None
        logger.info("Application shutdown complete")

    return lifespan


def create_app(
    settings: Settings | None = None, services: Services | None = None
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional settings instance. If not provided, will use get_settings().
        services: Pre-built lookup pipeline (tests); built at startup otherwise.

    Returns:
        FastAPI: Configured FastAPI application instance.
    """
    if settings is None:
        settings = get_settings()

    setup_logging(settings)
    setup_tracing(settings)

    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        docs_url=settings.docs_url,
        openapi_url=settings.openapi_url,
        default_response_class=ORJSONResponse,
        lifespan=make_lifespan(settings),
    )
    application.state.services = services

    # Exception handlers before middleware
    register_exception_handlers(application)
    application.add_middleware(RequestContextMiddleware)

    application.include_router(router)

    @application.get("/health", tags=["monitoring"])
    async def health(request: Request) -> dict[str, object]:
        """Health check for container orchestration and load balancers.

        The cache backend being down degrades the service (lookups still work,
        uncached) rather than taking it out of rotation.

        Returns:
            dict[str, object]: Overall status and cache reachability.
        """
        current: Services | None = request.app.state.services
        cache_ok = current is not None and await current.cache.ping()
        if not cache_ok:
            logger.warning("Cache backend unreachable during health check")
        return {"status": "healthy" if cache_ok else "degraded", "cache": cache_ok}

    @application.get("/info", tags=["monitoring"])
    async def info(
        app_settings: Annotated[Settings, Depends(get_settings)],
        services: Annotated[Services, Depends(get_services)],
    ) -> dict[str, Any]:
        """Get application information.

        Returns:
            dict[str, Any]: Name, version, environment and active lookup provider.
        """
        return {
            "app_name": app_settings.app_name,
            "version": app_settings.app_version,
            "environment": app_settings.environment,
            "debug": app_settings.debug,
            "lookup_source": services.orchestrator.strategy.source,
            "afip_environment": app_settings.afip.environment,
        }

    instrument_app(application, settings)

    return application


app = create_app()
