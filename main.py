"""Run the Padron Gateway API with uvicorn."""

import os
from typing import Any

import uvicorn
from loguru import logger

from src.core.config import get_settings
from src.core.logging import UVICORN_LOGGERS, setup_logging


def uvicorn_log_config(level: str = "INFO") -> dict[str, Any]:
    """Route uvicorn's loggers through the Loguru InterceptHandler."""
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "handlers": {
            "default": {"class": "src.core.logging.InterceptHandler"},
        },
        "loggers": {
            name: {"handlers": ["default"], "level": level, "propagate": False}
            for name in UVICORN_LOGGERS
        },
    }


def main() -> None:
    """Start the API server."""
    settings = get_settings()
    setup_logging(settings)

    # Cloud Run sets PORT
    port = int(os.environ.get("PORT", settings.api_port))
    reload = settings.debug

    logger.info(
        "Starting Uvicorn on http://{}:{} ({})",
        settings.api_host,
        port,
        "development mode with auto-reload" if reload else "production mode",
        lookup_provider=settings.enrichment.provider.value,
    )
    # reload requires an import string
    uvicorn.run(
        "src.api.main:app",
        host=settings.api_host,
        port=port,
        reload=reload,
        log_config=uvicorn_log_config(settings.log_config.log_level),
    )


if __name__ == "__main__":
    main()
