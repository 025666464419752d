from __future__ import annotations

import logging

from fastapi import FastAPI

from accounting.api.health import router as health_router
from accounting.api.metrics_endpoint import router as metrics_router
from accounting.core.config import SETTINGS
from accounting.core.logging import setup_logging
from accounting.middleware.accounting import ResourceAccountingMiddleware
from accounting.middleware.request_context import RequestContextMiddleware

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(
        title="request-accounting",
        docs_url="/docs" if SETTINGS.is_dev else None,
        redoc_url="/redoc" if SETTINGS.is_dev else None,
    )

    # Middleware execution order: last-added runs first (outermost layer).
    # RequestContext (outermost) → ResourceAccounting → route handler
    # Accounting stops before the access line is written, so the line
    # carries the published values.
    app.add_middleware(ResourceAccountingMiddleware)
    app.add_middleware(RequestContextMiddleware)

    app.include_router(metrics_router)
    app.include_router(health_router)
    return app


app = create_app()

logger.info(
    "request-accounting started  env=%s log_level=%s port=%d accounting=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    "on" if SETTINGS.accounting_enabled else "off",
)
