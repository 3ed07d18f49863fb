"""CJMS FastAPI application entry point."""
import logging
import sqlite3
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.routes import router as api_router
from .settings import Settings
from .store.schema import connect
from .telemetry import Metrics, init_sentry, statsd_client
from .version import VERSION_FILE


logger = logging.getLogger(__name__)

PROD_ORIGINS = ["https://www.mozilla.org", "https://www.allizom.org"]
NON_PROD_ORIGINS = [
    "http://localhost:8000",
    "https://www-dev.allizom.org",
    "https://www-demo1.allizom.org",
    "https://www-demo2.allizom.org",
    "https://www-demo3.allizom.org",
    "https://www-demo4.allizom.org",
    "https://www-demo5.allizom.org",
]


def allowed_origins(environment: str) -> list[str]:
    return PROD_ORIGINS if environment == "prod" else NON_PROD_ORIGINS


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": exc.errors()},
    )


def create_app(
    settings: Settings,
    conn: Optional[sqlite3.Connection] = None,
    metrics: Optional[Metrics] = None,
    version_file: str = VERSION_FILE,
) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        settings: Loaded settings
        conn: Store connection; opened from settings.database_url when omitted
        metrics: Counters for the web process
        version_file: Path served by /__version__
    """
    init_sentry(settings, version_file)

    app = FastAPI(
        title="CJMS",
        version="0.1.0",
        description="Attribution cookie minter and correction file service",
    )

    app.state.settings = settings
    app.state.conn = conn if conn is not None else connect(settings.database_url)
    app.state.metrics = (
        metrics if metrics is not None else Metrics("web", statsd=statsd_client(settings))
    )
    app.state.version_file = version_file

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins(settings.environment),
        allow_methods=["GET", "POST", "PUT"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.include_router(api_router)

    logger.info("CJMS app created (environment=%s)", settings.environment)
    return app
