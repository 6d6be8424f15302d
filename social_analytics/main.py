"""FastAPI application factory.

Creates and configures the FastAPI app:
  - Includes route routers (CSV uploads, analytics API)
  - Opens the Database on startup and closes it on shutdown via lifespan
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from social_analytics.config import settings, warn_if_auth_disabled
from social_analytics.database import Database
from social_analytics.routes.api import router as api_router
from social_analytics.routes.upload import router as upload_router

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(database: Database | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        database: Storage client to use; defaults to one built from settings.
    """
    db = database or Database()

    @asynccontextmanager
    async def lifespan(application: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan: open the database on startup, close it on shutdown."""
        logger.info("Starting social analytics service on port %s", settings.app_port)
        db.open()
        application.state.database = db
        warn_if_auth_disabled(settings)
        yield
        db.close()
        logger.info("Shutting down social analytics service.")

    application = FastAPI(
        title="Social Analytics Ingestion",
        description="CSV ingestion and upload management for social media analytics exports.",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    # Available before startup too, for callers that skip the lifespan
    application.state.database = db

    application.include_router(api_router)
    application.include_router(upload_router)

    return application


app = create_app()
