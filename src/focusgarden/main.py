"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from focusgarden.config import get_settings
from focusgarden.database import close_db, init_db
from focusgarden.garden.catalog import get_catalog
from focusgarden.garden.router import router as garden_router
from focusgarden.health.router import router as health_router
from focusgarden.middleware import setup_middleware
from focusgarden.redis_client import close_redis, init_redis

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)

    # Fail fast on a malformed species catalog
    catalog = get_catalog()
    logger.info("Focus garden ready with %d species", len(catalog))

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Focus Garden API",
        description="Focus sessions grow a persistent study garden",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(garden_router)

    return app


app = create_app()
