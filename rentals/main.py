import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger
from tortoise.contrib.fastapi import RegisterTortoise

from rentals import settings
from rentals.cache import BlockedRangesCache
from rentals.errors import install_error_handlers
from rentals.routers import (
    agreements,
    availability,
    booking,
    inspections,
    notifications,
    webhooks,
)

TORTOISE_MODULES = {"models": ["rentals.models"]}

logger.remove()
logger.add(sys.stderr, level=settings.LOG_LEVEL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.blocked_cache = BlockedRangesCache.from_url(settings.REDIS_URL)
    async with RegisterTortoise(
        app,
        db_url=settings.db_url,
        modules=TORTOISE_MODULES,
        generate_schemas=settings.GENERATE_SCHEMAS,
    ):
        logger.info("Rental bookings service started")
        yield
    await app.state.blocked_cache.close()


def create_app() -> FastAPI:
    app = FastAPI(title="Rental Bookings", lifespan=lifespan)
    install_error_handlers(app)

    for module in (availability, booking, agreements, inspections, notifications, webhooks):
        app.include_router(module.router)

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
