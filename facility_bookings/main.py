from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger
from tortoise.contrib.fastapi import RegisterTortoise

from facility_bookings import settings
from facility_bookings.errors import register_error_handlers
from facility_bookings.routers import booking, trainer_booking


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with RegisterTortoise(
        app,
        db_url=settings.db_url,
        modules=settings.TORTOISE_MODULES,
        generate_schemas=settings.generate_schemas,
        use_tz=True,
        timezone="UTC",
    ):
        logger.info("facility-bookings-ms started")
        yield


def create_app() -> FastAPI:
    app = FastAPI(title="facility-bookings-ms", lifespan=lifespan)
    register_error_handlers(app)
    app.include_router(booking.router)
    app.include_router(booking.slots_router)
    app.include_router(trainer_booking.router)
    return app


app = create_app()
