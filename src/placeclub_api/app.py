from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from loguru import logger

from placeclub_api.core.settings import settings
from .api.routes import api_router
from .api.v1.endpoints.rewards import STORE_UNAVAILABLE_MESSAGE, RewardRejectedError
from .core.logging import configure_logging
from .observability.tracing import configure_tracing
from .services.rewards import RewardStoreError


APP_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Reward engine starting",
        environment=settings.environment,
        timezone=settings.service_timezone,
        redemption_base_points=settings.redemption_base_points,
        redemption_cooldown_seconds=settings.redemption_cooldown_seconds,
    )
    try:
        yield
    finally:
        logger.info("Reward engine stopped")


async def _handle_rejection(request: Request, exc: RewardRejectedError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.as_payload())


async def _handle_store_failure(request: Request, exc: RewardStoreError) -> JSONResponse:
    logger.error("Reward request failed on store error", operation=exc.operation, path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"reason": "store_unavailable", "message": STORE_UNAVAILABLE_MESSAGE},
    )


def create_app() -> FastAPI:
    """Application factory for the PlaceClub reward service."""
    configure_logging(
        service_name="placeclub-api",
        environment=settings.environment,
        version=APP_VERSION,
        level=settings.log_level,
    )
    app = FastAPI(
        title="PlaceClub Rewards API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    if settings.tracing_enabled:
        configure_tracing(
            app,
            service_name="placeclub-api",
            service_version=APP_VERSION,
            environment=settings.environment,
        )
    app.add_exception_handler(RewardRejectedError, _handle_rejection)
    app.add_exception_handler(RewardStoreError, _handle_store_failure)
    app.include_router(api_router)

    return app
