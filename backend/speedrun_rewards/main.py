"""
Speedrun Lisk Rewards - FastAPI application.
"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .api.router import router as api_router
from .core.config import Config, get_config
from .core.exceptions import AppException
from .core.logging_config import get_logger, setup_logging
from .core.security import TokenManager
from .db.engine import create_db_engine
from .events.event_bus import EventBus
from .events.subscribers import CampaignSubscriber
from .services.reward_service import RewardService, create_reward_service

logger = get_logger(__name__)


def create_app(config: Optional[Config] = None, service: Optional[RewardService] = None) -> FastAPI:
    """
    Build the API application.

    Args:
        config: Configuration; loaded from the environment when omitted
        service: Pre-built reward service (tests); wired from config otherwise
    """
    config = config or get_config()
    engine = None
    if service is None:
        engine = create_db_engine(config.database)
        service = create_reward_service(config, engine=engine, event_bus=EventBus())

    subscriber = CampaignSubscriber(service.event_bus)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        subscriber.initialize()
        await service.event_bus.initialize()
        logger.info(f"{config.app_name} started: {service.stats().to_dict()}")
        yield
        # Shutdown
        await service.event_bus.shutdown()
        subscriber.cleanup()
        await service.close()
        service.event_bus.close()
        if engine is not None:
            engine.dispose()
        logger.info(f"{config.app_name} stopped")

    app = FastAPI(
        title=config.api.title,
        description=config.api.description,
        version=config.api.version,
        docs_url=config.api.docs_url,
        openapi_url=config.api.openapi_url,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.reward_service = service
    app.state.token_manager = TokenManager(config.security)
    app.state.db_engine = engine

    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}",
                         extra={"error_code": exc.code})
        return JSONResponse(exc.to_dict(), status_code=exc.status_code)

    app.include_router(api_router, prefix=config.api.api_prefix)
    return app


def run() -> None:
    """Console entry point: serve the API with uvicorn."""
    import uvicorn

    config = get_config()
    setup_logging(config.logging)
    uvicorn.run(create_app(config), host=config.host, port=config.port)


if __name__ == "__main__":
    run()
