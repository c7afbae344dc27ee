"""
Main FastAPI application for chainwatch.
Serves health status, recent events and statistics over HTTP.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

import structlog

from chainwatch.core.config import settings, Settings
from chainwatch.core.container import Services
from chainwatch.core.logging import setup_logging
from chainwatch.api.middleware import add_middleware
from chainwatch.api.schemas.common import SuccessResponse, create_success_response
from chainwatch.api.routes import events, health, stats


logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    config: Settings = app.state.config
    logger.info("Starting chainwatch API server")

    owns_services = getattr(app.state, "services", None) is None
    if owns_services:
        app.state.services = Services.build(config)

    services: Services = app.state.services
    await services.store.connect()
    await services.database.create_tables()

    if config.api_run_indexer:
        await services.indexer.start()
        logger.info("Event indexer started inside API process")

    yield

    logger.info("Shutting down chainwatch API server")
    if owns_services:
        await services.close()
    else:
        await services.indexer.stop()


def create_app(config: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    """Create and configure FastAPI application."""
    config = config or settings
    setup_logging(config=config)

    app = FastAPI(
        title=config.app_name,
        description="Contract event indexer with health monitoring.",
        version=config.app_version,
        lifespan=lifespan,
    )
    app.state.config = config
    if services is not None:
        app.state.services = services

    add_middleware(app)

    @app.get(
        "/",
        response_model=SuccessResponse,
        tags=["System"],
        summary="API Information",
        description="Get basic API information"
    )
    async def root():
        return create_success_response(
            data={
                "version": config.app_version,
                "environment": config.environment,
                "deployment_stage": config.deployment_stage,
                "network": config.stage.network,
                "features": config.stage.features,
            },
            message=f"{config.app_name} v{config.app_version}"
        )

    app.include_router(health.router, prefix="/health", tags=["Health"])
    app.include_router(events.router, prefix="/events", tags=["Events"])
    app.include_router(stats.router, prefix="/stats", tags=["Statistics"])

    logger.info("FastAPI application created successfully")
    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        create_app(),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower()
    )
