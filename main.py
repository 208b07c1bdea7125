"""Main application entry point for the ClawBar Gateway Agent."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import ApplicationConfig, load_config
from middleware import CorrelationMiddleware
from routers import gateway_router, health_router, metrics_router
from services import GatewayConnection, GatewayStateTracker
from utils import configure_logging, get_logger, set_correlation_id


def build_lifespan(config: Optional[ApplicationConfig] = None, connection_factory=GatewayConnection):
    """Lifespan that owns the gateway connection for the life of the server."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        app_config = config or load_config()
        configure_logging(app_config.log_level, json_output=app_config.log_json)
        logger = get_logger(__name__)
        set_correlation_id()

        tracker = GatewayStateTracker()
        connection = connection_factory(app_config, tracker)

        app.state.config = app_config
        app.state.tracker = tracker
        app.state.connection = connection

        try:
            logger.info("Starting gateway connection...", port=connection.connection_config.port)
            tracker.mark_connecting()
            await connection.start()
            logger.info("All services are running.")

            yield

        finally:
            logger.info("Shutting down services...")
            await connection.stop()
            logger.info("All services stopped successfully.")

    return lifespan


def create_app(config: Optional[ApplicationConfig] = None, connection_factory=GatewayConnection) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="ClawBar Gateway Agent",
        description="Local status API for an OpenClaw gateway connection",
        version="1.0.0",
        lifespan=build_lifespan(config, connection_factory),
    )
    app.add_middleware(CorrelationMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT"],
        allow_headers=["*"],
    )
    app.include_router(health_router)
    app.include_router(gateway_router)
    app.include_router(metrics_router)
    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    config = load_config()
    uvicorn.run(app, host=config.server_host, port=config.server_port)
