"""
FastAPI application for the trip booking agent.

Services are built once in the lifespan handler (composition root) and
shared by all requests through app.state.services.
"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from logging_setup import get_logger, Component
from trip_pipeline.config import GatewayConfig, get_gateway_config
from trip_pipeline.runtime import PipelineServices, build_services
from .control_api import router as control_router
from .routes import router as turn_router
from .seed import bootstrap_knowledge

logger = get_logger(Component.GATEWAY)


def create_app(
    services: Optional[PipelineServices] = None,
    gateway_config: Optional[GatewayConfig] = None,
) -> FastAPI:
    """
    Build the app. When `services` is given (tests, embedding) the caller
    owns their lifecycle and no seeding happens.
    """
    gateway_config = gateway_config or get_gateway_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = services is None
        app.state.services = build_services() if owned else services
        if owned:
            await bootstrap_knowledge(app.state.services.knowledge, gateway_config.knowledge_seed_file)
        logger.info("Gateway started", port=gateway_config.port)
        try:
            yield
        finally:
            if owned:
                await app.state.services.aclose()
            logger.info("Gateway stopped")

    app = FastAPI(title="Trip Booking Voice Agent", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(gateway_config.cors_allow_origins),
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )
    app.include_router(turn_router)
    app.include_router(control_router)

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "ok", "component": "gateway"}

    return app


app = create_app()
