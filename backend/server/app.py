"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Set up middleware
- Build the single lifecycle manager for the configured camera
- Shut the manager down with the app lifespan
- Register routes
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from functools import partial
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import AppConfig

from lifecycle.manager import ConnectionLifecycleManager

from observability import logger
from observability.logger import log_event

from server.routes import register_routes

from session.gateway import ViewerGateway

from transport.factory import TransportFactory, create_transport


def create_app(
    config: AppConfig | None = None,
    transport_factory: TransportFactory | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    This is the app factory pattern that allows:
    - Testing with different configurations and fake transports
    - Environment-specific setup
    - ASGI server compatibility

    Raises:
        ConfigurationError: invalid camera or retry configuration.
    """
    config = config or AppConfig.load_from_env()
    logger.configure(enabled=config.enable_json_logs)

    manager = build_manager(config=config, transport_factory=transport_factory)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        log_event({
            "event_type": "APP_STARTED",
            "env": config.env,
            "endpoint": manager.params.endpoint(),
        })
        try:
            yield
        finally:
            await manager.shutdown()

    app = FastAPI(title="Camera Stream API", lifespan=lifespan)

    app.state.config = config
    app.state.manager = manager
    app.state.gateway = ViewerGateway(manager)

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # tighten later
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routes
    register_routes(app)

    return app


def build_manager(
    *,
    config: AppConfig,
    transport_factory: TransportFactory | None = None,
) -> ConnectionLifecycleManager:
    """Build the lifecycle manager selected by configuration."""
    if transport_factory is None:
        transport_factory = partial(
            create_transport,
            connect_timeout_s=config.camera_connect_timeout_s,
        )

    return ConnectionLifecycleManager(
        config.connection_parameters(),
        retry_policy=config.retry_policy(),
        transport_factory=transport_factory,
        stop_transport_on_runtime_error=config.stop_transport_on_error,
    )
