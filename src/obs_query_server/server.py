"""FastAPI server for Observability Query Server."""

import dataclasses
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx
import structlog
import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse

from obs_query_server import __version__
from obs_query_server.api import create_observability_router, register_exception_handlers
from obs_query_server.auth import create_bearer_auth
from obs_query_server.config import Config, get_config, load_config, set_config
from obs_query_server.drivers.registry import (
    ObservabilityDisabledError,
    ProviderRegistries,
    build_provider_registries,
)
from obs_query_server.explorer import ExplorerController

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.dev.ConsoleRenderer()
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)


def configure_logging(level: str) -> None:
    """Set the stdlib log level that structlog filters on."""
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=log_level)
    logging.getLogger().setLevel(log_level)


@dataclasses.dataclass
class _AppState:
    """Shared state for the lifespan and dependency closures."""

    config: Config
    registries: Optional[ProviderRegistries] = None
    controller: Optional[ExplorerController] = None


def create_app(
    config: Optional[Config] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Create the FastAPI application.

    The observability module is built once here from configuration. When the
    observability section is disabled the module refuses construction and the
    app serves only its health endpoint.

    Args:
        config: Server configuration; defaults to the global configuration
        transport: Optional HTTP transport shared by all drivers, used by tests

    Returns:
        Configured FastAPI application.
    """
    config = config or get_config()
    set_config(config)
    state = _AppState(config=config)
    app_logger = logger.bind(server=config.server.name)

    try:
        state.registries = build_provider_registries(config.observability, transport=transport)
        state.controller = ExplorerController.from_registries(state.registries, config.observability)
    except ObservabilityDisabledError:
        app_logger.warning("Observability module disabled, routes not mounted")

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Open driver clients on startup and close them on shutdown."""
        if state.registries is not None:
            await state.registries.initialize_all()
        app_logger.info(
            "Server started",
            version=config.server.version,
            providers=config.get_enabled_providers()
        )

        yield

        if state.registries is not None:
            await state.registries.close_all()
        app_logger.info("Server stopped")

    async def get_controller() -> ExplorerController:
        """Dependency returning the explorer controller."""
        if state.controller is None:
            raise HTTPException(status_code=503, detail="observability module not initialized")
        return state.controller

    app = FastAPI(
        title=config.server.name,
        description=config.server.description,
        version=config.server.version,
        lifespan=lifespan,
    )
    register_exception_handlers(app)

    if state.controller is not None:
        app.include_router(
            create_observability_router(
                get_controller=get_controller,
                require_auth=create_bearer_auth(config.server.auth_tokens),
            )
        )

    @app.get("/health", tags=["infrastructure"])
    async def health_check() -> JSONResponse:
        """Liveness check."""
        return JSONResponse(content={
            "status": "healthy",
            "version": __version__,
            "observability": state.controller is not None,
        })

    return app


def main(config_path: Optional[str] = None, host: Optional[str] = None, port: Optional[int] = None) -> None:
    """Main entry point for the server."""
    config = load_config(config_path)
    configure_logging(config.server.log_level)
    config.validate_providers()

    app = create_app(config)
    logger.info(
        "Starting server",
        host=host or config.server.host,
        port=port or config.server.port
    )
    uvicorn.run(
        app,
        host=host or config.server.host,
        port=port or config.server.port,
        log_level=config.server.log_level.lower(),
    )


def cli() -> None:
    """Parse command line arguments and run the server."""
    import argparse

    parser = argparse.ArgumentParser(description="Observability Query Server")
    parser.add_argument(
        "-c", "--config",
        help="Path to configuration file",
        default=None
    )
    parser.add_argument("--host", help="Bind address", default=None)
    parser.add_argument("--port", help="Bind port", type=int, default=None)

    args = parser.parse_args()
    main(args.config, host=args.host, port=args.port)


if __name__ == "__main__":
    cli()
