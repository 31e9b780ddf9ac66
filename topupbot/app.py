"""FastAPI application factory for the top-up delivery service."""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

from aiosqlite import connect as aiosqlite_connect
from fastapi import APIRouter, FastAPI

from topupbot.admin_router import Validate, configure_admin_router
from topupbot.config import ConfigService, configure_logging, load_config_from_env
from topupbot.donations import DonationCatalog, DonationDelivery, DonationQueries
from topupbot.rconclient import RCONClientManager

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from topupbot.config import AppConfig

LOGGER = logging.getLogger(__name__)


def configure_fastapi_app(config: AppConfig) -> FastAPI:
    """Configure and return the FastAPI application.

    :param config: Application configuration
    :return: Configured FastAPI application
    """
    config_service = ConfigService(config.config_path)

    if not Path(config.db_path).parent.exists():
        Path(config.db_path).parent.mkdir(parents=True, exist_ok=True)
        LOGGER.info("Created directory for database at %s", Path(config.db_path).parent)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[Any, Any]:
        """Application lifespan manager.

        Handles startup and shutdown of the RCON manager and the database.
        """
        LOGGER.info("Top-up RCON delivery API is starting")

        def load_rcon_endpoints() -> dict[str, Any]:
            config_service.reload()
            endpoints = config_service.rcon_endpoints()
            catalog = config_service.catalog()
            delivery.catalog = catalog
            return endpoints

        manager = RCONClientManager(load_rcon_endpoints, settings=config.rcon_settings)
        delivery = DonationDelivery(
            manager,
            DonationCatalog({}),
            default_endpoint=config.default_endpoint,
        )

        async with (
            aiosqlite_connect(config.db_path) as db_connection,
            manager,
        ):
            queries = DonationQueries(db_connection)
            await queries.initialize_tables()
            delivery.queries = queries

            for problem in config_service.validate():
                LOGGER.warning("Configuration problem: %s", problem)

            admin_router = configure_admin_router(
                APIRouter(),
                manager,
                delivery,
                Validate(config.admin_api_key),
            )
            app.include_router(admin_router, prefix="/admin", tags=["admin"])

            yield

            LOGGER.info("Top-up RCON delivery API is shutting down")

    app = FastAPI(
        title="Top-up RCON Delivery API",
        version="0.1.0",
        lifespan=lifespan,
        root_path=config.root_path,
    )

    @app.get("/")
    def read_root() -> str:
        return "Top-up RCON Delivery API"

    return app


def create_app(env_file: str | None = os.environ.get("ENV_FILE", ".env")) -> FastAPI:
    """Create and configure the FastAPI application.

    The default here is for uvicorn command line usage, in which case the user
    should set ENV_FILE environment variable if they want a different file.

    :param env_file: Optional path to the environment configuration file
    :return: Configured FastAPI application
    """
    config = load_config_from_env(env_file)
    configure_logging(config)
    return configure_fastapi_app(config)
