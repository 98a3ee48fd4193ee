"""Litestar application factory for the page designer API."""

import logging

from advanced_alchemy.extensions.litestar import (
    AsyncSessionConfig,
    SQLAlchemyAsyncConfig,
    SQLAlchemyPlugin,
)
from litestar import Litestar

from pagecraft.config import Settings, get_settings
from pagecraft.controllers.designer import DesignerController
from pagecraft.db.base import Base
from pagecraft.db.services import template_service
from pagecraft.db.session import create_engine
from pagecraft.lib.exceptions import EXCEPTION_HANDLERS

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_db_config(settings: Settings) -> SQLAlchemyAsyncConfig:
    """Database plugin config around an engine with SQLite foreign keys on."""
    return SQLAlchemyAsyncConfig(
        engine_instance=create_engine(settings),
        metadata=Base.metadata,
        create_all=False,
        session_config=AsyncSessionConfig(expire_on_commit=False),
    )


def create_app(settings: Settings | None = None) -> Litestar:
    """Build the ASGI app.

    Args:
        settings: Explicit settings; loaded from .env and app.yaml when omitted
    """
    settings = settings or get_settings()
    configure_logging(settings)
    db_config = create_db_config(settings)

    async def on_startup() -> None:
        if settings.db.create_all:
            async with db_config.get_engine().begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            logger.info("Created missing tables")

        if settings.templates:
            async with db_config.get_session() as db_session:
                synced = await template_service.sync_templates(db_session, settings.templates)
            logger.info("Synced %d component templates", len(synced))

    async def on_shutdown() -> None:
        await db_config.get_engine().dispose()

    return Litestar(
        route_handlers=[DesignerController],
        plugins=[SQLAlchemyPlugin(config=db_config)],
        on_startup=[on_startup],
        on_shutdown=[on_shutdown],
        exception_handlers=EXCEPTION_HANDLERS,
        debug=settings.debug,
    )
