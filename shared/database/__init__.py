from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from tortoise import Tortoise

from shared.logger import get_logger
from shared.database.config import DB_GENERATE_SCHEMAS, build_tortoise_config

logger = get_logger("shared.database")


async def init_db(url: Optional[str] = None, *, generate_schemas: bool = DB_GENERATE_SCHEMAS) -> None:
    """Initialize Tortoise ORM with the configured settings."""

    await Tortoise.init(config=build_tortoise_config(url))

    if generate_schemas:
        logger.warning(
            "Schema generation is enabled; generating schemas at startup. "
            "Disable in production and rely on migrations instead.",
        )
        await Tortoise.generate_schemas()


async def close_db() -> None:
    """Close all ORM connections."""
    await Tortoise.close_connections()


@asynccontextmanager
async def db_session(url: Optional[str] = None) -> AsyncIterator[None]:
    """Open ORM connections for the duration of a block."""
    logger.info("Initializing database connections")
    await init_db(url)
    try:
        yield
    finally:
        logger.info("Closing database connections")
        await close_db()


__all__ = ["db_session", "init_db", "close_db"]
