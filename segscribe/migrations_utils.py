"""Database migration utilities for application startup."""

import logging
from pathlib import Path

from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger("segscribe.migrations")


def get_alembic_config() -> Config:
    """Get Alembic configuration object.

    Returns:
        Configured Alembic Config instance
    """
    alembic_ini_path = Path(__file__).resolve().parent.parent / "alembic.ini"

    if not alembic_ini_path.exists():
        raise FileNotFoundError(f"alembic.ini not found at {alembic_ini_path}.")

    config = Config(str(alembic_ini_path))
    config.set_main_option("script_location", str(alembic_ini_path.parent / "alembic"))
    return config


async def check_migration_status(engine: AsyncEngine) -> tuple[str, str]:
    """Check current database migration status.

    Args:
        engine: AsyncEngine instance

    Returns:
        Tuple of (current_revision, head_revision)
    """
    try:
        config = get_alembic_config()

        async with engine.begin() as conn:
            result = await conn.execute(text("SELECT version_num FROM alembic_version"))
            current = result.scalar_one_or_none()

        head = ScriptDirectory.from_config(config).get_current_head()
        return (current or "none", head or "none")

    except Exception as e:
        logger.warning("Could not check migration status: %s", e)
        return ("unknown", "unknown")


async def initialize_database(engine: AsyncEngine) -> None:
    """Create the schema directly from model metadata.

    Used for first-time development setup and tests; production databases
    should be upgraded with ``alembic upgrade head``.
    """
    from segscribe import models  # noqa: F401
    from segscribe.database import Base

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema initialized")
    except Exception as e:
        logger.error("Database initialization failed: %s", e)
        raise
