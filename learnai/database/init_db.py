"""
Database initialization and connection management.

This module provides functions for:
1. Creating the async engine and session factory from configuration
2. Creating the schema
3. Checking connectivity and disposing the engine
"""

from typing import Any, Dict, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from learnai.common.error_handling import (
    AsyncErrorTracer,
    DatabaseConnectionError,
    DatabaseQueryError,
    RetryPolicy,
)
from learnai.common.logger import app_logger
from learnai.database import models  # noqa: F401  registers tables on the metadata
from learnai.database.base import metadata

logger = app_logger.getChild("database.init_db")


def create_engine_from_config(db_config) -> AsyncEngine:
    """
    Create the async engine described by a ``DatabaseConfig`` section.

    Pool sizing options are only passed to server databases; SQLite uses
    SQLAlchemy's default pool for aiosqlite.
    """
    options: Dict[str, Any] = {"echo": db_config.echo}
    if not db_config.is_sqlite:
        options.update(
            pool_size=db_config.pool_size,
            max_overflow=db_config.max_overflow,
            pool_timeout=db_config.pool_timeout,
            pool_pre_ping=True,
        )

    safe_url = db_config.url.split("@")[-1]
    logger.info(f"Creating database engine for {safe_url}")
    return create_async_engine(db_config.url, **options)


def create_session_factory(engine: AsyncEngine) -> sessionmaker:
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_schema(engine: AsyncEngine) -> None:
    """Create every table that does not exist yet."""
    async with AsyncErrorTracer("create_schema", capture_as=DatabaseQueryError):
        async with engine.begin() as conn:
            await conn.run_sync(metadata.create_all)
    logger.info("Database schema ready")


async def check_connection(engine: AsyncEngine) -> None:
    """Run ``SELECT 1``; raises ``DatabaseConnectionError`` when unreachable."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        raise DatabaseConnectionError(engine.url.render_as_string(hide_password=True), cause=e)


async def initialize_database(db_config, retry_policy: Optional[RetryPolicy] = None) -> AsyncEngine:
    """
    Create the engine, verify connectivity and optionally create the schema.

    With a ``retry_policy`` the connectivity check is retried while the
    database is unreachable.
    """
    engine = create_engine_from_config(db_config)
    try:
        if retry_policy is not None:
            await retry_policy.run(check_connection, engine)
        else:
            await check_connection(engine)
        if db_config.create_schema:
            await create_schema(engine)
    except Exception:
        await engine.dispose()
        raise
    logger.info("Database engine initialized successfully")
    return engine


async def close_database(engine: AsyncEngine) -> None:
    await engine.dispose()
    logger.info("Database engine closed")
