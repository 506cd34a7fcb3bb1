"""
Listing Tracker — Application Entrypoint

Initializes the async SQLAlchemy engine, configures structlog, and starts the
daily price-tracking trigger.

Run via:
    python -m listing_tracker.main
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Any

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from listing_tracker import __version__
from listing_tracker.config import settings
from listing_tracker.pipeline.scheduler import run_scheduler


# ---------------------------------------------------------------------------
# Structlog Configuration
# ---------------------------------------------------------------------------


def configure_logging(log_level: str = "INFO") -> None:
    """
    Set up structured logging with JSON output.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
    """
    level = getattr(logging, log_level.upper())

    # stdlib logging for third-party libraries (httpx, sqlalchemy)
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Database Setup
# ---------------------------------------------------------------------------


def create_db_engine(database_url: str | None = None) -> tuple[Any, async_sessionmaker[AsyncSession]]:
    """
    Create SQLAlchemy async engine and session factory.

    The pool is shared by every concurrent record task; each task opens its
    own session from the factory.

    Returns:
        (engine, session_factory) tuple.
    """
    logger = structlog.get_logger(__name__)
    url = database_url or settings.DATABASE_URL

    logger.info("database_engine_initializing")

    engine = create_async_engine(
        url,
        echo=False,
        pool_size=settings.TRACKING_CHUNK_SIZE,
        max_overflow=10,
        pool_pre_ping=True,
    )

    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    logger.info("database_engine_ready")
    return engine, session_factory


# ---------------------------------------------------------------------------
# Application Startup
# ---------------------------------------------------------------------------


async def main() -> None:
    """
    Application entrypoint.

    Execution order:
    1. Configure logging (structlog JSON)
    2. Create async database engine and session factory
    3. Verify database connection (health check)
    4. Run the daily trigger until a shutdown signal arrives
    """
    configure_logging(log_level=settings.LOG_LEVEL)
    logger = structlog.get_logger(__name__)

    logger.info("listing_tracker_startup_begin", version=__version__)

    engine, session_factory = create_db_engine()

    try:
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
        logger.info("database_health_check_passed")
    except Exception as e:
        logger.error(
            "database_health_check_failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        await engine.dispose()
        raise

    logger.info(
        "listing_tracker_startup_complete",
        lookup_base_url=settings.LOOKUP_BASE_URL,
        batch_size=settings.TRACKING_BATCH_SIZE,
        chunk_size=settings.TRACKING_CHUNK_SIZE,
    )

    try:
        await run_scheduler(session_factory)
    except Exception as e:
        logger.error(
            "listing_tracker_fatal_error",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise
    finally:
        await engine.dispose()
        logger.info("listing_tracker_shutdown_complete")


# ---------------------------------------------------------------------------
# CLI Entry
# ---------------------------------------------------------------------------


if __name__ == "__main__":
    asyncio.run(main())
