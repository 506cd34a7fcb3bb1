"""
Listing Tracker — Shared pytest Fixtures & Configuration

Provides common fixtures for all test modules:
- File-backed SQLite database (aiosqlite) with the properties table
- Property factory
- Async test support via pytest-asyncio
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from listing_tracker.models import Base, Property


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

pytest_plugins = ("pytest_asyncio",)


# ---------------------------------------------------------------------------
# Database Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def db_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """
    SQLite database in a temp file with all tables created.

    A file (not :memory:) so every session gets its own connection, the
    same way concurrent record tasks do against Postgres.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'listings.db'}",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def make_property(zpid: str, price: Any = 0, **overrides: Any) -> Property:
    """Build a transient Property with tracker-relevant defaults."""
    fields: dict[str, Any] = {
        "zpid": zpid,
        "price": Decimal(str(price)),
        "raw_home_status_cd": None,
        "time_on_zillow": None,
        "price_changes": None,
        "update_at": None,
        "inserted_at": datetime(2023, 1, 1, tzinfo=timezone.utc),
    }
    fields.update(overrides)
    return Property(**fields)


@pytest.fixture
def property_factory():
    return make_property


@pytest.fixture
def seed_properties(session_factory):
    """Insert the given Property rows and return them."""

    async def _seed(*rows: Property) -> list[Property]:
        async with session_factory() as session:
            session.add_all(rows)
            await session.commit()
        return list(rows)

    return _seed


@pytest.fixture
def now() -> datetime:
    """Fixed observation time for tests."""
    return datetime(2023, 6, 1, 0, 0, 0, tzinfo=timezone.utc)
