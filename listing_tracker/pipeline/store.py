"""
Listing Tracker — Property Record Store

Thin async SQLAlchemy wrapper exposing the two operations the tracking job
needs: load the candidate set (price == 0) and apply a targeted update by
zpid. Each call opens its own short-lived session from the shared factory,
so concurrent record tasks never share a session.
"""

from __future__ import annotations

from typing import Any, Sequence

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from listing_tracker.errors import CandidateFetchError, UpdateWriteError
from listing_tracker.models.property import Property

logger = structlog.get_logger(__name__)

# Columns the tracking job is allowed to write
WRITABLE_FIELDS = frozenset(
    {"price", "raw_home_status_cd", "time_on_zillow", "price_changes", "update_at"}
)


class PropertyStore:
    """Record source and update sink for the tracking job."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def fetch_candidates(self) -> Sequence[Property]:
        """
        Load every record whose price is the never-observed sentinel (0).

        Raises:
            CandidateFetchError: the query failed.
        """
        stmt = select(Property).where(Property.price == 0).order_by(Property.zpid)
        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                rows = result.scalars().all()
        except (SQLAlchemyError, OSError) as e:
            logger.error(
                "store_candidate_fetch_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise CandidateFetchError(f"Failed to load candidate properties: {e}") from e

        logger.debug("store_candidates_loaded", count=len(rows))
        return rows

    async def apply_update(self, zpid: str, fields: dict[str, Any]) -> None:
        """
        Write a subset of fields to the record keyed by zpid.

        Raises:
            ValueError: a field outside WRITABLE_FIELDS was passed.
            UpdateWriteError: the write failed or no record matched.
        """
        unknown = set(fields) - WRITABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not writable by the tracker: {sorted(unknown)}")
        if not fields:
            return

        stmt = update(Property).where(Property.zpid == zpid).values(**fields)
        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
        except (SQLAlchemyError, OSError) as e:
            raise UpdateWriteError(zpid, f"Update failed for zpid {zpid}: {e}") from e

        if result.rowcount == 0:
            raise UpdateWriteError(zpid, f"Update failed for zpid {zpid}: no matching record")

        logger.debug("store_property_updated", zpid=zpid, fields=sorted(fields))
