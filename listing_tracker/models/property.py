"""
Listing Tracker — Property Model

One row per tracked listing, keyed by the external zpid. Rows are created
by the ingestion process; the price-tracking job only mutates price,
raw_home_status_cd, time_on_zillow, price_changes and update_at.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import DECIMAL, INTEGER, JSON, TIMESTAMP, Index, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from listing_tracker.config import settings


class Base(DeclarativeBase):
    """Base class for all listing tracker database models."""
    pass


class Property(Base):
    """
    A tracked property listing.

    price = 0 is the "never observed" sentinel; the tracking job selects
    exactly those rows. price_changes is an ordered JSON list of
    {"price": number, "updated_at": "YYYY-MM-DDTHH:MM:SS"} entries.
    """

    __tablename__ = settings.PROPERTIES_TABLE

    zpid: Mapped[str] = mapped_column(
        String, primary_key=True, comment="External listing identifier"
    )
    price: Mapped[Decimal] = mapped_column(
        DECIMAL(14, 2), nullable=False, default=Decimal("0"), comment="0 = never observed"
    )
    raw_home_status_cd: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="Listing status from lookup service"
    )
    time_on_zillow: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="Opaque time-on-market string, stored verbatim"
    )
    price_changes: Mapped[list[dict[str, Any]] | None] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=True,
        comment="Chronological price history",
    )
    update_at: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="Last price change, whole-second UTC"
    )
    inserted_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True, comment="Record creation time"
    )

    # Listing descriptors (written by ingestion, read by the dashboard)
    address: Mapped[str | None] = mapped_column(String, nullable=True)
    address_city: Mapped[str | None] = mapped_column(String, nullable=True)
    address_state: Mapped[str | None] = mapped_column(String, nullable=True)
    address_zipcode: Mapped[str | None] = mapped_column(String, nullable=True)
    beds: Mapped[int | None] = mapped_column(INTEGER, nullable=True)
    baths: Mapped[int | None] = mapped_column(INTEGER, nullable=True)
    area: Mapped[int | None] = mapped_column(INTEGER, nullable=True)
    year_built: Mapped[int | None] = mapped_column(INTEGER, nullable=True)
    broker_name: Mapped[str | None] = mapped_column(String, nullable=True)
    detail_url: Mapped[str | None] = mapped_column(String, nullable=True)
    note: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        Index(f"ix_{settings.PROPERTIES_TABLE}_price", "price"),
    )

    def __repr__(self) -> str:
        return (
            f"<Property zpid={self.zpid!r} price={self.price} "
            f"status={self.raw_home_status_cd!r}>"
        )
