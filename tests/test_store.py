"""Tests for the property record store (listing_tracker/pipeline/store.py)."""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from listing_tracker.config import RunStatus
from listing_tracker.errors import CandidateFetchError, UpdateWriteError
from listing_tracker.models import Property
from listing_tracker.pipeline.store import PropertyStore
from listing_tracker.pipeline.tracker import PriceTracker


async def _load(session_factory, zpid: str) -> Property:
    async with session_factory() as session:
        result = await session.execute(select(Property).where(Property.zpid == zpid))
        return result.scalar_one()


@pytest.mark.asyncio
async def test_fetch_candidates_only_zero_price(session_factory, seed_properties, property_factory) -> None:
    """Exactly the records with price == 0 are candidates."""
    await seed_properties(
        property_factory("a", 0),
        property_factory("b", 450000),
        property_factory("c", 0),
        property_factory("d", "0.01"),
    )

    candidates = await PropertyStore(session_factory).fetch_candidates()

    assert [p.zpid for p in candidates] == ["a", "c"]
    assert all(p.price == 0 for p in candidates)


@pytest.mark.asyncio
async def test_fetch_candidates_empty(session_factory) -> None:
    assert list(await PropertyStore(session_factory).fetch_candidates()) == []


@pytest.mark.asyncio
async def test_fetch_candidates_failure_raises(tmp_path: Path) -> None:
    """A broken record source surfaces as CandidateFetchError."""
    # Fresh database with no tables
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    try:
        with pytest.raises(CandidateFetchError):
            await PropertyStore(factory).fetch_candidates()
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_apply_update_writes_only_given_fields(session_factory, seed_properties, property_factory) -> None:
    await seed_properties(
        property_factory("a", 0, raw_home_status_cd="FOR_SALE", time_on_zillow="3 days")
    )
    history = [
        {"price": 0, "updated_at": "2023-01-01T00:00:00"},
        {"price": 520000, "updated_at": "2023-06-01T00:00:00"},
    ]

    await PropertyStore(session_factory).apply_update(
        "a",
        {"price": Decimal("520000"), "price_changes": history, "update_at": "2023-06-01T00:00:00"},
    )

    row = await _load(session_factory, "a")
    assert row.price == Decimal("520000")
    assert row.price_changes == history
    assert row.update_at == "2023-06-01T00:00:00"
    # Untouched fields
    assert row.raw_home_status_cd == "FOR_SALE"
    assert row.time_on_zillow == "3 days"


@pytest.mark.asyncio
async def test_apply_update_unknown_zpid_raises(session_factory) -> None:
    with pytest.raises(UpdateWriteError) as exc_info:
        await PropertyStore(session_factory).apply_update("missing", {"raw_home_status_cd": "SOLD"})

    assert exc_info.value.zpid == "missing"


@pytest.mark.asyncio
async def test_apply_update_rejects_non_tracker_fields(session_factory) -> None:
    with pytest.raises(ValueError):
        await PropertyStore(session_factory).apply_update("a", {"note": "hello"})


@pytest.mark.asyncio
async def test_apply_update_empty_fields_is_noop(session_factory) -> None:
    # No row exists, but nothing is written so nothing fails
    await PropertyStore(session_factory).apply_update("missing", {})


def _unreachable_session_factory() -> MagicMock:
    """Session factory whose connection attempt fails like an unreachable Postgres."""
    mock_session = AsyncMock()
    mock_session.execute = AsyncMock(
        side_effect=ConnectionRefusedError(111, "Connect call failed ('127.0.0.1', 1)")
    )
    mock_session.__aenter__ = AsyncMock(return_value=mock_session)
    mock_session.__aexit__ = AsyncMock(return_value=None)
    return MagicMock(return_value=mock_session)


@pytest.mark.asyncio
async def test_fetch_candidates_connection_refused_raises() -> None:
    """Driver-level OSErrors that SQLAlchemy does not wrap still become CandidateFetchError."""
    with pytest.raises(CandidateFetchError) as exc_info:
        await PropertyStore(_unreachable_session_factory()).fetch_candidates()

    assert isinstance(exc_info.value.__cause__, ConnectionRefusedError)


@pytest.mark.asyncio
async def test_apply_update_connection_refused_raises() -> None:
    with pytest.raises(UpdateWriteError) as exc_info:
        await PropertyStore(_unreachable_session_factory()).apply_update(
            "a", {"raw_home_status_cd": "SOLD"}
        )

    assert exc_info.value.zpid == "a"
    assert "Connect call failed" in exc_info.value.message


@pytest.mark.asyncio
async def test_unreachable_store_aborts_run() -> None:
    client = AsyncMock()
    tracker = PriceTracker(
        PropertyStore(_unreachable_session_factory()),
        client_factory=lambda: client,
        sleep=AsyncMock(),
    )

    report = await tracker.run()

    assert report.status == RunStatus.ABORTED
    assert (report.total, report.success, report.failed) == (0, 0, 0)
