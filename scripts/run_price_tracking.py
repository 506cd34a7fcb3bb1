"""
Listing Tracker — Manual Price-Tracking Run

Runs the price-tracking job once, outside the daily trigger, and prints the
run report as JSON. Useful after an ingestion backfill or to verify a new
lookup endpoint.

Usage:
    python scripts/run_price_tracking.py
    python scripts/run_price_tracking.py --batch-size 10 --chunk-size 2
    python scripts/run_price_tracking.py --no-delay
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Resolve project root so this script can be run from any working directory
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from listing_tracker.config import RunStatus, settings
from listing_tracker.main import configure_logging
from listing_tracker.pipeline.store import PropertyStore
from listing_tracker.pipeline.tracker import PriceTracker


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run the listing price-tracking job once and print the report.",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=settings.TRACKING_BATCH_SIZE,
        help=f"Records per batch (default: {settings.TRACKING_BATCH_SIZE}).",
    )
    parser.add_argument(
        "--chunk-size",
        type=int,
        default=settings.TRACKING_CHUNK_SIZE,
        help=f"Concurrent lookups per chunk (default: {settings.TRACKING_CHUNK_SIZE}).",
    )
    parser.add_argument(
        "--no-delay",
        action="store_true",
        help="Skip the pacing delays between chunks and batches.",
    )
    return parser.parse_args()


async def main() -> None:
    args = parse_args()
    configure_logging(log_level=settings.LOG_LEVEL)

    engine = create_async_engine(settings.DATABASE_URL, echo=False)
    session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    tracker = PriceTracker(
        PropertyStore(session_factory),
        batch_size=args.batch_size,
        chunk_size=args.chunk_size,
        chunk_delay=0.0 if args.no_delay else None,
        batch_delay=0.0 if args.no_delay else None,
    )

    try:
        report = await tracker.run()
    finally:
        await engine.dispose()

    print(json.dumps(report.as_dict(), indent=2))
    if report.status == RunStatus.ABORTED:
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
