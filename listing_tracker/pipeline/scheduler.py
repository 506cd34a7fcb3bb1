"""
Listing Tracker — Daily Job Trigger

Invokes PriceTracker.run() once per day at TRACKING_RUN_HOUR_UTC:
TRACKING_RUN_MINUTE_UTC (02:00 UTC by default). The trigger holds only the
next run time; all run state lives in the RunReport returned by the
tracker. A failed run is not retried; the next daily slot is the retry.
"""

from __future__ import annotations

import asyncio
import signal
from datetime import datetime, time, timedelta, timezone
from typing import Any, Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from listing_tracker.config import settings
from listing_tracker.pipeline.store import PropertyStore
from listing_tracker.pipeline.tracker import PriceTracker, RunReport

logger = structlog.get_logger(__name__)


def next_run_after(now: datetime, run_at: time) -> datetime:
    """First occurrence of run_at (UTC) strictly after now."""
    candidate = datetime.combine(now.date(), run_at, tzinfo=timezone.utc)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


class TrackingScheduler:
    """
    Async daily trigger for the price-tracking run.

    Checks the clock every SCHEDULER_CHECK_INTERVAL_SECONDS and runs the
    tracker when the next scheduled slot has passed. Runs never overlap:
    the loop awaits each run before checking again.
    """

    def __init__(
        self,
        tracker: PriceTracker,
        run_at: time | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.tracker = tracker
        self.run_at = run_at or time(
            hour=settings.TRACKING_RUN_HOUR_UTC,
            minute=settings.TRACKING_RUN_MINUTE_UTC,
        )
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._shutdown_event = asyncio.Event()
        self._next_run: datetime = next_run_after(self._clock(), self.run_at)

    async def shutdown(self) -> None:
        """Signal graceful shutdown; an in-flight run stops after its current chunk."""
        logger.info("scheduler_shutdown_requested")
        self._shutdown_event.set()
        self.tracker.cancel()

    def _should_run(self) -> bool:
        return self._clock() >= self._next_run

    async def _run_tracking(self) -> RunReport | None:
        """Run the tracker once and schedule the next slot."""
        logger.info("scheduler_tracking_run_start", scheduled_for=self._next_run.isoformat())
        report: RunReport | None = None
        try:
            report = await self.tracker.run()
        except Exception as e:
            logger.error(
                "scheduler_tracking_run_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
        self._next_run = next_run_after(self._clock(), self.run_at)
        logger.info("scheduler_next_run", next_run=self._next_run.isoformat())
        return report

    async def run(self) -> None:
        """
        Main scheduler loop. Runs indefinitely until shutdown is signaled.
        """
        logger.info(
            "scheduler_started",
            run_at=self.run_at.isoformat(),
            next_run=self._next_run.isoformat(),
        )

        check_interval = settings.SCHEDULER_CHECK_INTERVAL_SECONDS

        try:
            while not self._shutdown_event.is_set():
                try:
                    if self._should_run():
                        await self._run_tracking()

                    await asyncio.wait_for(
                        self._shutdown_event.wait(),
                        timeout=check_interval,
                    )
                except asyncio.TimeoutError:
                    # No shutdown signal, keep looping
                    continue

        except asyncio.CancelledError:
            logger.info("scheduler_cancelled")
            raise
        finally:
            logger.info("scheduler_stopped")


async def run_scheduler(session_factory: async_sessionmaker[AsyncSession]) -> None:
    """
    Build the tracker and run the daily trigger with graceful shutdown handling.

    Registers SIGTERM/SIGINT handlers to trigger shutdown.

    Args:
        session_factory: SQLAlchemy async session factory.
    """
    tracker = PriceTracker(PropertyStore(session_factory))
    scheduler = TrackingScheduler(tracker)

    def handle_signal(_signum: int, _frame: Any) -> None:
        """Called by SIGTERM/SIGINT."""
        logger.info("scheduler_signal_received")
        asyncio.create_task(scheduler.shutdown())

    loop = asyncio.get_running_loop()

    try:
        loop.add_signal_handler(signal.SIGTERM, handle_signal, signal.SIGTERM, None)
        loop.add_signal_handler(signal.SIGINT, handle_signal, signal.SIGINT, None)
    except NotImplementedError:
        # Windows doesn't support add_signal_handler for all signals
        logger.warning("signal_handlers_not_supported_on_platform")

    await scheduler.run()
