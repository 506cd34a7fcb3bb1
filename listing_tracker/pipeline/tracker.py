"""
Listing Tracker — Batch Price-Tracking Run

Walks every never-priced listing (price == 0) through the lookup service
under bounded concurrency and fixed pacing, records price changes and
writes one targeted update per record.

Run shape:
    candidates ─┬─ batch (20) ─┬─ chunk (5, concurrent) ── 1s ── chunk ...
                │              └─ ...
                ├── 5s ──
                └─ batch ...

Chunks within a batch and batches within a run are strictly sequential;
only records inside a chunk run concurrently. Per-record failures become
failed results and never stop the run. Only a failed candidate fetch
aborts it.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Sequence, TypeVar

import structlog

from listing_tracker.config import RunStatus, settings
from listing_tracker.engine.price_history import record_observation
from listing_tracker.errors import CandidateFetchError, TrackerError
from listing_tracker.models.property import Property
from listing_tracker.pipeline.lookup import ExternalState, Found, LookupClient, NotFound
from listing_tracker.pipeline.store import PropertyStore

logger = structlog.get_logger(__name__)

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PropertyResult:
    """Outcome of processing a single record."""

    zpid: str
    success: bool
    error: str | None = None


@dataclass
class RunReport:
    """Aggregate statistics for one run. Logged, never persisted."""

    total: int = 0
    success: int = 0
    failed: int = 0
    batches: int = 0
    errors: list[PropertyResult] = field(default_factory=list)
    status: RunStatus = RunStatus.IDLE
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def processed(self) -> int:
        return self.success + self.failed

    def merge(self, results: Sequence[PropertyResult]) -> None:
        """Fold one settled chunk's results into the aggregate."""
        for result in results:
            if result.success:
                self.success += 1
            else:
                self.failed += 1
                self.errors.append(result)

    def as_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "total": self.total,
            "success": self.success,
            "failed": self.failed,
            "batches": self.batches,
            "errors": [{"zpid": e.zpid, "error": e.error} for e in self.errors],
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def plan_batches(
    items: Sequence[T],
    batch_size: int,
    chunk_size: int,
) -> list[list[list[T]]]:
    """
    Partition items into batches of batch_size, each split into chunks of
    chunk_size. Order is preserved.

    >>> [[len(c) for c in b] for b in plan_batches(list(range(47)), 20, 5)]
    [[5, 5, 5, 5], [5, 5, 5, 5], [5, 2]]
    """
    if batch_size < 1 or chunk_size < 1:
        raise ValueError(f"batch_size and chunk_size must be >= 1, got {batch_size}, {chunk_size}")

    batches = []
    for i in range(0, len(items), batch_size):
        batch = items[i:i + batch_size]
        batches.append([list(batch[j:j + chunk_size]) for j in range(0, len(batch), chunk_size)])
    return batches


def build_field_updates(record: Property, state: ExternalState, now: datetime) -> dict[str, Any]:
    """
    Compute the changed fields for one record from its lookup result.

    Status and time-on-market are taken whenever the service reports them;
    price and history only change through record_observation. Fields equal
    to the stored value are dropped.
    """
    reported: dict[str, Any] = {}
    if isinstance(state, NotFound):
        reported["raw_home_status_cd"] = settings.NOT_FOUND_STATUS
    else:
        if state.status_code:
            reported["raw_home_status_cd"] = state.status_code
        if state.time_on_market:
            reported["time_on_zillow"] = state.time_on_market

    updates = {name: value for name, value in reported.items() if getattr(record, name) != value}

    if isinstance(state, Found):
        price_updates = record_observation(record, state.price, now)
        if price_updates is not None:
            updates.update(price_updates.as_fields())

    return updates


# ---------------------------------------------------------------------------
# Tracker
# ---------------------------------------------------------------------------


class PriceTracker:
    """
    Stateless, re-entrant price-tracking run.

    Each call to run() loads a fresh candidate set and returns a fresh
    RunReport. Widths, delays, the sleep function and the clock are
    injectable so pacing can be tested without real I/O.

    Usage:
        tracker = PriceTracker(PropertyStore(session_factory))
        report = await tracker.run()
    """

    def __init__(
        self,
        store: PropertyStore,
        client_factory: Callable[[], LookupClient] = LookupClient,
        batch_size: int | None = None,
        chunk_size: int | None = None,
        chunk_delay: float | None = None,
        batch_delay: float | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self._client_factory = client_factory
        self.batch_size = batch_size or settings.TRACKING_BATCH_SIZE
        self.chunk_size = chunk_size or settings.TRACKING_CHUNK_SIZE
        self.chunk_delay = (
            chunk_delay if chunk_delay is not None else settings.TRACKING_CHUNK_DELAY_SECONDS
        )
        self.batch_delay = (
            batch_delay if batch_delay is not None else settings.TRACKING_BATCH_DELAY_SECONDS
        )
        self._sleep = sleep
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._cancel_event = asyncio.Event()

    def cancel(self) -> None:
        """
        Stop the current run after its in-flight chunk settles.

        A cancel issued before run() starts makes that run stop before its
        first chunk.
        """
        logger.info("price_tracking_cancel_requested")
        self._cancel_event.set()

    async def process_property(self, record: Property, client: LookupClient) -> PropertyResult:
        """
        Look up one record, compute its changes and write them.

        Never raises; every error becomes a failed PropertyResult.
        """
        try:
            state = await client.fetch(record.zpid)
            fields = build_field_updates(record, state, self._clock())
            if fields:
                await self.store.apply_update(record.zpid, fields)
            return PropertyResult(zpid=record.zpid, success=True)

        except TrackerError as e:
            return PropertyResult(zpid=record.zpid, success=False, error=str(e))
        except Exception as e:
            logger.error(
                "price_tracking_property_unexpected_error",
                zpid=record.zpid,
                error=str(e),
                error_type=type(e).__name__,
            )
            return PropertyResult(
                zpid=record.zpid, success=False, error=f"{type(e).__name__}: {e}"
            )

    async def _run_chunk(
        self,
        chunk: Sequence[Property],
        client: LookupClient,
    ) -> list[PropertyResult]:
        return list(
            await asyncio.gather(*(self.process_property(record, client) for record in chunk))
        )

    async def run(self) -> RunReport:
        """
        Execute one full tracking run.

        Returns:
            RunReport with status COMPLETED, CANCELLED, or ABORTED (candidate
            fetch failed, nothing processed).
        """
        try:
            return await self._run()
        finally:
            # A cancel only applies to the run it reached
            self._cancel_event.clear()

    async def _run(self) -> RunReport:
        report = RunReport(status=RunStatus.RUNNING, started_at=self._clock())
        logger.info("price_tracking_started", started_at=report.started_at.isoformat())

        try:
            candidates = await self.store.fetch_candidates()
        except CandidateFetchError as e:
            report.status = RunStatus.ABORTED
            report.finished_at = self._clock()
            logger.error("price_tracking_aborted", error=str(e))
            return report

        report.total = len(candidates)
        logger.info("price_tracking_candidates_found", total=report.total)

        batches = plan_batches(candidates, self.batch_size, self.chunk_size)

        async with self._client_factory() as client:
            for batch_index, chunks in enumerate(batches):
                for chunk_index, chunk in enumerate(chunks):
                    if self._cancel_event.is_set():
                        report.status = RunStatus.CANCELLED
                        break

                    report.merge(await self._run_chunk(chunk, client))

                    if chunk_index < len(chunks) - 1:
                        await self._sleep(self.chunk_delay)

                if report.status == RunStatus.CANCELLED:
                    break

                report.batches += 1
                logger.info(
                    "price_tracking_batch_complete",
                    batch=batch_index + 1,
                    processed=report.processed,
                    total=report.total,
                    success=report.success,
                    failed=report.failed,
                )

                if batch_index < len(batches) - 1 and not self._cancel_event.is_set():
                    await self._sleep(self.batch_delay)

        if report.status == RunStatus.RUNNING:
            report.status = RunStatus.COMPLETED
        report.finished_at = self._clock()

        logger.info(
            "price_tracking_complete",
            status=report.status.value,
            total=report.total,
            success=report.success,
            failed=report.failed,
            batches=report.batches,
        )
        if report.failed:
            logger.error(
                "price_tracking_failures",
                failed=report.failed,
                errors=[{"zpid": e.zpid, "error": e.error} for e in report.errors],
            )
        return report
