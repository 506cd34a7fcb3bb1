"""
Listing Tracker — Price-History Recorder

Pure computation: given a record's stored price/history and a freshly
observed price, produce the field updates for price, price_changes and
update_at. No I/O and no clock reads; `now` is always passed in.

Algorithm ("append on change"):
    1. No price signal (None or 0) → no change.
    2. Observed price equals the current price (Decimal equality) → no change.
    3. Empty history → seed with {current price, inserted_at or now}.
    4. Append {observed price, now}.
    5. Return the new history, the new price and update_at = now.

Timestamps are normalised to whole-second UTC without an offset
("YYYY-MM-DDTHH:MM:SS"); downstream date-range filtering depends on it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Protocol

import structlog

logger = structlog.get_logger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"


class TrackedRecord(Protocol):
    """The record fields the recorder reads."""

    price: Any
    price_changes: list[dict[str, Any]] | None
    inserted_at: datetime | str | None


@dataclass(frozen=True)
class FieldUpdates:
    """Price-affecting field updates for a single record."""

    price_changes: list[dict[str, Any]]
    price: Decimal
    update_at: str

    def as_fields(self) -> dict[str, Any]:
        return {
            "price_changes": self.price_changes,
            "price": self.price,
            "update_at": self.update_at,
        }


def format_timestamp(value: datetime | str) -> str:
    """
    Normalise a timestamp to whole-second UTC, e.g. "2023-06-01T00:00:00".

    Naive datetimes are taken to be UTC already. Strings are parsed as ISO
    8601 first (a trailing "Z" is accepted).
    """
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime(TIMESTAMP_FORMAT)


def to_price(value: Any) -> Decimal | None:
    """Coerce a raw price to Decimal. None when missing or unparseable."""
    if value is None or value == "":
        return None
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def _json_price(value: Decimal) -> int | float:
    # History is stored as JSON, which has no Decimal
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def record_observation(
    record: TrackedRecord,
    observed_price: Any,
    now: datetime,
) -> FieldUpdates | None:
    """
    Compute price/history updates for one observation.

    Args:
        record: Record with price, price_changes and inserted_at.
        observed_price: Price reported by the lookup service (may be None).
        now: Observation time.

    Returns:
        FieldUpdates when the price changed, otherwise None. The record's
        own price_changes list is never mutated.
    """
    new_price = to_price(observed_price)
    if new_price is None or new_price == 0:
        return None

    current_price = to_price(record.price) or Decimal("0")
    if new_price == current_price:
        return None

    observed_at = format_timestamp(now)
    history = list(record.price_changes or [])

    if not history:
        seeded_at = format_timestamp(record.inserted_at) if record.inserted_at else observed_at
        history.append({"price": _json_price(current_price), "updated_at": seeded_at})

    history.append({"price": _json_price(new_price), "updated_at": observed_at})

    logger.debug(
        "price_history_recorded",
        old_price=str(current_price),
        new_price=str(new_price),
        history_length=len(history),
    )

    return FieldUpdates(price_changes=history, price=new_price, update_at=observed_at)
