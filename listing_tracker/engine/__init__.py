from listing_tracker.engine.price_history import (
    FieldUpdates,
    format_timestamp,
    record_observation,
)

__all__ = [
    "FieldUpdates",
    "format_timestamp",
    "record_observation",
]
