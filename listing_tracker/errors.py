"""
Listing Tracker — Error Taxonomy

Per-record errors (lookup, update write) are converted into failed results
by the tracker and never abort a run. Only CandidateFetchError aborts.
"""

from __future__ import annotations


class TrackerError(Exception):
    """Base class for all price-tracking errors."""


class PropertyLookupError(TrackerError):
    """External lookup failed after the retry budget was exhausted."""

    def __init__(self, zpid: str, message: str):
        super().__init__(message)
        self.zpid = zpid
        self.message = message


class UpdateWriteError(TrackerError):
    """Writing field updates for a single record failed."""

    def __init__(self, zpid: str, message: str):
        super().__init__(message)
        self.zpid = zpid
        self.message = message


class CandidateFetchError(TrackerError):
    """Loading the candidate set failed. Fatal to the run."""
