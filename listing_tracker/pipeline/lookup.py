"""
Listing Tracker — Property Lookup Client

Fetches the live price/status of a single listing from the external lookup
service:

    GET {LOOKUP_BASE_URL}{LOOKUP_PATH}?zpid=<zpid>
    → {"data": {"property": null | {"price", "keystoneHomeStatus", "timeOnZillow"}}}

A null property means the listing has left the source inventory and is
returned as NotFound, not raised. Transport errors, non-2xx responses and
malformed bodies are retried with linear backoff (attempt × base delay);
after the last attempt PropertyLookupError is raised.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Union

import httpx
import structlog
from pydantic import BaseModel, Field, ValidationError, field_validator

from listing_tracker.config import settings
from listing_tracker.engine.price_history import to_price
from listing_tracker.errors import PropertyLookupError

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Pydantic Response Models
# ---------------------------------------------------------------------------


class LookupProperty(BaseModel):
    """Listing state reported by the lookup service. Every field is optional."""

    price: Decimal | None = Field(default=None, description="Current list price")
    keystoneHomeStatus: str | None = Field(default=None, description="Listing status code")
    timeOnZillow: str | None = Field(default=None, description="Opaque time-on-market string")

    @field_validator("price", mode="before")
    @classmethod
    def parse_decimal(cls, v: Any) -> Decimal | None:
        """Safely convert price values to Decimal. Never use float for money."""
        return to_price(v)


class LookupData(BaseModel):
    property: LookupProperty | None = None


class LookupResponse(BaseModel):
    """Top-level response body from the lookup endpoint."""

    data: LookupData | None = None


# ---------------------------------------------------------------------------
# Tagged result
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Found:
    """The listing exists; any field may be absent."""

    price: Decimal | None = None
    status_code: str | None = None
    time_on_market: str | None = None


@dataclass(frozen=True)
class NotFound:
    """The service explicitly reported the listing as missing."""


ExternalState = Union[Found, NotFound]


def to_external_state(response: LookupResponse) -> ExternalState:
    """Map the raw response body onto Found | NotFound."""
    if response.data is None or response.data.property is None:
        return NotFound()
    prop = response.data.property
    return Found(
        price=prop.price,
        status_code=prop.keystoneHomeStatus or None,
        time_on_market=prop.timeOnZillow or None,
    )


# ---------------------------------------------------------------------------
# API Client
# ---------------------------------------------------------------------------


class LookupClient:
    """
    Async client for the per-zpid lookup service.

    One httpx.AsyncClient is held for the lifetime of the context so that
    keep-alive connections are reused across the whole run.

    Usage:
        async with LookupClient() as client:
            state = await client.fetch("12345678")
    """

    def __init__(
        self,
        base_url: str | None = None,
        path: str | None = None,
        timeout: float | None = None,
        max_attempts: int | None = None,
        base_delay: float | None = None,
    ):
        self._base_url = base_url or settings.LOOKUP_BASE_URL
        self._path = path or settings.LOOKUP_PATH
        self._timeout = timeout if timeout is not None else settings.LOOKUP_TIMEOUT_SECONDS
        self._max_attempts = max_attempts or settings.LOOKUP_MAX_ATTEMPTS
        self._base_delay = base_delay if base_delay is not None else settings.LOOKUP_BACKOFF_SECONDS
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> LookupClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={
                "Connection": "keep-alive",
                "Accept": "application/json",
            },
            timeout=self._timeout,
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _request(self, zpid: str) -> LookupResponse:
        assert self._client is not None, "Client not initialized. Use 'async with'."

        response = await self._client.get(self._path, params={"zpid": zpid})
        response.raise_for_status()
        return LookupResponse.model_validate(response.json())

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    async def fetch(self, zpid: str) -> ExternalState:
        """
        Look up a single listing.

        Args:
            zpid: External listing identifier.

        Returns:
            Found with whichever fields the service reported, or NotFound.

        Raises:
            PropertyLookupError: every attempt failed.
        """
        last_error = "Unknown error"

        for attempt in range(1, self._max_attempts + 1):
            try:
                response = await self._request(zpid)
                state = to_external_state(response)
                logger.debug(
                    "lookup_fetch_complete",
                    zpid=zpid,
                    attempt=attempt,
                    found=isinstance(state, Found),
                )
                return state

            except (httpx.HTTPError, ValidationError, ValueError) as e:
                last_error = str(e) or type(e).__name__
                logger.warning(
                    "lookup_attempt_failed",
                    zpid=zpid,
                    attempt=attempt,
                    max_attempts=self._max_attempts,
                    error=last_error,
                    error_type=type(e).__name__,
                )

            if attempt < self._max_attempts:
                await asyncio.sleep(attempt * self._base_delay)

        raise PropertyLookupError(
            zpid,
            f"API failed for zpid {zpid} after {self._max_attempts} attempts: {last_error}",
        )
