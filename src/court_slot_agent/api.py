"""FastAPI application exposing the availability and slot-price endpoints."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import structlog
from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from . import __version__
from .browser import get_browser_manager, shutdown_browser_manager
from .config import Settings
from .errors import BrowserLaunchError, InvalidRequestError
from .queries import parse_availability_request, parse_slot_price_request
from .scraper import collect_availability, verify_slot_price
from .utils import now_in_timezone

LOGGER = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    yield
    await shutdown_browser_manager()


app = FastAPI(title="Court Slot Agent", version=__version__, lifespan=lifespan)


class SlotModel(BaseModel):
    """One normalised slot."""

    venue_slug: str
    venue_name: Optional[str] = None
    resource_id: str
    slot_date: str
    end_date: str
    start_local: str
    end_local: str
    start_minute: int
    end_minute: int
    duration: Optional[int] = None
    start: str
    end: str
    price: str
    price_source: str
    court_name: Optional[str] = None
    court_size: Optional[str] = None
    court_location: Optional[str] = None


class VenueModel(BaseModel):
    slug: str
    ok: bool
    venue_name: Optional[str] = None
    slots: int
    error: Optional[str] = None


class SummaryModel(BaseModel):
    requested: int
    succeeded: int
    failed: int
    total_slots: int
    verdict: str


class AvailabilityResponse(BaseModel):
    """Response schema for the /availability endpoint."""

    date: str
    venues: List[VenueModel]
    slots: List[SlotModel]
    summary: SummaryModel
    debug: Dict[str, Any] = Field(default_factory=dict)


class SlotPriceResponse(BaseModel):
    """Response schema for the /slot-price endpoint."""

    venue_slug: str
    resource_id: str
    date: str
    start: str
    end: str
    duration: int
    price: Optional[str] = None
    source: str
    debug: Dict[str, Any] = Field(default_factory=dict)


@app.get("/availability", response_model=AvailabilityResponse)
async def availability(
    slug: str = Query("", description="Venue slug, or several separated by commas."),
    date: str = Query("", description="Target date, YYYY-MM-DD."),
    duration: Optional[str] = Query(None, description="Exact slot length in minutes."),
    earliest: Optional[str] = Query(None, description="Earliest start time, HH:MM."),
    latest: Optional[str] = Query(None, description="Latest start time, HH:MM."),
    screenshot: str = Query("", description="Set to 1 to attach a full-page screenshot."),
) -> AvailabilityResponse:
    """Collect normalised, priced slots for one or more venues on a date."""
    try:
        query = parse_availability_request(
            slug,
            date,
            duration=duration,
            earliest=earliest,
            latest=latest,
            screenshot=screenshot == "1",
        )
    except InvalidRequestError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    settings = Settings()
    LOGGER.info("api.availability", venues=query.venues, target_date=query.target.isoformat())
    try:
        run = await collect_availability(query, get_browser_manager(settings), settings)
    except BrowserLaunchError as exc:
        LOGGER.exception("api.browser_unavailable", error=str(exc))
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    return AvailabilityResponse(
        date=run.target_date.isoformat(),
        venues=[
            VenueModel(
                slug=outcome.slug,
                ok=outcome.ok,
                venue_name=outcome.venue_name,
                slots=len(outcome.slots),
                error=outcome.error,
            )
            for outcome in run.venues
        ],
        slots=[SlotModel(**slot.to_dict()) for slot in run.slots],
        summary=SummaryModel(**run.summary.to_dict()),
        debug={outcome.slug: outcome.debug for outcome in run.venues},
    )


@app.get("/slot-price", response_model=SlotPriceResponse)
async def slot_price(
    slug: str = Query(""),
    date: str = Query(""),
    resource_id: str = Query(""),
    start: str = Query(""),
    end: str = Query(""),
    screenshot: str = Query(""),
) -> SlotPriceResponse:
    """Read the price of one exact slot from the booking grid's popover."""
    try:
        query = parse_slot_price_request(slug, date, resource_id, start, end, screenshot=screenshot == "1")
    except InvalidRequestError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    settings = Settings()
    try:
        result = await verify_slot_price(query, get_browser_manager(settings), settings)
    except BrowserLaunchError as exc:
        LOGGER.exception("api.browser_unavailable", error=str(exc))
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    except Exception as exc:  # noqa: BLE001
        LOGGER.exception("api.slot_price_failed", error=str(exc))
        raise HTTPException(status_code=500, detail=f"scrape failed: {exc}") from exc

    return SlotPriceResponse(
        venue_slug=result.venue_slug,
        resource_id=result.resource_id,
        date=result.slot_date,
        start=result.start_local,
        end=result.end_local,
        duration=result.duration,
        price=result.price,
        source=result.source,
        debug=result.debug,
    )


@app.get("/health")
async def health() -> Dict[str, Any]:
    settings = Settings()
    return {
        "ok": True,
        "time_local": now_in_timezone(settings.timezone).isoformat(),
        "tz": settings.timezone,
    }
