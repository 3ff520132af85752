"""Shared data models used across the court slot agent."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Optional

PRICE_SOURCE_NETWORK = "network"
PRICE_SOURCE_RESOURCE_TIMING = "resource_timing"
PRICE_SOURCE_PROBE = "probe"
PRICE_SOURCE_DOM_ONLY = "DOM-only"

VERDICT_OK = "ok"
VERDICT_PARTIAL_OK = "partial_ok"
VERDICT_EMPTY_OK = "empty_ok"
VERDICT_ERROR = "error"


@dataclass
class CalendarState:
    """What happened while driving the date picker for one navigation."""

    day: int
    opened: bool = False
    header_text: Optional[str] = None
    month_delta: int = 0
    month_clicks: int = 0
    month_click_selector: Optional[str] = None
    day_button_found: bool = False
    xhr_committed: Optional[bool] = None
    pill_label: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class AvailabilityBlock:
    """Raw availability marker as rendered in the booking grid."""

    court_id: Optional[str]
    start_hour: Optional[str]
    end_hour: Optional[str]


@dataclass(frozen=True)
class CourtInfo:
    """Display metadata for one bookable court."""

    resource_id: str
    name: Optional[str] = None
    size: Optional[str] = None
    location: Optional[str] = None


@dataclass(frozen=True)
class SlotFilter:
    """Optional constraints applied while normalising slots."""

    duration: Optional[int] = None
    earliest_minute: Optional[int] = None
    latest_minute: Optional[int] = None


@dataclass
class NormalizedSlot:
    """Structured representation of a single bookable slot."""

    venue_slug: str
    venue_name: Optional[str]
    resource_id: str
    slot_date: str
    end_date: str
    start_local: str
    end_local: str
    start_minute: int
    end_minute: int
    duration: Optional[int]
    start: str
    end: str
    price: str
    price_source: str
    court_name: Optional[str] = None
    court_size: Optional[str] = None
    court_location: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class VenueOutcome:
    """Result of running the pipeline for one venue."""

    slug: str
    ok: bool
    venue_name: Optional[str] = None
    slots: list[NormalizedSlot] = field(default_factory=list)
    error: Optional[str] = None
    debug: dict[str, Any] = field(default_factory=dict)


@dataclass
class RunSummary:
    """Aggregate outcome of a multi-venue availability run."""

    requested: int
    succeeded: int
    failed: int
    total_slots: int
    verdict: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class AvailabilityRun:
    """Everything returned for an availability request."""

    target_date: date
    venues: list[VenueOutcome]
    slots: list[NormalizedSlot]
    summary: RunSummary


@dataclass
class SlotPriceResult:
    """Outcome of verifying the price of one exact slot."""

    venue_slug: str
    resource_id: str
    slot_date: str
    start_local: str
    end_local: str
    duration: int
    price: Optional[str]
    source: str
    debug: dict[str, Any] = field(default_factory=dict)
