"""Validation of inbound availability and slot-price queries."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Optional, Union

from .errors import InvalidRequestError
from .models import SlotFilter
from .utils import duration_minutes, hhmm_to_minutes, normalise_hhmm

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_SLUG_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._~-]*$")


@dataclass(frozen=True)
class AvailabilityQuery:
    """Validated availability request."""

    venues: List[str]
    target: date
    slot_filter: SlotFilter
    screenshot: bool = False


@dataclass(frozen=True)
class SlotPriceQuery:
    """Validated single-slot price request."""

    venue: str
    target: date
    resource_id: str
    start: str
    end: str
    screenshot: bool = False

    @property
    def duration(self) -> int:
        return duration_minutes(hhmm_to_minutes(self.start), hhmm_to_minutes(self.end))


def parse_target_date(value: Optional[str]) -> date:
    text = (value or "").strip()
    if not _DATE_RE.match(text):
        raise InvalidRequestError(f"Bad or missing date: {value!r} (expected YYYY-MM-DD)")
    try:
        return date.fromisoformat(text)
    except ValueError as exc:
        raise InvalidRequestError(f"Bad or missing date: {value!r}") from exc


def parse_venues(value: Union[str, Iterable[str], None]) -> List[str]:
    """Split a comma separated list of venue slugs, dropping duplicates."""
    raw = value.split(",") if isinstance(value, str) else list(value or [])
    venues: List[str] = []
    for item in raw:
        slug = str(item).strip()
        if not slug:
            continue
        if not _SLUG_RE.match(slug):
            raise InvalidRequestError(f"Bad venue slug: {slug!r}")
        if slug not in venues:
            venues.append(slug)
    if not venues:
        raise InvalidRequestError("Bad or missing venue slug")
    return venues


def parse_clock(value: Optional[str], name: str) -> Optional[str]:
    if value is None or str(value).strip() == "":
        return None
    normalised = normalise_hhmm(value)
    if normalised is None:
        raise InvalidRequestError(f"Bad {name}: {value!r} (expected HH:MM)")
    return normalised


def parse_duration(value: Union[str, int, None]) -> Optional[int]:
    if value is None or str(value).strip() in ("", "0"):
        return None
    try:
        minutes = int(str(value).strip())
    except ValueError as exc:
        raise InvalidRequestError(f"Bad duration: {value!r}") from exc
    if minutes < 0 or minutes >= 1440:
        raise InvalidRequestError(f"Bad duration: {value!r} (expected minutes between 1 and 1439)")
    return minutes


def parse_availability_request(
    venues: Union[str, Iterable[str], None],
    target_date: Optional[str],
    *,
    duration: Union[str, int, None] = None,
    earliest: Optional[str] = None,
    latest: Optional[str] = None,
    screenshot: bool = False,
) -> AvailabilityQuery:
    earliest_hhmm = parse_clock(earliest, "earliest")
    latest_hhmm = parse_clock(latest, "latest")
    slot_filter = SlotFilter(
        duration=parse_duration(duration),
        earliest_minute=hhmm_to_minutes(earliest_hhmm) if earliest_hhmm else None,
        latest_minute=hhmm_to_minutes(latest_hhmm) if latest_hhmm else None,
    )
    if (
        slot_filter.earliest_minute is not None
        and slot_filter.latest_minute is not None
        and slot_filter.earliest_minute > slot_filter.latest_minute
    ):
        raise InvalidRequestError("earliest must not be after latest")
    return AvailabilityQuery(
        venues=parse_venues(venues),
        target=parse_target_date(target_date),
        slot_filter=slot_filter,
        screenshot=screenshot,
    )


def parse_slot_price_request(
    venue: Optional[str],
    target_date: Optional[str],
    resource_id: Optional[str],
    start: Optional[str],
    end: Optional[str],
    *,
    screenshot: bool = False,
) -> SlotPriceQuery:
    venues = parse_venues(venue)
    if len(venues) != 1:
        raise InvalidRequestError("Slot price lookups take exactly one venue")
    resource = (resource_id or "").strip()
    if not resource:
        raise InvalidRequestError("Bad or missing resource id")
    start_hhmm = parse_clock(start, "start")
    end_hhmm = parse_clock(end, "end")
    if start_hhmm is None or end_hhmm is None:
        raise InvalidRequestError("Both start and end are required")
    if start_hhmm == end_hhmm:
        raise InvalidRequestError("start and end must differ")
    return SlotPriceQuery(
        venue=venues[0],
        target=parse_target_date(target_date),
        resource_id=resource,
        start=start_hhmm,
        end=end_hhmm,
        screenshot=screenshot,
    )
