"""Read rendered availability markers and turn them into priced slots."""

from __future__ import annotations

from contextlib import suppress
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

import structlog
from bs4 import BeautifulSoup
from playwright.async_api import Page
from playwright.async_api import Error as PlaywrightError

from .hydration import walk
from .locators import DEFAULT_LOCATORS, Locators
from .models import PRICE_SOURCE_DOM_ONLY, AvailabilityBlock, CourtInfo, NormalizedSlot, SlotFilter
from .pricing import PriceIndex
from .utils import add_days, duration_minutes, hhmm_to_minutes, local_timestamp, normalise_hhmm, normalise_whitespace

LOGGER = structlog.get_logger(__name__)

SIZE_TAGS = ("single", "double")
LOCATION_TAGS = ("indoor", "outdoor")

READ_BLOCKS_JS = """
(els) => els.map((el) => ({
  courtId: el.getAttribute('data-court-id'),
  start: el.getAttribute('data-start-hour'),
  end: el.getAttribute('data-end-hour'),
}))
"""


async def read_blocks(page: Page, locators: Locators = DEFAULT_LOCATORS) -> List[AvailabilityBlock]:
    raw: List[dict[str, Any]] = []
    with suppress(PlaywrightError):
        raw = await page.eval_on_selector_all(locators.slot_marker, READ_BLOCKS_JS)
    return [
        AvailabilityBlock(court_id=item.get("courtId"), start_hour=item.get("start"), end_hour=item.get("end"))
        for item in raw or []
    ]


def _pick_tag(values: Iterable[str], candidates: tuple[str, ...]) -> Optional[str]:
    for value in values:
        lowered = value.lower()
        for candidate in candidates:
            if candidate in lowered:
                return candidate
    return None


def _string_values(node: Any) -> List[str]:
    return [value for _, value in walk(node) if isinstance(value, str)]


def build_court_index(hydration: Any) -> Dict[str, CourtInfo]:
    """Court metadata keyed by resource id, read from the hydration payload."""
    courts: Dict[str, CourtInfo] = {}
    if hydration is None:
        return courts
    for _, node in walk(hydration):
        if not isinstance(node, dict):
            continue
        resource_id = node.get("resource_id") or node.get("resourceId")
        name = node.get("name")
        if not resource_id or not isinstance(name, str) or resource_id in courts:
            continue
        tags = [value for key, value in node.items() if key != "name" and isinstance(value, str)]
        for key in ("properties", "attributes", "features"):
            tags.extend(_string_values(node.get(key)))
        courts[str(resource_id)] = CourtInfo(
            resource_id=str(resource_id),
            name=normalise_whitespace(name) or None,
            size=_pick_tag(tags, SIZE_TAGS),
            location=_pick_tag(tags, LOCATION_TAGS),
        )
    return courts


def parse_court_rows(html: str, locators: Locators = DEFAULT_LOCATORS) -> Dict[str, CourtInfo]:
    """Fallback court metadata read from rendered court rows."""
    courts: Dict[str, CourtInfo] = {}
    if not html:
        return courts
    soup = BeautifulSoup(html, "html.parser")
    for row in soup.select(locators.court_row):
        resource_id = row.get(locators.court_row_id_attribute)
        if not resource_id or resource_id in courts:
            continue
        texts = [normalise_whitespace(el.get_text(" ")) for el in row.select(locators.court_row_name)]
        texts = [text for text in texts if text]
        name = texts[0] if texts else normalise_whitespace(row.get_text(" ")) or None
        courts[resource_id] = CourtInfo(
            resource_id=resource_id,
            name=name,
            size=_pick_tag(texts[1:], SIZE_TAGS),
            location=_pick_tag(texts[1:], LOCATION_TAGS),
        )
    return courts


@dataclass
class HarvestStats:
    """Counters describing how raw markers were filtered."""

    blocks: int = 0
    discarded: int = 0
    filtered_duration: int = 0
    filtered_window: int = 0
    zero_duration: int = 0
    priced: int = 0
    dom_only: int = 0
    kept: int = 0

    def to_dict(self) -> dict[str, int]:
        return dict(self.__dict__)


@dataclass
class HarvestContext:
    """Venue-level inputs shared by every marker of one harvest."""

    venue_slug: str
    target: date
    timezone: str
    price_placeholder: str
    venue_name: Optional[str] = None
    slot_filter: SlotFilter = field(default_factory=SlotFilter)


def normalize_blocks(
    blocks: Iterable[AvailabilityBlock],
    ctx: HarvestContext,
    prices: PriceIndex,
    courts: Dict[str, CourtInfo],
) -> tuple[List[NormalizedSlot], HarvestStats]:
    """Normalise, filter, price and sort raw markers."""
    stats = HarvestStats()
    slots: List[NormalizedSlot] = []
    flt = ctx.slot_filter

    for block in blocks:
        stats.blocks += 1
        start = normalise_hhmm(block.start_hour)
        end = normalise_hhmm(block.end_hour)
        if not block.court_id or not start or not end:
            stats.discarded += 1
            continue

        start_minute = hhmm_to_minutes(start)
        end_minute = hhmm_to_minutes(end)
        duration = duration_minutes(start_minute, end_minute) or None
        if duration is None:
            stats.zero_duration += 1

        if flt.duration and duration and duration != flt.duration:
            stats.filtered_duration += 1
            continue
        if flt.earliest_minute is not None and start_minute < flt.earliest_minute:
            stats.filtered_window += 1
            continue
        if flt.latest_minute is not None and start_minute > flt.latest_minute:
            stats.filtered_window += 1
            continue

        resolved = prices.lookup(block.court_id, start, end)
        if resolved:
            price, source = resolved
            stats.priced += 1
        else:
            price, source = ctx.price_placeholder, PRICE_SOURCE_DOM_ONLY
            stats.dom_only += 1

        end_date = add_days(ctx.target, 1) if end_minute < start_minute else ctx.target
        court = courts.get(block.court_id) or CourtInfo(resource_id=block.court_id)
        slots.append(
            NormalizedSlot(
                venue_slug=ctx.venue_slug,
                venue_name=ctx.venue_name,
                resource_id=block.court_id,
                slot_date=ctx.target.isoformat(),
                end_date=end_date.isoformat(),
                start_local=start,
                end_local=end,
                start_minute=start_minute,
                end_minute=end_minute,
                duration=duration,
                start=local_timestamp(ctx.target, start, ctx.timezone),
                end=local_timestamp(end_date, end, ctx.timezone),
                price=price,
                price_source=source,
                court_name=court.name,
                court_size=court.size,
                court_location=court.location,
            )
        )

    slots.sort(key=lambda slot: slot.start_minute)
    stats.kept = len(slots)
    LOGGER.debug("harvest.normalised", venue=ctx.venue_slug, **stats.to_dict())
    return slots, stats
