"""Per-venue availability pipeline, multi-venue aggregation and slot verification."""

from __future__ import annotations

import asyncio
import base64
import re
from contextlib import suppress
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import structlog
from playwright.async_api import Page
from playwright.async_api import Error as PlaywrightError

from .browser import BrowserManager
from .capture import NetworkRecorder
from .config import Settings
from .date_picker import drive_calendar
from .harvester import HarvestContext, build_court_index, normalize_blocks, parse_court_rows, read_blocks
from .hydration import find_venue_name, read_hydration_payload
from .locators import DEFAULT_LOCATORS, Locators
from .models import (
    VERDICT_EMPTY_OK,
    VERDICT_ERROR,
    VERDICT_OK,
    VERDICT_PARTIAL_OK,
    AvailabilityRun,
    CourtInfo,
    RunSummary,
    SlotPriceResult,
    VenueOutcome,
)
from .pricing import acquire_prices
from .queries import AvailabilityQuery, SlotPriceQuery
from .utils import truncate
from .verifier import TAG_DEADLINE_EXCEEDED, verify_on_page

LOGGER = structlog.get_logger(__name__)

HYDRATED_JS = """
({ selector, minDivs }) => {
  const root = document.querySelector(selector);
  return !!root && root.querySelectorAll('div').length > minDivs;
}
"""


def compute_verdict(succeeded: int, failed: int, total_slots: int) -> str:
    """Classify a multi-venue run from its per-venue outcomes."""
    if succeeded == 0:
        return VERDICT_ERROR
    if failed == 0 and total_slots == 0:
        return VERDICT_EMPTY_OK
    if failed > 0 and total_slots >= 1:
        return VERDICT_PARTIAL_OK
    return VERDICT_OK


def summarise_run(outcomes: List[VenueOutcome]) -> RunSummary:
    succeeded = sum(1 for outcome in outcomes if outcome.ok)
    failed = len(outcomes) - succeeded
    total_slots = sum(len(outcome.slots) for outcome in outcomes if outcome.ok)
    return RunSummary(
        requested=len(outcomes),
        succeeded=succeeded,
        failed=failed,
        total_slots=total_slots,
        verdict=compute_verdict(succeeded, failed, total_slots),
    )


async def dismiss_consent(page: Page, locators: Locators = DEFAULT_LOCATORS) -> None:
    """Click common cookie/consent buttons if they appear."""
    for selector in locators.consent_buttons:
        with suppress(PlaywrightError):
            button = await page.query_selector(selector)
            if button:
                await button.click(delay=30)
                await page.wait_for_timeout(150)
    for frame in page.frames:
        with suppress(PlaywrightError):
            button = await frame.query_selector(locators.consent_buttons[0])
            if button:
                await button.click(delay=30)
                await page.wait_for_timeout(150)


async def ensure_hydrated(page: Page, settings: Settings, locators: Locators = DEFAULT_LOCATORS) -> bool:
    """Rough check that the client-side app has rendered its tree."""
    try:
        await page.wait_for_function(
            HYDRATED_JS,
            arg={"selector": locators.app_root, "minDivs": settings.hydration_min_divs},
            timeout=settings.hydration_timeout_seconds * 1000,
        )
    except PlaywrightError:
        return False
    return True


async def open_venue(
    page: Page,
    url: str,
    settings: Settings,
    debug: Dict[str, Any],
    locators: Locators = DEFAULT_LOCATORS,
) -> None:
    """Load a venue page and wait for the app to hydrate."""
    LOGGER.info("venue.load.start", url=url)
    await page.goto(url, wait_until="domcontentloaded", timeout=settings.navigation_timeout_ms)
    with suppress(PlaywrightError):
        await page.wait_for_selector(locators.app_root, timeout=30_000)
    await dismiss_consent(page, locators)
    with suppress(PlaywrightError):
        await page.evaluate("() => window.scrollTo(0, 0)")
    hydrated = await ensure_hydrated(page, settings, locators)
    debug["steps"].append("hydrated" if hydrated else "not_hydrated")
    debug["steps"].append("navigated")
    LOGGER.info("venue.load.complete", url=url, hydrated=hydrated)


async def _stabilise(page: Page) -> None:
    with suppress(PlaywrightError):
        await page.wait_for_load_state("networkidle", timeout=8000)


async def _court_index(page: Page, hydration: Any, locators: Locators) -> Dict[str, CourtInfo]:
    courts = build_court_index(hydration)
    if courts:
        return courts
    html = ""
    with suppress(PlaywrightError):
        html = await page.content()
    return parse_court_rows(html, locators)


async def _attach_page_dumps(page: Page, debug: Dict[str, Any], settings: Settings, screenshot: bool) -> None:
    if screenshot:
        with suppress(PlaywrightError):
            shot = await page.screenshot(full_page=True)
            debug["screenshot"] = base64.b64encode(shot).decode("ascii")
    html = ""
    with suppress(PlaywrightError):
        html = await page.content()
    debug["html_snippet"] = html[: settings.html_snippet_length] if html else None


def _new_debug(slug: str, url: str) -> Dict[str, Any]:
    return {"slug": slug, "url": url, "steps": []}


async def scrape_venue(
    page: Page,
    slug: str,
    query: AvailabilityQuery,
    settings: Settings,
    locators: Locators = DEFAULT_LOCATORS,
    debug: Optional[Dict[str, Any]] = None,
) -> VenueOutcome:
    """Navigate, commit the date, acquire prices and harvest slots for one venue."""
    url = settings.venue_url(slug)
    debug = debug if debug is not None else _new_debug(slug, url)
    recorder = NetworkRecorder(settings.availability_path, urlparse(settings.base_url).hostname or "")
    recorder.attach(page)
    try:
        await open_venue(page, url, settings, debug, locators)

        calendar = await drive_calendar(page, recorder, query.target, settings, locators)
        debug["picker"] = calendar.to_dict()
        await _stabilise(page)

        hydration = await read_hydration_payload(page)
        venue_name = find_venue_name(hydration)
        if not venue_name:
            with suppress(PlaywrightError):
                venue_name = (await page.title()).strip() or None

        prices, acquisition = await acquire_prices(page, recorder, query.target, settings, hydration)
        debug["pricing"] = acquisition.to_dict()

        blocks = await read_blocks(page, locators)
        debug["blocks_found"] = len(blocks)
        debug["banner_unbookable"] = False
        if not blocks:
            with suppress(PlaywrightError):
                banner = page.get_by_text(re.compile(locators.unbookable_banner, re.IGNORECASE)).first
                debug["banner_unbookable"] = await banner.is_visible()

        courts = await _court_index(page, hydration, locators)
        debug["courts_indexed"] = len(courts)
        ctx = HarvestContext(
            venue_slug=slug,
            venue_name=venue_name,
            target=query.target,
            timezone=settings.timezone,
            price_placeholder=settings.price_placeholder,
            slot_filter=query.slot_filter,
        )
        slots, stats = normalize_blocks(blocks, ctx, prices, courts)
        debug["harvest"] = stats.to_dict()
        with suppress(PlaywrightError):
            debug["root_divs"] = await page.eval_on_selector_all(f"{locators.app_root} div", "(els) => els.length")

        await _attach_page_dumps(page, debug, settings, query.screenshot)
        LOGGER.info("venue.complete", venue=slug, slots=len(slots), tier=acquisition.tier)
        return VenueOutcome(slug=slug, ok=True, venue_name=venue_name, slots=slots, debug=debug)
    finally:
        await recorder.drain()
        debug["capture"] = recorder.summary()
        recorder.detach(page)


async def collect_availability(
    query: AvailabilityQuery,
    manager: BrowserManager,
    settings: Settings,
    locators: Locators = DEFAULT_LOCATORS,
) -> AvailabilityRun:
    """Run the venue pipeline serially over one session and classify the run."""
    outcomes: List[VenueOutcome] = []
    async with manager.session() as session:
        for slug in query.venues:
            debug = _new_debug(slug, settings.venue_url(slug))
            try:
                outcome = await scrape_venue(session.page, slug, query, settings, locators, debug=debug)
            except Exception as exc:  # noqa: BLE001
                LOGGER.exception("venue.failed", venue=slug, error=str(exc))
                outcome = VenueOutcome(
                    slug=slug,
                    ok=False,
                    error=truncate(str(exc), settings.error_detail_limit),
                    debug=debug,
                )
            outcomes.append(outcome)

    summary = summarise_run(outcomes)
    slots = [slot for outcome in outcomes if outcome.ok for slot in outcome.slots]
    LOGGER.info("run.complete", target_date=query.target.isoformat(), **summary.to_dict())
    return AvailabilityRun(target_date=query.target, venues=outcomes, slots=slots, summary=summary)


async def _verify(
    page: Page,
    query: SlotPriceQuery,
    settings: Settings,
    locators: Locators,
    debug: Dict[str, Any],
) -> tuple[str, Optional[str]]:
    recorder = NetworkRecorder(settings.availability_path, urlparse(settings.base_url).hostname or "")
    recorder.attach(page)
    try:
        await open_venue(page, debug["url"], settings, debug, locators)
        calendar = await drive_calendar(page, recorder, query.target, settings, locators)
        debug["picker"] = calendar.to_dict()
        await _stabilise(page)

        courts = await _court_index(page, await read_hydration_payload(page), locators)
        court_name = courts[query.resource_id].name if query.resource_id in courts else None
        debug["court_name"] = court_name

        tag, price, trace = await verify_on_page(
            page,
            court_id=query.resource_id,
            start=query.start,
            end=query.end,
            duration=query.duration,
            court_name=court_name,
            max_sweeps=settings.max_scroll_sweeps,
            popover_timeout=settings.popover_timeout_seconds,
            locators=locators,
        )
        debug["verify"] = trace.to_dict()
        await _attach_page_dumps(page, debug, settings, query.screenshot)
        return tag, price
    finally:
        debug["capture"] = recorder.summary()
        recorder.detach(page)


async def verify_slot_price(
    query: SlotPriceQuery,
    manager: BrowserManager,
    settings: Settings,
    locators: Locators = DEFAULT_LOCATORS,
) -> SlotPriceResult:
    """Read the price of one exact slot, bounded by a hard deadline."""
    debug = _new_debug(query.venue, settings.venue_url(query.venue))
    async with manager.session() as session:
        try:
            tag, price = await asyncio.wait_for(
                _verify(session.page, query, settings, locators, debug),
                timeout=settings.verify_deadline_seconds,
            )
        except asyncio.TimeoutError:
            LOGGER.warning("verify.deadline_exceeded", venue=query.venue, resource_id=query.resource_id)
            tag, price = TAG_DEADLINE_EXCEEDED, None

    return SlotPriceResult(
        venue_slug=query.venue,
        resource_id=query.resource_id,
        slot_date=query.target.isoformat(),
        start_local=query.start,
        end_local=query.end,
        duration=query.duration,
        price=price,
        source=tag,
        debug=debug,
    )
