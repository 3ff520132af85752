"""Drive the booking page's date picker to a target date."""

from __future__ import annotations

import re
from contextlib import suppress
from datetime import date
from typing import Optional, Tuple

import structlog
from playwright.async_api import Page
from playwright.async_api import Error as PlaywrightError

from .capture import NetworkRecorder
from .config import Settings
from .locators import DEFAULT_LOCATORS, Locators
from .models import CalendarState
from .polling import poll_until
from .utils import normalise_whitespace

LOGGER = structlog.get_logger(__name__)

MONTHS = {
    "january": 1,
    "february": 2,
    "march": 3,
    "april": 4,
    "may": 5,
    "june": 6,
    "july": 7,
    "august": 8,
    "september": 9,
    "october": 10,
    "november": 11,
    "december": 12,
}

_HEADER_RE = re.compile(r"\b(" + "|".join(MONTHS) + r")\b\s+(\d{4})", re.IGNORECASE)


def compute_month_delta(header_text: Optional[str], target: date) -> int:
    """Signed number of months from a header like "October 2025" to ``target``.

    Returns 0 when the header cannot be parsed so the caller still tries the
    day control on whatever month is showing.
    """
    if not header_text:
        return 0
    match = _HEADER_RE.search(header_text)
    if not match:
        return 0
    visible_month = MONTHS[match.group(1).lower()]
    visible_year = int(match.group(2))
    return (target.year - visible_year) * 12 + (target.month - visible_month)


async def open_date_picker(page: Page, locators: Locators = DEFAULT_LOCATORS) -> bool:
    """Click the "Today"/"Tomorrow" pill if one is rendered."""
    for selector in locators.picker_shortcuts:
        shortcut = page.locator(selector).first
        if await shortcut.count():
            with suppress(PlaywrightError):
                await shortcut.click(delay=30)
            await page.wait_for_timeout(150)
            return True
    return False


async def read_header(page: Page, locators: Locators = DEFAULT_LOCATORS) -> Optional[str]:
    text: Optional[str] = None
    with suppress(PlaywrightError):
        text = await page.locator(locators.calendar_header).first.text_content(timeout=2000)
    cleaned = normalise_whitespace(text or "")
    return cleaned or None


async def step_months(
    page: Page,
    delta: int,
    *,
    max_clicks: int,
    locators: Locators = DEFAULT_LOCATORS,
) -> Tuple[int, Optional[str]]:
    """Click next/previous ``abs(delta)`` times, stopping if the control vanishes."""
    if delta == 0:
        return 0, None
    selector = locators.next_month if delta > 0 else locators.previous_month
    clicks = 0
    for _ in range(min(max_clicks, abs(delta))):
        button = page.locator(selector).first
        if await button.count() == 0:
            LOGGER.info("calendar.month.control_missing", clicks=clicks, delta=delta)
            break
        with suppress(PlaywrightError):
            await button.click(delay=30)
        clicks += 1
        await page.wait_for_timeout(120)
    LOGGER.debug("calendar.month.click", clicks=clicks, delta=delta)
    return clicks, selector if clicks else None


async def select_day(page: Page, day_of_month: int, locators: Locators = DEFAULT_LOCATORS) -> bool:
    day_button = page.locator(locators.day(day_of_month)).first
    if not await day_button.count():
        return False
    with suppress(PlaywrightError):
        await day_button.scroll_into_view_if_needed(timeout=2000)
    with suppress(PlaywrightError):
        await day_button.click(force=True, delay=15)
    return True


async def dismiss_overlay(page: Page) -> None:
    with suppress(PlaywrightError):
        await page.keyboard.press("Escape")
    with suppress(PlaywrightError):
        await page.mouse.click(10, 10)


async def wait_for_commit(recorder: NetworkRecorder, target: date, timeout: float) -> bool:
    """Whether an availability response for ``target`` arrived since the recorder's mark."""
    marker = f"date={target.isoformat()}"

    async def _seen() -> Optional[str]:
        return recorder.find_url(marker, since=recorder.commit_mark)

    found, _ = await poll_until(_seen, timeout=timeout, interval=0.2)
    return found


async def read_pill_label(page: Page, locators: Locators = DEFAULT_LOCATORS) -> Optional[str]:
    label: Optional[str] = None
    with suppress(PlaywrightError):
        label = await page.locator(locators.date_pill).first.text_content(timeout=1000)
    cleaned = normalise_whitespace(label or "")
    return cleaned or None


async def drive_calendar(
    page: Page,
    recorder: NetworkRecorder,
    target: date,
    settings: Settings,
    locators: Locators = DEFAULT_LOCATORS,
) -> CalendarState:
    """Walk Closed -> Opened -> MonthAligned -> DaySelected -> Committed.

    Every step is best-effort; failures are recorded on the returned state.
    The recorder is marked just before the day click, so responses from the
    initial page load never count as the commit.
    """
    state = CalendarState(day=target.day)

    state.opened = await open_date_picker(page, locators)
    state.header_text = await read_header(page, locators)
    state.month_delta = compute_month_delta(state.header_text, target)
    state.month_clicks, state.month_click_selector = await step_months(
        page,
        state.month_delta,
        max_clicks=settings.max_month_clicks,
        locators=locators,
    )

    recorder.mark()
    state.day_button_found = await select_day(page, target.day, locators)
    if state.day_button_found:
        await dismiss_overlay(page)
        state.xhr_committed = await wait_for_commit(recorder, target, settings.commit_timeout_seconds)
        state.pill_label = await read_pill_label(page, locators)
    else:
        LOGGER.warning("calendar.day.missing", target_date=target.isoformat(), header=state.header_text)

    LOGGER.info(
        "calendar.complete",
        target_date=target.isoformat(),
        opened=state.opened,
        month_delta=state.month_delta,
        month_clicks=state.month_clicks,
        day_found=state.day_button_found,
        committed=state.xhr_committed,
    )
    return state
