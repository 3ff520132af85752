"""Read the price of one exact slot from its info popover."""

from __future__ import annotations

import re
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Tuple

import structlog
from bs4 import BeautifulSoup, Tag
from playwright.async_api import Page
from playwright.async_api import Error as PlaywrightError

from .locators import DEFAULT_LOCATORS, Locators
from .polling import poll_until
from .utils import hhmm_to_minutes, normalise_whitespace, parse_clock_minutes

LOGGER = structlog.get_logger(__name__)

TAG_POPUP_ROW = "popup_row"
TAG_NOT_CLICKED = "not_clicked"
TAG_TOOLTIP_NOT_FOUND = "tooltip_not_found"
TAG_PRICE_ROW_NOT_FOUND = "price_row_not_found"
TAG_DEADLINE_EXCEEDED = "deadline_exceeded"

_DURATION_RE = re.compile(r"^(?:(\d+)\s*h)?\s*(?:(\d+)\s*m(?:in)?)?$", re.IGNORECASE)
_CURRENCY = r"(?:EUR|USD|GBP|SEK|NOK|DKK|CHF|PLN|€|\$|£)"
_AMOUNT = r"\d+(?:[.,]\d{1,2})?"
_PRICE_RE = re.compile(
    rf"({_CURRENCY}\s*{_AMOUNT}|{_AMOUNT}\s*{_CURRENCY})",
    re.IGNORECASE,
)

SCROLL_GRID_JS = """
(selector) => {
  const scrollable = Array.from(document.querySelectorAll(selector))
    .filter((el) => el.scrollHeight > el.clientHeight + 4);
  const el = scrollable[0] || document.scrollingElement || document.documentElement;
  const before = el.scrollTop;
  el.scrollTop = before + Math.max(200, Math.floor(el.clientHeight * 0.8));
  return { before: before, after: el.scrollTop };
}
"""

Row = Tuple[str, str]


def parse_duration_label(text: str) -> Optional[int]:
    """Minutes for labels like ``1h``, ``90m``, ``1h 30m``; None otherwise."""
    cleaned = normalise_whitespace(text)
    match = _DURATION_RE.match(cleaned)
    if not cleaned or not match or not (match.group(1) or match.group(2)):
        return None
    return int(match.group(1) or 0) * 60 + int(match.group(2) or 0)


def parse_price_label(text: str) -> Optional[str]:
    match = _PRICE_RE.search(normalise_whitespace(text))
    return match.group(1) if match else None


def _is_row_container(tag: Tag) -> bool:
    return len(tag.find_all(True, recursive=False)) == 2


def extract_rows(html: str) -> List[Row]:
    """Two-column ``(left, right)`` text rows found in a popover's markup."""
    soup = BeautifulSoup(html or "", "html.parser")
    rows: List[Row] = []
    for tag in soup.find_all(True):
        if not _is_row_container(tag):
            continue
        left, right = tag.find_all(True, recursive=False)
        # Skip wrappers whose columns are themselves rows.
        if left.find(_is_row_container) or right.find(_is_row_container):
            continue
        if _is_row_container(left) or _is_row_container(right):
            continue
        row = (normalise_whitespace(left.get_text(" ")), normalise_whitespace(right.get_text(" ")))
        if row[0] and row[1] and row not in rows:
            rows.append(row)
    return rows


def names_match(left: str, expected: Optional[str]) -> bool:
    if not expected:
        return True
    a, b = left.lower().strip(), expected.lower().strip()
    return bool(a) and (a in b or b in a)


def is_matching_header(row: Row, court_name: Optional[str], start_minute: int) -> bool:
    left, right = row
    if parse_price_label(right) or parse_duration_label(left) is not None:
        return False
    return names_match(left, court_name) and parse_clock_minutes(right) == start_minute


def match_popover(
    popovers: Sequence[str], court_name: Optional[str], start_minute: int
) -> Optional[List[Row]]:
    """Rows of the first popover whose header names the court and start time."""
    for html in popovers:
        rows = extract_rows(html)
        if any(is_matching_header(row, court_name, start_minute) for row in rows):
            return rows
    return None


def select_price_row(rows: Sequence[Row], duration: int) -> Optional[str]:
    for left, right in rows:
        if parse_duration_label(left) != duration:
            continue
        price = parse_price_label(right)
        if price:
            return price
    return None


def marker_selector(court_id: str, start: str, end: str, locators: Locators = DEFAULT_LOCATORS) -> str:
    """Selector group matching the marker with padded or unpadded hour attributes."""

    def forms(hhmm: str) -> List[str]:
        unpadded = f"{int(hhmm[:2])}:{hhmm[3:]}"
        return [hhmm] if unpadded == hhmm else [hhmm, unpadded]

    return ", ".join(
        locators.exact_slot(court_id, s, e) for s in forms(start) for e in forms(end)
    )


@dataclass
class VerificationTrace:
    """Diagnostics for one verification attempt."""

    clicked: bool = False
    sweeps: int = 0
    scroll_stalled: bool = False
    popovers_seen: int = 0
    matched_rows: List[Row] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "clicked": self.clicked,
            "sweeps": self.sweeps,
            "scroll_stalled": self.scroll_stalled,
            "popovers_seen": self.popovers_seen,
            "matched_rows": [list(row) for row in self.matched_rows],
        }


async def click_slot_marker(
    page: Page,
    selector: str,
    *,
    max_sweeps: int,
    trace: VerificationTrace,
    locators: Locators = DEFAULT_LOCATORS,
) -> bool:
    """Click the marker, scrolling the virtualised grid down until it renders."""
    for sweep in range(max_sweeps + 1):
        marker = page.locator(selector).first
        if await marker.count():
            with suppress(PlaywrightError):
                await marker.scroll_into_view_if_needed(timeout=2000)
            try:
                await marker.click(delay=20, timeout=5000)
            except PlaywrightError as exc:
                LOGGER.info("verify.click_failed", sweep=sweep, error=str(exc))
            else:
                return True
        if sweep == max_sweeps:
            break
        position: Optional[dict[str, Any]] = None
        with suppress(PlaywrightError):
            position = await page.evaluate(SCROLL_GRID_JS, locators.scroll_container)
        trace.sweeps += 1
        if not position or position.get("after") == position.get("before"):
            trace.scroll_stalled = True
            break
        await page.wait_for_timeout(150)
    return False


async def read_popovers(page: Page, locators: Locators = DEFAULT_LOCATORS) -> List[str]:
    popovers = page.locator(locators.popover)
    htmls: List[str] = []
    with suppress(PlaywrightError):
        for index in range(await popovers.count()):
            popover = popovers.nth(index)
            if await popover.is_visible():
                htmls.append(await popover.inner_html())
    return htmls


async def verify_on_page(
    page: Page,
    *,
    court_id: str,
    start: str,
    end: str,
    duration: int,
    court_name: Optional[str],
    max_sweeps: int,
    popover_timeout: float,
    locators: Locators = DEFAULT_LOCATORS,
) -> Tuple[str, Optional[str], VerificationTrace]:
    """Click one marker and read its price; returns ``(tag, price, trace)``."""
    trace = VerificationTrace()
    selector = marker_selector(court_id, start, end, locators)
    trace.clicked = await click_slot_marker(page, selector, max_sweeps=max_sweeps, trace=trace, locators=locators)
    if not trace.clicked:
        LOGGER.warning("verify.not_clicked", court_id=court_id, start=start, sweeps=trace.sweeps)
        return TAG_NOT_CLICKED, None, trace

    start_minute = hhmm_to_minutes(start)

    async def _matched_rows() -> Optional[List[Row]]:
        popovers = await read_popovers(page, locators)
        trace.popovers_seen = max(trace.popovers_seen, len(popovers))
        return match_popover(popovers, court_name, start_minute)

    found, rows = await poll_until(_matched_rows, timeout=popover_timeout, interval=0.25)
    if not found or rows is None:
        LOGGER.warning("verify.tooltip_not_found", court_id=court_id, start=start, seen=trace.popovers_seen)
        return TAG_TOOLTIP_NOT_FOUND, None, trace

    trace.matched_rows = list(rows)
    price = select_price_row(rows, duration)
    if price is None:
        LOGGER.warning("verify.price_row_not_found", court_id=court_id, start=start, duration=duration)
        return TAG_PRICE_ROW_NOT_FOUND, None, trace

    LOGGER.info("verify.price_found", court_id=court_id, start=start, duration=duration, price=price)
    return TAG_POPUP_ROW, price, trace
