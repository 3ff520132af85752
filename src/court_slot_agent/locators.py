"""Structural selectors for each kind of element the pipeline reads.

Markup drift on the booking site should only require edits here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Tuple

CONSENT_SELECTORS = (
    "#onetrust-accept-btn-handler",
    'button:has-text("Accept all")',
    'button:has-text("ACCEPT ALL")',
    'button:has-text("Accept")',
    '[aria-label="Accept all"]',
    '[data-testid*="consent"] button',
    'button:has-text("I agree")',
    'button:has-text("Agree")',
    'button:has-text("OK")',
)


@dataclass(frozen=True)
class Locators:
    """CSS/Playwright selectors grouped by data kind."""

    app_root: str = "#__next"
    consent_buttons: Tuple[str, ...] = field(default=CONSENT_SELECTORS)
    picker_shortcuts: Tuple[str, ...] = ('button:has-text("Today")', 'button:has-text("Tomorrow")')
    calendar_header: str = "div.text-center.font-medium"
    next_month: str = 'button:has(svg path[d="M9 5l7 7-7 7"])'
    previous_month: str = 'button:has(svg path[d="M15 19l-7-7 7-7"])'
    day_button: str = 'div.text-center > button.rounded-full:text-is("{day}")'
    date_pill: str = "button.flex.cursor-pointer.items-center.text-sm.font-medium"
    slot_marker: str = "div[data-court-id][data-start-hour][data-end-hour]"
    exact_slot_marker: str = 'div[data-court-id="{court_id}"][data-start-hour="{start}"][data-end-hour="{end}"]'
    unbookable_banner: str = r"You cannot book in the selected date"
    popover: str = '[role="tooltip"], [data-radix-popper-content-wrapper], [role="dialog"]'
    court_row: str = "[data-resource-id]"
    court_row_id_attribute: str = "data-resource-id"
    court_row_name: str = "p, span, h3, h4"
    scroll_container: str = '[data-testid="availability-grid"], .overflow-y-auto, .overflow-auto'

    def day(self, day_of_month: int) -> str:
        return self.day_button.format(day=day_of_month)

    def exact_slot(self, court_id: str, start: str, end: str) -> str:
        return self.exact_slot_marker.format(court_id=court_id, start=start, end=end)


DEFAULT_LOCATORS = Locators()
