"""
Shared fixtures and Playwright fakes for the court slot agent tests.

No browser is launched; pages, contexts and browsers are mocks.
"""

from contextlib import asynccontextmanager
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from court_slot_agent.config import Settings
from court_slot_agent.locators import DEFAULT_LOCATORS


@pytest.fixture
def settings():
    return Settings(
        settle_window_seconds=0,
        commit_timeout_seconds=0.05,
        popover_timeout_seconds=0.2,
        verify_deadline_seconds=1,
        hydration_timeout_seconds=0.05,
    )


class FakeManager:
    """Stand-in for BrowserManager that counts session releases."""

    def __init__(self):
        self.acquired = 0
        self.released = 0
        self.page = MagicMock()

    @asynccontextmanager
    async def session(self):
        self.acquired += 1
        try:
            yield SimpleNamespace(page=self.page, context=MagicMock())
        finally:
            self.released += 1


@pytest.fixture
def fake_manager():
    return FakeManager()


def make_browser_stack():
    """Browser -> context -> page mocks wired the way Playwright returns them."""
    page = MagicMock()
    page.close = AsyncMock()
    context = MagicMock()
    context.new_page = AsyncMock(return_value=page)
    context.add_init_script = AsyncMock()
    context.route = AsyncMock()
    context.close = AsyncMock()
    browser = MagicMock()
    browser.is_connected.return_value = True
    browser.new_context = AsyncMock(return_value=context)
    browser.close = AsyncMock()
    return browser, context, page


class FakeLocator:
    def __init__(self, count=0, text=None, on_click=None):
        self._count = count
        self._text = text
        self._on_click = on_click
        self.clicks = 0

    @property
    def first(self):
        return self

    async def count(self):
        return self._count

    async def click(self, **kwargs):
        self.clicks += 1
        if self._on_click:
            self._on_click()

    async def text_content(self, **kwargs):
        return self._text

    async def scroll_into_view_if_needed(self, **kwargs):
        return None


class FakePopoverSet:
    def __init__(self, htmls):
        self._htmls = list(htmls)

    async def count(self):
        return len(self._htmls)

    def nth(self, index):
        return SimpleNamespace(
            is_visible=AsyncMock(return_value=True),
            inner_html=AsyncMock(return_value=self._htmls[index]),
        )


class FakeBookingPage:
    """Venue page that replays availability traffic through ``page.on`` handlers.

    ``initial`` is emitted on navigation, ``on_day_click`` when the day control
    is clicked. Both are ``(url, body)`` pairs or None.
    """

    def __init__(
        self,
        *,
        header="October 2025",
        day_present=True,
        initial=None,
        on_day_click=None,
        hydration=None,
        blocks=(),
        popovers=(),
    ):
        self.handlers = {}
        self.header = header
        self.initial = initial
        self.on_day_click = on_day_click
        self.hydration = hydration
        self.blocks = list(blocks)
        self.popovers = list(popovers)
        self.popovers_open = False
        self.frames = []
        self.keyboard = SimpleNamespace(press=AsyncMock())
        self.mouse = SimpleNamespace(click=AsyncMock())
        self.day_locator = FakeLocator(count=1 if day_present else 0, on_click=self._day_clicked)
        self.marker_locator = FakeLocator(count=1, on_click=self._marker_clicked)

    def on(self, event, handler):
        self.handlers.setdefault(event, []).append(handler)

    def remove_listener(self, event, handler):
        self.handlers.get(event, []).remove(handler)

    def emit(self, url, body):
        response = MagicMock()
        response.url = url
        response.status = 200
        response.json = AsyncMock(return_value=body)
        for handler in list(self.handlers.get("response", [])):
            handler(response)

    def _day_clicked(self):
        if self.on_day_click:
            self.emit(*self.on_day_click)

    def _marker_clicked(self):
        self.popovers_open = True

    def locator(self, selector):
        if selector == DEFAULT_LOCATORS.calendar_header:
            return FakeLocator(count=1, text=self.header)
        if selector == DEFAULT_LOCATORS.date_pill:
            return FakeLocator(count=1, text="Tue, Oct 14")
        if selector == DEFAULT_LOCATORS.popover:
            return FakePopoverSet(self.popovers if self.popovers_open else [])
        if ":text-is(" in selector:
            return self.day_locator
        if '[data-court-id="' in selector:
            return self.marker_locator
        return FakeLocator()

    def get_by_text(self, pattern):
        return SimpleNamespace(first=SimpleNamespace(is_visible=AsyncMock(return_value=not self.blocks)))

    async def goto(self, url, **kwargs):
        if self.initial:
            self.emit(*self.initial)

    async def wait_for_selector(self, selector, **kwargs):
        return None

    async def wait_for_function(self, script, **kwargs):
        return True

    async def wait_for_load_state(self, state=None, **kwargs):
        return None

    async def wait_for_timeout(self, ms):
        return None

    async def query_selector(self, selector):
        return None

    async def evaluate(self, script, arg=None):
        if "__NEXT_DATA__" in script:
            return self.hydration
        return None

    async def eval_on_selector_all(self, selector, script):
        if selector == DEFAULT_LOCATORS.slot_marker:
            return list(self.blocks)
        return 0

    async def content(self):
        return "<html><body></body></html>"

    async def title(self):
        return "Venue"


def make_playwright_factory(*browsers, launch_error=None):
    playwright = MagicMock()
    if launch_error is not None:
        playwright.chromium.launch = AsyncMock(side_effect=launch_error)
    else:
        playwright.chromium.launch = AsyncMock(side_effect=list(browsers))
    playwright.stop = AsyncMock()
    factory = MagicMock()
    factory.return_value.start = AsyncMock(return_value=playwright)
    return factory, playwright
