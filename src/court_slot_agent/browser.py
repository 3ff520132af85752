"""Shared Chromium instance and per-request browsing sessions."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional

import structlog
from playwright.async_api import Browser, BrowserContext, Page, Playwright, Route, async_playwright
from playwright.async_api import Error as PlaywrightError

from .config import Settings
from .errors import BrowserLaunchError

LOGGER = structlog.get_logger(__name__)

# Runs before any page script in every context.
STEALTH_SCRIPT = """
(() => {
  try {
    Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
    window.chrome = { runtime: {} };
    Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en'] });
    Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
    const origQuery = window.navigator.permissions && window.navigator.permissions.query;
    if (origQuery) {
      window.navigator.permissions.query = (p) =>
        p && p.name === 'notifications'
          ? Promise.resolve({ state: Notification.permission })
          : origQuery.call(window.navigator.permissions, p);
    }
    const patchWebGL = (proto) => {
      if (!proto) return;
      const getParameter = proto.getParameter;
      proto.getParameter = function (param) {
        if (param === 37445) return 'Intel Inc.';
        if (param === 37446) return 'Intel Iris OpenGL Engine';
        return getParameter.call(this, param);
      };
    };
    patchWebGL(window.WebGLRenderingContext && WebGLRenderingContext.prototype);
    patchWebGL(window.WebGL2RenderingContext && WebGL2RenderingContext.prototype);
  } catch (e) {}
})();
"""


@dataclass
class RenderingSession:
    """One isolated browsing context and its page."""

    context: BrowserContext
    page: Page


class BrowserManager:
    """Owns the long-lived Chromium process shared by all requests."""

    def __init__(
        self,
        settings: Settings,
        playwright_factory: Callable[[], object] = async_playwright,
    ):
        self._settings = settings
        self._playwright_factory = playwright_factory
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._lock = asyncio.Lock()

    async def get_browser(self) -> Browser:
        """Return the shared browser, launching it if absent or disconnected."""
        async with self._lock:
            if self._browser is not None and self._browser.is_connected():
                return self._browser

            LOGGER.info("browser.launch.start", headless=self._settings.headless)
            try:
                if self._playwright is None:
                    self._playwright = await self._playwright_factory().start()
                self._browser = await self._playwright.chromium.launch(
                    headless=self._settings.headless,
                    args=list(self._settings.chrome_args),
                )
            except Exception as exc:
                LOGGER.error("browser.launch.failed", error=str(exc))
                raise BrowserLaunchError(f"Unable to launch Chromium: {exc}") from exc

            LOGGER.info("browser.launch.complete")
            return self._browser

    async def _open_context(self) -> BrowserContext:
        browser = await self.get_browser()
        settings = self._settings
        return await browser.new_context(
            viewport={"width": settings.viewport_width, "height": settings.viewport_height},
            device_scale_factor=1,
            is_mobile=False,
            has_touch=False,
            timezone_id=settings.timezone,
            locale=settings.locale,
            user_agent=settings.user_agent,
            extra_http_headers={
                "Accept-Language": settings.accept_language,
                "Upgrade-Insecure-Requests": "1",
            },
        )

    async def _prepare_context(self, context: BrowserContext) -> None:
        await context.add_init_script(STEALTH_SCRIPT)
        await context.route("**/*", self._filter_route)

    async def _filter_route(self, route: Route) -> None:
        """Abort heavy or tracking requests, let everything else through."""
        request = route.request
        url = request.url.lower()
        blocked = request.resource_type in self._settings.blocked_resource_types or any(
            fragment in url for fragment in self._settings.blocked_url_fragments
        )
        with suppress(PlaywrightError):
            if blocked:
                await route.abort()
            else:
                await route.continue_()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[RenderingSession]:
        """Yield a fresh context+page, closing both on every exit path."""
        context = await self._open_context()
        page: Optional[Page] = None
        try:
            await self._prepare_context(context)
            page = await context.new_page()
            yield RenderingSession(context=context, page=page)
        finally:
            if page is not None:
                try:
                    await page.close()
                except PlaywrightError as exc:
                    LOGGER.warning("session.page_close_failed", error=str(exc))
            try:
                await context.close()
            except PlaywrightError as exc:
                LOGGER.warning("session.context_close_failed", error=str(exc))
            LOGGER.debug("session.released")

    async def shutdown(self) -> None:
        """Close the shared browser and stop Playwright."""
        async with self._lock:
            if self._browser is not None:
                with suppress(PlaywrightError):
                    await self._browser.close()
                self._browser = None
            if self._playwright is not None:
                with suppress(PlaywrightError):
                    await self._playwright.stop()
                self._playwright = None
        LOGGER.info("browser.shutdown")


_MANAGER: Optional[BrowserManager] = None


def get_browser_manager(settings: Optional[Settings] = None) -> BrowserManager:
    """Process-wide accessor for the shared browser manager."""
    global _MANAGER
    if _MANAGER is None:
        _MANAGER = BrowserManager(settings or Settings())
    return _MANAGER


async def shutdown_browser_manager() -> None:
    global _MANAGER
    if _MANAGER is not None:
        await _MANAGER.shutdown()
        _MANAGER = None
