"""Network observation for a single rendering session."""

from __future__ import annotations

import asyncio
from contextlib import suppress
from typing import Any, List, Optional, Tuple

import structlog
from playwright.async_api import ConsoleMessage, Page, Request, Response
from playwright.async_api import Error as PlaywrightError

LOGGER = structlog.get_logger(__name__)

FRAMEWORK_CHUNK_FRAGMENT = "/_next/"
MAX_FAILED_REQUESTS = 10


class NetworkRecorder:
    """Collects availability responses and troubleshooting counters.

    Attach before the first navigation so responses triggered by the page's
    own calendar interactions are captured as they happen. Every availability
    response gets a sequence number; ``mark()`` remembers the next one so
    readers can ignore traffic for whatever date the page showed first.
    """

    def __init__(self, availability_fragment: str, site_host: str = ""):
        self._fragment = availability_fragment
        self._site_host = site_host
        self._pending: set[asyncio.Task] = set()
        self.captured: List[Tuple[int, Any]] = []
        self.availability_urls: List[str] = []
        self.commit_mark = 0
        self.chunks_ok = 0
        self.chunks_blocked = 0
        self.failed_requests: List[dict[str, str]] = []
        self.console_errors: List[str] = []
        self.console_infos: List[str] = []

    def attach(self, page: Page) -> None:
        page.on("response", self._on_response)
        page.on("requestfailed", self._on_request_failed)
        page.on("console", self._on_console)

    def detach(self, page: Page) -> None:
        for event, handler in (
            ("response", self._on_response),
            ("requestfailed", self._on_request_failed),
            ("console", self._on_console),
        ):
            with suppress(Exception):
                page.remove_listener(event, handler)

    def _on_response(self, response: Response) -> None:
        url = response.url
        status = response.status
        if FRAMEWORK_CHUNK_FRAGMENT in url:
            if 200 <= status < 300:
                self.chunks_ok += 1
            else:
                self.chunks_blocked += 1
        if self._fragment in url and 200 <= status < 300:
            sequence = len(self.availability_urls)
            self.availability_urls.append(url)
            task = asyncio.ensure_future(self._read_json(response, sequence))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _read_json(self, response: Response, sequence: int) -> None:
        try:
            body = await response.json()
        except (PlaywrightError, ValueError) as exc:
            LOGGER.debug("capture.body_unreadable", url=response.url, error=str(exc))
            return
        if body:
            self.captured.append((sequence, body))
            LOGGER.debug("capture.payload", url=response.url, sequence=sequence)

    @property
    def payloads(self) -> List[Any]:
        return [body for _, body in self.captured]

    def mark(self) -> int:
        """Start a new window; later reads only see responses from here on."""
        self.commit_mark = len(self.availability_urls)
        return self.commit_mark

    def payloads_since(self, mark: int) -> List[Any]:
        """Bodies of responses that arrived at or after ``mark``, in response order."""
        return [body for sequence, body in sorted(self.captured, key=lambda item: item[0]) if sequence >= mark]

    def _on_request_failed(self, request: Request) -> None:
        url = request.url
        if (self._site_host and self._site_host in url) or FRAMEWORK_CHUNK_FRAGMENT in url:
            self.failed_requests.append(
                {"url": url[:180], "error": request.failure or "unknown"}
            )

    def _on_console(self, message: ConsoleMessage) -> None:
        if message.type == "error":
            self.console_errors.append(message.text)
        else:
            self.console_infos.append(f"{message.type}: {message.text}")

    async def drain(self) -> None:
        """Wait for in-flight body reads to finish."""
        if self._pending:
            with suppress(Exception):
                await asyncio.gather(*list(self._pending), return_exceptions=True)

    def find_url(self, fragment: str, since: int = 0) -> Optional[str]:
        """Most recent availability URL containing ``fragment`` recorded at or after ``since``."""
        for url in reversed(self.availability_urls[since:]):
            if fragment in url:
                return url
        return None

    @property
    def saw_availability(self) -> bool:
        return bool(self.availability_urls)

    def summary(self) -> dict[str, Any]:
        return {
            "saw_availability": self.saw_availability,
            "last_availability_url": self.availability_urls[-1] if self.availability_urls else None,
            "captured_payloads": len(self.captured),
            "commit_mark": self.commit_mark,
            "next": {
                "ok": self.chunks_ok,
                "blocked": self.chunks_blocked,
                "failed": self.failed_requests[:MAX_FAILED_REQUESTS],
            },
            "errors": self.console_errors[:50],
            "infos": self.console_infos[:50],
        }
