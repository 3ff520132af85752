"""Helpers for the framework hydration payload embedded in venue pages."""

from __future__ import annotations

import json
import re
from contextlib import suppress
from typing import Any, Iterator, Optional

import structlog
from bs4 import BeautifulSoup
from playwright.async_api import Page
from playwright.async_api import Error as PlaywrightError

LOGGER = structlog.get_logger(__name__)

UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)
_TENANT_KEY_RE = re.compile(r"^(tenant|club|venue)_?id$", re.IGNORECASE)
_VENUE_NAME_KEYS = ("tenant_name", "tenantName", "club_name", "clubName")


async def read_hydration_payload(page: Page) -> Optional[Any]:
    """Return ``__NEXT_DATA__`` from the live page, or parsed from its markup."""
    payload: Optional[Any] = None
    with suppress(PlaywrightError):
        payload = await page.evaluate("() => window.__NEXT_DATA__ || null")
    if payload:
        return payload

    html = ""
    with suppress(PlaywrightError):
        html = await page.content()
    return parse_hydration_html(html)


def parse_hydration_html(html: str) -> Optional[Any]:
    if not html:
        return None
    soup = BeautifulSoup(html, "html.parser")
    script = soup.find("script", id="__NEXT_DATA__")
    if script is None or not script.string:
        return None
    try:
        return json.loads(script.string)
    except json.JSONDecodeError:
        LOGGER.warning("hydration.json_decode_failed")
        return None


def walk(node: Any) -> Iterator[tuple[Optional[str], Any]]:
    """Depth-first iteration over ``(key, value)`` pairs of a JSON tree."""
    stack: list[tuple[Optional[str], Any]] = [(None, node)]
    while stack:
        key, value = stack.pop()
        yield key, value
        if isinstance(value, dict):
            stack.extend(reversed(list(value.items())))
        elif isinstance(value, list):
            stack.extend((None, item) for item in reversed(value))


def find_tenant_id(payload: Any) -> Optional[str]:
    """Locate the venue UUID, preferring values stored under tenant-like keys."""
    fallback: Optional[str] = None
    for key, value in walk(payload):
        if not isinstance(value, str) or not UUID_RE.match(value):
            continue
        if key and _TENANT_KEY_RE.match(key):
            return value
        if fallback is None:
            fallback = value
    return fallback


def find_venue_name(payload: Any) -> Optional[str]:
    for key, value in walk(payload):
        if key in _VENUE_NAME_KEYS and isinstance(value, str) and value.strip():
            return value.strip()
    return None
