"""Price acquisition: passive capture, resource-timing replay, endpoint probing."""

from __future__ import annotations

import asyncio
from contextlib import suppress
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable, List, Optional, Tuple

import structlog
from playwright.async_api import Page
from playwright.async_api import Error as PlaywrightError

from .capture import NetworkRecorder
from .config import Settings
from .hydration import find_tenant_id
from .models import PRICE_SOURCE_NETWORK, PRICE_SOURCE_PROBE, PRICE_SOURCE_RESOURCE_TIMING
from .utils import hhmm_to_minutes, minutes_to_hhmm, normalise_hhmm, normalise_whitespace

LOGGER = structlog.get_logger(__name__)

_RESOURCE_KEYS = ("resource_id", "resourceId", "court_id", "courtId")
_DATE_KEYS = ("start_date", "startDate", "date")
_START_KEYS = ("start_time", "startTime", "start")
_DURATION_KEYS = ("duration", "duration_minutes", "durationMinutes")

LATEST_RESOURCE_JS = """
(fragment) => {
  const urls = performance.getEntriesByType('resource')
    .map((entry) => entry.name)
    .filter((name) => name.includes(fragment));
  return urls.length ? urls[urls.length - 1] : null;
}
"""

FETCH_JSON_JS = """
async (url) => {
  try {
    const res = await fetch(url, { credentials: 'include', headers: { accept: 'application/json' } });
    if (!res.ok) return { status: res.status, body: null };
    return { status: res.status, body: await res.json() };
  } catch (e) {
    return { status: 0, body: null, error: String(e) };
  }
}
"""


def _first(record: dict, keys: Iterable[str]) -> Any:
    for key in keys:
        value = record.get(key)
        if value not in (None, ""):
            return value
    return None


def iter_sections(payload: Any) -> List[dict]:
    """Per-resource sections (dicts carrying a ``slots`` list) found in a payload."""
    sections: List[dict] = []
    stack = [payload]
    while stack:
        node = stack.pop(0)
        if isinstance(node, list):
            stack.extend(node)
        elif isinstance(node, dict):
            if isinstance(node.get("slots"), list):
                sections.append(node)
            else:
                stack.extend(value for value in node.values() if isinstance(value, (list, dict)))
    return sections


def payload_has_date(payload: Any, target_date: str) -> bool:
    return any(str(_first(section, _DATE_KEYS) or "")[:10] == target_date for section in iter_sections(payload))


def format_price(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    if isinstance(value, dict):
        amount = _first(value, ("amount", "value", "price"))
        currency = value.get("currency") or value.get("currency_code") or ""
        if amount is None:
            return None
        return normalise_whitespace(f"{amount} {currency}")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return normalise_whitespace(str(value))


class PriceIndex:
    """Lookup from ``resource|start|end`` (or ``resource|start|``) to a price.

    Built once per venue visit. The first payload to write a key wins.
    """

    def __init__(self) -> None:
        self._entries: dict[str, Tuple[str, str]] = {}

    @staticmethod
    def exact_key(resource_id: str, start: str, end: str) -> str:
        return f"{resource_id}|{start}|{end}"

    @staticmethod
    def fallback_key(resource_id: str, start: str) -> str:
        return f"{resource_id}|{start}|"

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def _put(self, key: str, price: str, source: str) -> bool:
        if key in self._entries:
            return False
        self._entries[key] = (price, source)
        return True

    def ingest(self, payload: Any, source: str, target_date: Optional[str] = None) -> int:
        """Index every slot in ``payload``; returns the number of new keys.

        When ``target_date`` is given and any section is dated exactly that day,
        sections for other days are skipped. Otherwise everything is indexed.
        """
        sections = iter_sections(payload)
        if target_date and payload_has_date(payload, target_date):
            sections = [s for s in sections if str(_first(s, _DATE_KEYS) or "")[:10] == target_date]

        inserted = 0
        for section in sections:
            resource_id = _first(section, _RESOURCE_KEYS)
            if not resource_id:
                continue
            for slot in section["slots"]:
                if not isinstance(slot, dict):
                    continue
                start = normalise_hhmm(_first(slot, _START_KEYS))
                price = format_price(slot.get("price"))
                if not start or price is None:
                    continue
                try:
                    duration = int(_first(slot, _DURATION_KEYS) or 0)
                except (TypeError, ValueError):
                    duration = 0
                if duration > 0:
                    end = minutes_to_hhmm(hhmm_to_minutes(start) + duration)
                    inserted += self._put(self.exact_key(resource_id, start, end), price, source)
                inserted += self._put(self.fallback_key(resource_id, start), price, source)
        return inserted

    def lookup(self, resource_id: str, start: str, end: str) -> Optional[Tuple[str, str]]:
        """Return ``(price, source)`` preferring the exact key."""
        return self._entries.get(self.exact_key(resource_id, start, end)) or self._entries.get(
            self.fallback_key(resource_id, start)
        )


@dataclass
class PriceAcquisition:
    """Diagnostics for the tier walk of one venue."""

    tier: Optional[str] = None
    attempts: List[str] = field(default_factory=list)
    payloads: int = 0
    indexed_keys: int = 0
    replay_url: Optional[str] = None
    tenant_id: Optional[str] = None
    probe_url: Optional[str] = None
    probe_statuses: List[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tier": self.tier,
            "attempts": self.attempts,
            "payloads": self.payloads,
            "indexed_keys": self.indexed_keys,
            "replay_url": self.replay_url,
            "tenant_id": self.tenant_id,
            "probe_url": self.probe_url,
            "probe_statuses": self.probe_statuses,
        }


def expand_probe_urls(templates: Iterable[str], *, tenant_id: str, target: date, sport_id: str) -> List[str]:
    urls: List[str] = []
    for template in templates:
        try:
            url = template.format(tenant_id=tenant_id, date=target.isoformat(), sport_id=sport_id)
        except (KeyError, IndexError) as exc:
            LOGGER.warning("pricing.probe.bad_template", template=template, error=str(exc))
            continue
        if url not in urls:
            urls.append(url)
    return urls


async def fetch_in_page(page: Page, url: str) -> dict[str, Any]:
    """Fetch JSON from inside the page so cookies and headers match the app."""
    result: Optional[dict[str, Any]] = None
    with suppress(PlaywrightError):
        result = await page.evaluate(FETCH_JSON_JS, url)
    return result or {"status": 0, "body": None}


def prefer_dated(payloads: List[Any], target_date: str) -> List[Any]:
    """Keep only payloads with a section for ``target_date`` when any has one."""
    dated = [payload for payload in payloads if payload_has_date(payload, target_date)]
    return dated or payloads


async def capture_passively(recorder: NetworkRecorder, settle_seconds: float) -> List[Any]:
    """Payloads the page fetched after the recorder's commit mark."""
    await asyncio.sleep(settle_seconds)
    await recorder.drain()
    return recorder.payloads_since(recorder.commit_mark)


async def replay_resource_timing(page: Page, fragment: str) -> Tuple[Optional[str], Optional[Any]]:
    url: Optional[str] = None
    with suppress(PlaywrightError):
        url = await page.evaluate(LATEST_RESOURCE_JS, fragment)
    if not url:
        return None, None
    result = await fetch_in_page(page, url)
    return url, result.get("body") or None


async def probe_endpoints(
    page: Page, urls: Iterable[str], statuses: Optional[List[dict[str, Any]]] = None
) -> Tuple[Optional[str], Optional[Any]]:
    """Try each URL in order and return the first non-empty JSON body."""
    for url in urls:
        result = await fetch_in_page(page, url)
        if statuses is not None:
            statuses.append({"url": url, "status": result.get("status")})
        body = result.get("body")
        if body:
            return url, body
    return None, None


async def acquire_prices(
    page: Page,
    recorder: NetworkRecorder,
    target: date,
    settings: Settings,
    hydration: Any = None,
) -> Tuple[PriceIndex, PriceAcquisition]:
    """Walk the three tiers in order and index the first payloads obtained."""
    index = PriceIndex()
    report = PriceAcquisition()
    target_iso = target.isoformat()
    payloads: List[Any] = []

    report.attempts.append(PRICE_SOURCE_NETWORK)
    payloads = await capture_passively(recorder, settings.settle_window_seconds)
    if payloads:
        report.tier = PRICE_SOURCE_NETWORK
    else:
        LOGGER.info("pricing.tier.miss", tier=PRICE_SOURCE_NETWORK, target_date=target_iso)
        report.attempts.append(PRICE_SOURCE_RESOURCE_TIMING)
        report.replay_url, body = await replay_resource_timing(page, settings.availability_path)
        if body:
            payloads = [body]
            report.tier = PRICE_SOURCE_RESOURCE_TIMING

    if not payloads:
        LOGGER.info("pricing.tier.miss", tier=PRICE_SOURCE_RESOURCE_TIMING, target_date=target_iso)
        report.attempts.append(PRICE_SOURCE_PROBE)
        report.tenant_id = find_tenant_id(hydration) if hydration is not None else None
        if report.tenant_id:
            urls = expand_probe_urls(
                settings.probe_templates,
                tenant_id=report.tenant_id,
                target=target,
                sport_id=settings.sport_id,
            )
            report.probe_url, body = await probe_endpoints(page, urls, report.probe_statuses)
            if body:
                payloads = [body]
                report.tier = PRICE_SOURCE_PROBE
        else:
            LOGGER.warning("pricing.probe.no_tenant", target_date=target_iso)

    payloads = prefer_dated(payloads, target_iso)
    for payload in payloads:
        report.indexed_keys += index.ingest(payload, report.tier or PRICE_SOURCE_NETWORK, target_iso)
    report.payloads = len(payloads)

    LOGGER.info(
        "pricing.complete",
        target_date=target_iso,
        tier=report.tier,
        payloads=report.payloads,
        indexed_keys=report.indexed_keys,
    )
    return index, report
