"""Tests for the multi-venue aggregator and the verification deadline."""

import asyncio
from datetime import date

import pytest

from conftest import FakeBookingPage
from court_slot_agent import scraper
from court_slot_agent.models import NormalizedSlot, VenueOutcome
from court_slot_agent.queries import parse_availability_request, parse_slot_price_request


def _slot(slug, start_minute):
    hhmm = f"{start_minute // 60:02d}:{start_minute % 60:02d}"
    return NormalizedSlot(
        venue_slug=slug,
        venue_name=None,
        resource_id="c1",
        slot_date="2025-10-14",
        end_date="2025-10-14",
        start_local=hhmm,
        end_local=hhmm,
        start_minute=start_minute,
        end_minute=start_minute,
        duration=None,
        start="",
        end="",
        price="n/a",
        price_source="DOM-only",
    )


def _fake_scrape(slot_counts):
    """scrape_venue stand-in: a count per slug, or an exception to raise."""
    calls = []

    async def fake(page, slug, query, settings, locators, debug=None):
        calls.append(slug)
        outcome = slot_counts[slug]
        if isinstance(outcome, Exception):
            debug["steps"].append("navigated")
            raise outcome
        return VenueOutcome(slug=slug, ok=True, slots=[_slot(slug, 600 + i * 60) for i in range(outcome)])

    fake.calls = calls
    return fake


class TestComputeVerdict:
    @pytest.mark.parametrize(
        "succeeded,failed,slots,verdict",
        [
            (0, 2, 0, "error"),
            (0, 0, 0, "error"),
            (2, 0, 0, "empty_ok"),
            (1, 1, 3, "partial_ok"),
            (2, 0, 5, "ok"),
            (1, 1, 0, "ok"),
        ],
    )
    def test_table(self, succeeded, failed, slots, verdict):
        assert scraper.compute_verdict(succeeded, failed, slots) == verdict


class TestCollectAvailability:
    @pytest.mark.asyncio
    async def test_partial_failure(self, monkeypatch, settings, fake_manager):
        fake = _fake_scrape({"good-club": 3, "bad-club": RuntimeError("selector exploded " + "x" * 1000)})
        monkeypatch.setattr(scraper, "scrape_venue", fake)
        query = parse_availability_request("good-club,bad-club", "2025-10-14")

        run = await scraper.collect_availability(query, fake_manager, settings)

        assert fake.calls == ["good-club", "bad-club"]
        assert run.summary.verdict == "partial_ok"
        assert run.summary.requested == 2
        assert run.summary.succeeded == 1
        assert run.summary.failed == 1
        assert run.summary.total_slots == 3
        assert len(run.slots) == 3
        failed = run.venues[1]
        assert failed.ok is False
        assert failed.error.startswith("selector exploded")
        assert len(failed.error) == settings.error_detail_limit
        assert failed.debug["steps"] == ["navigated"]
        assert fake_manager.acquired == 1
        assert fake_manager.released == 1

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_later_venues(self, monkeypatch, settings, fake_manager):
        fake = _fake_scrape({"a": RuntimeError("down"), "b": 2})
        monkeypatch.setattr(scraper, "scrape_venue", fake)
        query = parse_availability_request("a,b", "2025-10-14")

        run = await scraper.collect_availability(query, fake_manager, settings)

        assert fake.calls == ["a", "b"]
        assert run.summary.verdict == "partial_ok"

    @pytest.mark.asyncio
    async def test_empty_result(self, monkeypatch, settings, fake_manager):
        monkeypatch.setattr(scraper, "scrape_venue", _fake_scrape({"club": 0}))
        query = parse_availability_request("club", "2025-10-14", duration=90)

        run = await scraper.collect_availability(query, fake_manager, settings)

        assert run.summary.verdict == "empty_ok"
        assert run.summary.total_slots == 0
        assert run.target_date == date(2025, 10, 14)

    @pytest.mark.asyncio
    async def test_all_failed(self, monkeypatch, settings, fake_manager):
        monkeypatch.setattr(scraper, "scrape_venue", _fake_scrape({"club": RuntimeError("timeout")}))
        query = parse_availability_request("club", "2025-10-14")

        run = await scraper.collect_availability(query, fake_manager, settings)

        assert run.summary.verdict == "error"
        assert fake_manager.released == 1


AVAILABILITY = "https://playtomic.com/api/clubs/availability?tenant_id=t1&date={}"
HYDRATION = {
    "props": {
        "pageProps": {
            "tenant": {"tenant_name": "Padel Club"},
            "resources": [{"resource_id": "c1", "name": "Court 1", "properties": {"type": "indoor", "size": "double"}}],
        }
    }
}


def _dated(day, price):
    return [
        {
            "resource_id": "c1",
            "start_date": day,
            "slots": [{"start_time": "20:00:00", "duration": 90, "price": price}],
        }
    ]


def popover(name, start, *rows):
    body = "".join(f"<div><span>{left}</span><span>{right}</span></div>" for left, right in rows)
    return f'<div role="tooltip"><div><b>{name}</b><i>{start}</i></div><section>{body}</section><p>Book</p></div>'


def _booking_page(on_day_click=True, **kwargs):
    return FakeBookingPage(
        initial=(AVAILABILITY.format("2025-10-13"), _dated("2025-10-13", "20 EUR")),
        on_day_click=(AVAILABILITY.format("2025-10-14"), _dated("2025-10-14", "36 EUR")) if on_day_click else None,
        hydration=HYDRATION,
        blocks=[{"courtId": "c1", "start": "20:00", "end": "21:30"}, {"courtId": "c1", "start": "9:00", "end": ""}],
        **kwargs,
    )


class TestScrapeVenue:
    @pytest.mark.asyncio
    async def test_prices_come_from_target_date_traffic(self, settings):
        page = _booking_page()
        query = parse_availability_request("padel-club", "2025-10-14")

        outcome = await scraper.scrape_venue(page, "padel-club", query, settings)

        assert outcome.ok is True
        assert outcome.venue_name == "Padel Club"
        assert len(outcome.slots) == 1
        slot = outcome.slots[0]
        assert (slot.price, slot.price_source) == ("36 EUR", "network")
        assert slot.duration == 90
        assert slot.court_name == "Court 1"
        assert slot.court_location == "indoor"
        assert slot.court_size == "double"
        assert outcome.debug["picker"]["xhr_committed"] is True
        assert outcome.debug["pricing"]["tier"] == "network"
        assert outcome.debug["harvest"]["discarded"] == 1
        assert outcome.debug["capture"]["captured_payloads"] == 2
        assert page.handlers["response"] == []

    @pytest.mark.asyncio
    async def test_initial_date_prices_never_reused(self, settings):
        page = _booking_page(on_day_click=False)
        query = parse_availability_request("padel-club", "2025-10-14")

        outcome = await scraper.scrape_venue(page, "padel-club", query, settings)

        slot = outcome.slots[0]
        assert (slot.price, slot.price_source) == ("n/a", "DOM-only")
        assert outcome.debug["picker"]["xhr_committed"] is False
        assert outcome.debug["pricing"]["attempts"] == ["network", "resource_timing", "probe"]

    @pytest.mark.asyncio
    async def test_unbookable_banner_reported(self, settings):
        page = FakeBookingPage(hydration=HYDRATION)
        query = parse_availability_request("padel-club", "2025-10-14")

        outcome = await scraper.scrape_venue(page, "padel-club", query, settings)

        assert outcome.slots == []
        assert outcome.debug["blocks_found"] == 0
        assert outcome.debug["banner_unbookable"] is True


class TestVerifySlotPrice:
    @pytest.mark.asyncio
    async def test_reads_matching_popover(self, settings, fake_manager):
        fake_manager.page = _booking_page(
            popovers=[
                popover("Court 1", "18:30–20:00", ("1h 30m", "30 EUR")),
                popover("Court 1", "20:00–21:30", ("1h", "24 EUR"), ("1h 30m", "36 EUR")),
            ]
        )
        query = parse_slot_price_request("padel-club", "2025-10-14", "c1", "20:00", "21:30")

        result = await scraper.verify_slot_price(query, fake_manager, settings)

        assert (result.source, result.price) == ("popup_row", "36 EUR")
        assert result.debug["court_name"] == "Court 1"
        assert result.debug["verify"]["clicked"] is True
        assert fake_manager.released == 1

    @pytest.mark.asyncio
    async def test_returns_pipeline_result(self, monkeypatch, settings, fake_manager):
        async def fake_verify(page, query, settings, locators, debug):
            debug["court_name"] = "Court 1"
            return "popup_row", "36 EUR"

        monkeypatch.setattr(scraper, "_verify", fake_verify)
        query = parse_slot_price_request("club", "2025-10-14", "c1", "23:00", "00:30")

        result = await scraper.verify_slot_price(query, fake_manager, settings)

        assert result.price == "36 EUR"
        assert result.source == "popup_row"
        assert result.duration == 90
        assert result.debug["court_name"] == "Court 1"
        assert fake_manager.released == 1

    @pytest.mark.asyncio
    async def test_hard_deadline(self, monkeypatch, settings, fake_manager):
        async def slow_verify(page, query, settings, locators, debug):
            await asyncio.sleep(10)
            return "popup_row", "36 EUR"

        monkeypatch.setattr(scraper, "_verify", slow_verify)
        settings.verify_deadline_seconds = 0.05
        query = parse_slot_price_request("club", "2025-10-14", "c1", "20:00", "21:00")

        result = await scraper.verify_slot_price(query, fake_manager, settings)

        assert result.source == "deadline_exceeded"
        assert result.price is None
        assert fake_manager.released == 1

    @pytest.mark.asyncio
    async def test_session_released_when_pipeline_raises(self, monkeypatch, settings, fake_manager):
        async def broken_verify(page, query, settings, locators, debug):
            raise RuntimeError("navigation failed")

        monkeypatch.setattr(scraper, "_verify", broken_verify)
        query = parse_slot_price_request("club", "2025-10-14", "c1", "20:00", "21:00")

        with pytest.raises(RuntimeError, match="navigation failed"):
            await scraper.verify_slot_price(query, fake_manager, settings)
        assert fake_manager.released == 1
