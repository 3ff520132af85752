"""Tests for passive network capture."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from court_slot_agent.capture import NetworkRecorder

AVAILABILITY = "https://playtomic.com/api/clubs/availability?tenant_id=t1&date=2025-10-14&sport_id=PADEL"


def _response(url, status=200, body=None):
    response = MagicMock()
    response.url = url
    response.status = status
    response.json = AsyncMock(return_value=body if body is not None else [])
    return response


@pytest.fixture
def recorder():
    return NetworkRecorder("/api/clubs/availability", "playtomic.com")


class TestResponses:
    @pytest.mark.asyncio
    async def test_records_availability_payload(self, recorder):
        body = [{"resource_id": "c1", "start_date": "2025-10-14", "slots": []}]
        recorder._on_response(_response(AVAILABILITY, body=body))
        await recorder.drain()

        assert recorder.saw_availability
        assert recorder.payloads == [body]
        assert recorder.find_url("date=2025-10-14") == AVAILABILITY
        assert recorder.find_url("date=2025-10-15") is None

    @pytest.mark.asyncio
    async def test_mark_starts_a_new_window(self, recorder):
        first = AVAILABILITY.replace("2025-10-14", "2025-10-13")
        recorder._on_response(_response(first, body=["initial"]))
        assert recorder.mark() == 1
        recorder._on_response(_response(AVAILABILITY, body=["target"]))
        await recorder.drain()

        assert recorder.payloads == [["initial"], ["target"]]
        assert recorder.payloads_since(recorder.commit_mark) == [["target"]]
        assert recorder.find_url("date=2025-10-13", since=recorder.commit_mark) is None
        assert recorder.find_url("date=2025-10-13") == first
        assert recorder.summary()["commit_mark"] == 1

    @pytest.mark.asyncio
    async def test_ignores_failed_status(self, recorder):
        recorder._on_response(_response(AVAILABILITY, status=403))
        await recorder.drain()
        assert not recorder.saw_availability
        assert recorder.payloads == []

    @pytest.mark.asyncio
    async def test_unreadable_body_is_skipped(self, recorder):
        response = _response(AVAILABILITY)
        response.json = AsyncMock(side_effect=ValueError("not json"))
        recorder._on_response(response)
        await recorder.drain()
        assert recorder.saw_availability
        assert recorder.payloads == []

    @pytest.mark.asyncio
    async def test_counts_framework_chunks(self, recorder):
        recorder._on_response(_response("https://playtomic.com/_next/static/chunks/a.js"))
        recorder._on_response(_response("https://playtomic.com/_next/static/chunks/b.js", status=404))
        summary = recorder.summary()
        assert summary["next"]["ok"] == 1
        assert summary["next"]["blocked"] == 1


class TestDiagnostics:
    def test_failed_requests_and_console(self, recorder):
        recorder._on_request_failed(SimpleNamespace(url="https://playtomic.com/api/x", failure="net::ERR_ABORTED"))
        recorder._on_request_failed(SimpleNamespace(url="https://tracker.example/pixel", failure="blocked"))
        recorder._on_console(SimpleNamespace(type="error", text="Hydration failed"))
        recorder._on_console(SimpleNamespace(type="log", text="ready"))

        summary = recorder.summary()
        assert summary["next"]["failed"] == [{"url": "https://playtomic.com/api/x", "error": "net::ERR_ABORTED"}]
        assert summary["errors"] == ["Hydration failed"]
        assert summary["infos"] == ["log: ready"]
        assert summary["saw_availability"] is False

    def test_attach_and_detach(self, recorder):
        page = MagicMock()
        recorder.attach(page)
        recorder.detach(page)
        assert page.on.call_count == 3
        assert page.remove_listener.call_count == 3
