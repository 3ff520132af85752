"""Tests for the bounded poll primitive."""

import pytest

from court_slot_agent.polling import poll_until


class TestPollUntil:
    @pytest.mark.asyncio
    async def test_returns_first_truthy_value(self):
        calls = []

        async def probe():
            calls.append(1)
            return "ready" if len(calls) >= 3 else None

        found, value = await poll_until(probe, timeout=2, interval=0.01)
        assert found is True
        assert value == "ready"
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_times_out(self):
        async def probe():
            return None

        assert await poll_until(probe, timeout=0.05, interval=0.01) == (False, None)

    @pytest.mark.asyncio
    async def test_probe_errors_count_as_misses(self):
        calls = []

        async def probe():
            calls.append(1)
            if len(calls) < 2:
                raise RuntimeError("detached")
            return {"ok": True}

        found, value = await poll_until(probe, timeout=2, interval=0.01)
        assert found is True
        assert value == {"ok": True}

    @pytest.mark.asyncio
    async def test_zero_timeout_still_probes_once(self):
        calls = []

        async def probe():
            calls.append(1)
            return None

        assert await poll_until(probe, timeout=0, interval=0.01) == (False, None)
        assert len(calls) == 1
