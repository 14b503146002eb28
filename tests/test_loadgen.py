"""
Unit tests for the reporting helpers in loadgen.py and hedged_client.py.
"""
import asyncio

import httpx
import pytest
from hdrh.histogram import HdrHistogram

import hedged_client
from hedged_client import compare, hedged_call, latency_percentiles
from loadgen import compare_to_profile, percentile_summary


@pytest.fixture
def hist():
    h = HdrHistogram(1, 60_000_000, 3)
    for us in range(1, 1001):
        h.record_value(us)
    return h


class TestPercentileSummary:
    def test_profile_shaped_keys(self, hist):
        assert list(percentile_summary(hist)) == ["p50", "p75", "p90", "p95", "p99", "max"]

    def test_values_in_ms(self, hist):
        s = percentile_summary(hist, 1000.0)
        assert s["p50"] == pytest.approx(0.5, rel=0.01)
        assert s["p90"] == pytest.approx(0.9, rel=0.01)
        assert s["p99"] == pytest.approx(0.99, rel=0.01)
        assert s["max"] == pytest.approx(1.0, rel=0.01)

    def test_monotonic(self, hist):
        values = list(percentile_summary(hist).values())
        assert values == sorted(values)


class TestCompareToProfile:
    def test_difference_per_shared_key(self, reference_profile):
        summary = {"p50": 30.0, "p99": 190.0, "max": 3000.0, "p999": 2500.0}
        assert compare_to_profile(summary, reference_profile) == {
            "p50": 5.0,
            "p99": -10.0,
            "max": 0.0,
        }

    def test_empty_profile(self):
        assert compare_to_profile({"p50": 1.0}, {}) == {}


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def target(monkeypatch):
    monkeypatch.setattr(hedged_client, "root_url", "http://sim.test")


class TestHedgedClient:
    def test_latency_percentiles_are_profile_shaped(self):
        out = latency_percentiles(range(1, 101))
        assert list(out) == ["p50", "p75", "p90", "p95", "p99", "max"]
        assert out["p50"] == pytest.approx(50.5)
        assert out["p99"] == pytest.approx(99.01)
        assert out["max"] == 100.0

    def test_first_response_wins_and_hedge_is_cancelled(self, target):
        seen = []

        def handler(request):
            seen.append(request.url.path)
            return httpx.Response(200, json={"requested_sleep_ms": 0})

        async def go():
            async with _client(handler) as client:
                result = await hedged_call(client, hedge_ms=1000)
                pending = [t for t in asyncio.all_tasks() if t is not asyncio.current_task()]
                return result, pending

        (elapsed_ms, body), pending = asyncio.run(go())
        assert body == {"requested_sleep_ms": 0}
        assert elapsed_ms < 1000
        assert seen == ["/simulate_latency"]
        assert pending == []

    def test_failed_leg_does_not_win(self, target):
        calls = []

        def handler(request):
            calls.append(request.url.path)
            if len(calls) == 1:
                return httpx.Response(500, json={"error": "boom"})
            return httpx.Response(200, json={"requested_sleep_ms": 7})

        async def go():
            async with _client(handler) as client:
                return await hedged_call(client, hedge_ms=5)

        _elapsed, body = asyncio.run(go())
        assert body == {"requested_sleep_ms": 7}
        assert len(calls) == 2

    def test_all_legs_failing_raises(self, target):
        def handler(request):
            return httpx.Response(500, json={"error": "Latency profile not loaded or is empty."})

        async def go():
            async with _client(handler) as client:
                return await hedged_call(client, hedge_ms=5)

        with pytest.raises(httpx.HTTPStatusError):
            asyncio.run(go())

    def test_unhedged_call_sends_one_request(self, target):
        calls = []

        def handler(request):
            calls.append(request.url.path)
            return httpx.Response(200, json={})

        async def go():
            async with _client(handler) as client:
                return await hedged_call(client, hedge_ms=None)

        asyncio.run(go())
        assert calls == ["/simulate_latency"]

    def test_compare_sets_both_runs_against_profile(self, target, reference_profile):
        def handler(request):
            if request.url.path == "/profile":
                return httpx.Response(200, json=reference_profile)
            return httpx.Response(200, json={"requested_sleep_ms": 0})

        async def go():
            async with _client(handler) as client:
                return await compare(client, n=5, hedge_ms=1000)

        profile, runs = asyncio.run(go())
        assert profile == reference_profile
        assert set(runs) == {"unhedged", "hedged"}
        for run in runs.values():
            assert set(run["vs_profile"]) == set(reference_profile)
            for key, delta in run["vs_profile"].items():
                assert delta == pytest.approx(run["summary"][key] - reference_profile[key])
