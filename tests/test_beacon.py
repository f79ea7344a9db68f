from __future__ import annotations

import random

import httpx
import pytest

from adapters.beacon import EndpointHealthRegistry, eligible_endpoints
from core.config import AppSettings
from core.domain.errors import NoConnectivityError
from core.domain.service_class import ServiceClass
from helpers import FakeClock, RecordingSleep

BEACON = "https://beacon.peakd.com"


def _node(endpoint: str, score: int = 100, fail: int = 0, features: list[str] | None = None) -> dict:
    return {
        "name": endpoint,
        "endpoint": endpoint,
        "score": score,
        "fail": fail,
        "features": features if features is not None else ["get_account_history", "check_market_metrics"],
    }


class BeaconStub:
    """MockTransport handler: serves the beacon feed and answers HEAD probes."""

    def __init__(self, nodes: list[dict] | None = None, dead: set[str] | None = None, beacon_status: int = 200):
        self.nodes = nodes or []
        self.dead = dead or set()
        self.beacon_status = beacon_status
        self.beacon_requests = 0
        self.probes: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url.startswith(BEACON):
            self.beacon_requests += 1
            if self.beacon_status != 200:
                return httpx.Response(self.beacon_status)
            return httpx.Response(200, json=self.nodes)
        if request.method == "HEAD":
            base = url.rstrip("/")
            self.probes.append(base)
            if base in self.dead:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(405)
        return httpx.Response(404)


class FirstChoice(random.Random):
    def choice(self, seq):
        return seq[0]


def _registry(stub: BeaconStub, settings: AppSettings, **kwargs) -> tuple[EndpointHealthRegistry, httpx.AsyncClient]:
    client = httpx.AsyncClient(transport=httpx.MockTransport(stub))
    kwargs.setdefault("rng", random.Random(7))
    return EndpointHealthRegistry(client, settings, **kwargs), client


def test_eligible_endpoints_filters_by_score_fail_and_feature() -> None:
    payload = [
        _node("https://good.io"),
        _node("https://slow.io", score=90),
        _node("https://flaky.io", fail=2),
        _node("https://nohistory.io", features=["check_market_metrics"]),
        {"endpoint": "https://broken.io", "score": "n/a"},
    ]

    assert eligible_endpoints(payload, "get_account_history") == ["https://good.io"]
    assert eligible_endpoints({"unexpected": True}, "get_account_history") == []


async def test_refresh_uses_beacon_nodes(settings: AppSettings) -> None:
    stub = BeaconStub(nodes=[_node("https://a.io"), _node("https://b.io", score=50)])
    registry, client = _registry(stub, settings)
    async with client:
        urls = await registry.refresh(ServiceClass.HIVE)

    assert urls == ["https://a.io"]
    assert registry.snapshot()[ServiceClass.HIVE].urls() == ["https://a.io"]


async def test_refresh_falls_back_to_defaults_when_beacon_fails(settings: AppSettings) -> None:
    stub = BeaconStub(beacon_status=503)
    registry, client = _registry(stub, settings)
    async with client:
        urls = await registry.refresh(ServiceClass.HE)

    assert urls == list(ServiceClass.HE.default_nodes)


async def test_refresh_falls_back_to_defaults_when_nothing_is_eligible(settings: AppSettings) -> None:
    stub = BeaconStub(nodes=[_node("https://a.io", fail=1)])
    registry, client = _registry(stub, settings)
    async with client:
        urls = await registry.refresh(ServiceClass.HIVE)

    assert urls == list(ServiceClass.HIVE.default_nodes)


async def test_get_endpoint_never_returns_prev(settings: AppSettings) -> None:
    stub = BeaconStub(nodes=[_node("https://a.io"), _node("https://b.io")])
    registry, client = _registry(stub, settings)
    async with client:
        for _ in range(5):
            await registry.refresh(ServiceClass.HIVE)
            assert await registry.get_endpoint(ServiceClass.HIVE, prev="https://a.io") == "https://b.io"


async def test_dead_node_is_evicted_and_another_is_chosen(settings: AppSettings) -> None:
    sleep = RecordingSleep()
    stub = BeaconStub(nodes=[_node("https://a.io"), _node("https://b.io")], dead={"https://a.io"})
    registry, client = _registry(stub, settings, sleep=sleep, rng=FirstChoice())
    async with client:
        for _ in range(3):
            assert await registry.get_endpoint(ServiceClass.HIVE) == "https://b.io"

    assert registry.snapshot()[ServiceClass.HIVE].urls() == ["https://b.io"]
    assert stub.probes.count("https://a.io") == 1
    assert sleep.calls == pytest.approx([0.2])


async def test_all_probes_failing_raises_no_connectivity(settings: AppSettings) -> None:
    sleep = RecordingSleep()
    nodes = ["https://a.io", "https://b.io", "https://c.io"]
    stub = BeaconStub(nodes=[_node(n) for n in nodes], dead=set(nodes))
    registry, client = _registry(stub, settings, sleep=sleep)
    async with client:
        with pytest.raises(NoConnectivityError):
            await registry.get_endpoint(ServiceClass.HIVE)

    assert len(stub.probes) == 3
    # 2^attempt * base, base = 100 ms
    assert sleep.calls == pytest.approx([0.2, 0.4])


async def test_report_bad_empties_list_and_triggers_rediscovery(settings: AppSettings) -> None:
    stub = BeaconStub(nodes=[_node("https://a.io")])
    registry, client = _registry(stub, settings)
    async with client:
        await registry.get_endpoint(ServiceClass.HIVE)
        registry.report_bad(ServiceClass.HIVE, "https://a.io")
        assert registry.snapshot()[ServiceClass.HIVE].endpoints == []

        assert await registry.get_endpoint(ServiceClass.HIVE) == "https://a.io"

    assert stub.beacon_requests == 2


async def test_stale_cache_is_refreshed(settings: AppSettings) -> None:
    clock = FakeClock()
    stub = BeaconStub(nodes=[_node("https://a.io")])
    registry, client = _registry(stub, settings, clock=clock)
    async with client:
        await registry.get_endpoint(ServiceClass.HIVE)
        clock.advance(settings.health_stale_after_seconds - 1)
        await registry.get_endpoint(ServiceClass.HIVE)
        assert stub.beacon_requests == 1

        clock.advance(2)
        await registry.get_endpoint(ServiceClass.HIVE)

    assert stub.beacon_requests == 2


async def test_pinned_endpoint_skips_discovery_and_probe(settings: AppSettings) -> None:
    stub = BeaconStub(nodes=[_node("https://a.io")])
    registry, client = _registry(stub, settings, pinned={ServiceClass.HIVE: "https://mine.io"})
    async with client:
        assert await registry.get_endpoint(ServiceClass.HIVE, prev="https://mine.io") == "https://mine.io"

    assert stub.beacon_requests == 0
    assert stub.probes == []


async def test_background_refresh_lifecycle(settings: AppSettings) -> None:
    stub = BeaconStub(nodes=[_node("https://a.io")])
    registry, client = _registry(stub, settings, pinned={ServiceClass.HE: "https://he.io"})
    async with client:
        async with registry:
            assert registry.running
        assert not registry.running
