from __future__ import annotations

import httpx

from core.config import AppSettings
from core.domain.service_class import ServiceClass
from core.services.bootstrap import healthy_endpoints, open_analyzer, pinned_endpoints


def _pinned_settings(**overrides) -> AppSettings:
    values = {
        "hive_node_url": "https://hive.node",
        "hive_engine_rpc_url": "https://he.rpc",
        "hive_engine_history_url": "https://he.history",
        "api_calls_delay_ms": 0,
    }
    values.update(overrides)
    return AppSettings(_env_file=None, **values)


def test_pinned_endpoints_only_include_configured_overrides() -> None:
    settings = AppSettings(_env_file=None, hive_node_url="https://hive.node")

    assert pinned_endpoints(settings) == {ServiceClass.HIVE: "https://hive.node"}


async def test_open_analyzer_resolves_initial_endpoints_and_closes_client() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "hive.node":
            return httpx.Response(200, json={"jsonrpc": "2.0", "result": [], "id": 1})
        if request.url.path == "/accountHistory":
            return httpx.Response(200, json=[])
        return httpx.Response(200, json={"hive": {"usd": 0.3}})

    async with open_analyzer(_pinned_settings(), transport=httpx.MockTransport(handler)) as runtime:
        assert runtime.resilient.current(ServiceClass.HIVE) == "https://hive.node"
        assert runtime.resilient.current(ServiceClass.HE) == "https://he.rpc"
        assert runtime.resilient.current(ServiceClass.HEH) == "https://he.history"
        assert not runtime.registry.running

        result = await runtime.analyzer.outbounds(["alice"])
        assert result.senders["alice"].message is not None

    assert runtime.client.is_closed


async def test_open_analyzer_discovers_and_refreshes_in_background() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "beacon.peakd.com":
            return httpx.Response(
                200,
                json=[
                    {
                        "endpoint": f"https://{request.url.path.strip('/').replace('/', '-')}.node",
                        "score": 100,
                        "fail": 0,
                        "features": ["get_account_history", "check_market_metrics"],
                    }
                ],
            )
        return httpx.Response(200)

    settings = AppSettings(_env_file=None)
    async with open_analyzer(settings, transport=httpx.MockTransport(handler)) as runtime:
        assert runtime.registry.running
        assert runtime.resilient.current(ServiceClass.HIVE) == "https://api-nodes.node"
        assert runtime.resilient.current(ServiceClass.HE) == "https://api-he-nodes.node"

    assert not runtime.registry.running


async def test_healthy_endpoints_reports_each_service() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "beacon.peakd.com":
            return httpx.Response(503)
        return httpx.Response(200)

    settings = AppSettings(_env_file=None, hive_engine_rpc_url="https://he.rpc")
    health = await healthy_endpoints(settings, transport=httpx.MockTransport(handler))

    by_class = {entry.service_class: entry for entry in health}
    assert by_class[ServiceClass.HE].pinned
    assert by_class[ServiceClass.HE].endpoint == "https://he.rpc"
    assert by_class[ServiceClass.HIVE].endpoint in ServiceClass.HIVE.default_nodes
    assert by_class[ServiceClass.HIVE].candidates == len(ServiceClass.HIVE.default_nodes)
    assert all(entry.error is None for entry in health)
