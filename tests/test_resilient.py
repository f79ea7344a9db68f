from __future__ import annotations

import asyncio

import pytest

from adapters.resilient import ResilientClient, RetryConfig, with_retries
from core.domain.errors import ServiceUnavailableError, TransientNetworkError
from core.domain.service_class import ServiceClass
from helpers import RecordingSleep


class RotatingRegistry:
    """Hands out nodes round-robin, never the one passed as `prev`."""

    def __init__(self, nodes: list[str]) -> None:
        self.nodes = nodes
        self.prev_seen: list[str | None] = []
        self._turn = 0

    async def get_endpoint(self, service_class: ServiceClass, prev: str | None = None) -> str:
        self.prev_seen.append(prev)
        candidates = [n for n in self.nodes if n != prev]
        node = candidates[self._turn % len(candidates)]
        self._turn += 1
        return node


class Flaky:
    """Fails the first `failures` calls, recording the endpoint of every attempt."""

    def __init__(self, failures: int, error: Exception | None = None) -> None:
        self.failures = failures
        self.error = error or TransientNetworkError("HTTP 502")
        self.endpoints: list[str] = []

    async def __call__(self, endpoint: str, attempt: int) -> str:
        self.endpoints.append(endpoint)
        if len(self.endpoints) <= self.failures:
            raise self.error
        return f"ok from {endpoint}"


CONFIG = RetryConfig(retries=3, base_delay_ms=100, timeout_seconds=1.0)


async def test_first_attempt_success_keeps_endpoint() -> None:
    sleep = RecordingSleep()
    client = ResilientClient(RotatingRegistry(["https://a.io", "https://b.io"]), CONFIG, sleep=sleep)
    fn = Flaky(failures=0)

    assert await client.call(fn, ServiceClass.HIVE) == "ok from https://a.io"
    assert client.current(ServiceClass.HIVE) == "https://a.io"
    assert sleep.calls == []


async def test_retry_rotates_and_backs_off_exponentially() -> None:
    sleep = RecordingSleep()
    registry = RotatingRegistry(["https://a.io", "https://b.io", "https://c.io"])
    client = ResilientClient(registry, CONFIG, sleep=sleep)
    fn = Flaky(failures=2)

    result = await client.call(fn, ServiceClass.HE)

    assert len(fn.endpoints) == 3
    for previous, current in zip(fn.endpoints, fn.endpoints[1:]):
        assert previous != current
    # delay before attempt n is 2^(n-1) * base
    assert sleep.calls == pytest.approx([0.1, 0.2])
    assert result == f"ok from {fn.endpoints[-1]}"
    assert client.current(ServiceClass.HE) == fn.endpoints[-1]
    assert registry.prev_seen[1:] == fn.endpoints[:-1]


async def test_exhausted_retries_raise_service_unavailable() -> None:
    sleep = RecordingSleep()
    client = ResilientClient(RotatingRegistry(["https://a.io", "https://b.io"]), CONFIG, sleep=sleep)
    fn = Flaky(failures=10)

    with pytest.raises(ServiceUnavailableError) as excinfo:
        await client.call(fn, ServiceClass.HEH)

    assert len(fn.endpoints) == CONFIG.retries
    assert isinstance(excinfo.value.__cause__, TransientNetworkError)
    assert "Hive-Engine history" in str(excinfo.value)


async def test_per_call_overrides() -> None:
    sleep = RecordingSleep()
    client = ResilientClient(RotatingRegistry(["https://a.io", "https://b.io"]), CONFIG, sleep=sleep)
    fn = Flaky(failures=10)

    with pytest.raises(ServiceUnavailableError):
        await client.call(fn, ServiceClass.HIVE, retries=2, base_delay_ms=50)

    assert len(fn.endpoints) == 2
    assert sleep.calls == pytest.approx([0.05])


async def test_timeouts_count_as_failures() -> None:
    sleep = RecordingSleep()
    config = RetryConfig(retries=2, base_delay_ms=100, timeout_seconds=0.01)
    client = ResilientClient(RotatingRegistry(["https://a.io", "https://b.io"]), config, sleep=sleep)

    async def hang(endpoint: str, attempt: int) -> None:
        await asyncio.sleep(5)

    with pytest.raises(ServiceUnavailableError):
        await client.call(hang, ServiceClass.HIVE)

    assert sleep.calls == pytest.approx([0.1])


async def test_non_network_errors_are_not_retried() -> None:
    sleep = RecordingSleep()
    client = ResilientClient(RotatingRegistry(["https://a.io"]), CONFIG, sleep=sleep)
    fn = Flaky(failures=1, error=KeyError("result"))

    with pytest.raises(KeyError):
        await client.call(fn, ServiceClass.HIVE)

    assert len(fn.endpoints) == 1


async def test_with_retries_recovers() -> None:
    sleep = RecordingSleep()
    attempts: list[int] = []

    async def fetch(attempt: int) -> float:
        attempts.append(attempt)
        if attempt == 0:
            raise TransientNetworkError("HTTP 429")
        return 0.31

    assert await with_retries(fetch, config=CONFIG, sleep=sleep) == 0.31
    assert attempts == [0, 1]
    assert sleep.calls == pytest.approx([0.1])


async def test_with_retries_reraises_last_error() -> None:
    sleep = RecordingSleep()

    async def fetch(attempt: int) -> float:
        raise TransientNetworkError(f"attempt {attempt}")

    with pytest.raises(TransientNetworkError, match="attempt 2"):
        await with_retries(fetch, config=CONFIG, sleep=sleep)

    assert sleep.calls == pytest.approx([0.1, 0.2])
