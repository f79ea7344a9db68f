"""In-memory ledgers and small builders shared by the test modules."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def hours_ago(hours: float) -> datetime:
    return NOW - timedelta(hours=hours)


def native_op(index: int, ts: datetime, frm: str, to: str, amount: float, asset: str = "HIVE") -> list[Any]:
    return [
        index,
        {
            "trx_id": f"{index:040x}",
            "timestamp": ts.strftime("%Y-%m-%dT%H:%M:%S"),
            "op": ["transfer", {"from": frm, "to": to, "amount": f"{amount:.3f} {asset}", "memo": ""}],
        },
    ]


def native_vote(index: int, ts: datetime, voter: str) -> list[Any]:
    return [
        index,
        {
            "timestamp": ts.strftime("%Y-%m-%dT%H:%M:%S"),
            "op": ["vote", {"voter": voter, "author": "someone", "permlink": "post", "weight": 10000}],
        },
    ]


def token_op(
    ts: datetime,
    frm: str,
    to: str,
    symbol: str,
    quantity: float | str,
    operation: str = "tokens_transfer",
) -> dict[str, Any]:
    return {
        "timestamp": int(ts.timestamp()),
        "operation": operation,
        "symbol": symbol,
        "quantity": str(quantity),
        "from": frm,
        "to": to,
    }


class FakeNativeApi:
    """Index-paged history; each account's ops are kept in ascending index order."""

    def __init__(self, histories: dict[str, list[list[Any]]] | None = None, failing: set[str] | None = None) -> None:
        self.histories = {k: sorted(v, key=lambda e: e[0]) for k, v in (histories or {}).items()}
        self.failing = failing or set()
        self.calls: list[tuple[str, int, int]] = []

    async def get_account_history(self, account: str, start: int, limit: int) -> list[Any]:
        self.calls.append((account, start, limit))
        if account in self.failing:
            raise RuntimeError(f"history unavailable for {account}")
        ops = self.histories.get(account, [])
        if not ops:
            return []
        if start < 0:
            start = ops[-1][0]
        return [op for op in ops if start - limit < op[0] <= start]


class FakeTokenApi:
    """Offset-paged history (newest first) plus a fixed price table in HIVE."""

    def __init__(
        self,
        histories: dict[str, list[dict[str, Any]]] | None = None,
        prices_in_hive: dict[str, float] | None = None,
    ) -> None:
        self.histories = {
            k: sorted(v, key=lambda r: r["timestamp"], reverse=True) for k, v in (histories or {}).items()
        }
        self.prices_in_hive = prices_in_hive or {}
        self.calls: list[tuple[str, int, int]] = []
        self.price_calls: list[str] = []

    async def get_history(self, account: str, limit: int, offset: int) -> list[dict[str, Any]]:
        self.calls.append((account, limit, offset))
        return self.histories.get(account, [])[offset : offset + limit]

    async def get_token_price_usd(self, symbol: str, hive_usd: float) -> float:
        self.price_calls.append(symbol)
        return self.prices_in_hive.get(symbol, 0.0) * hive_usd


class FakePriceSource:
    def __init__(self, value: float = 0.5) -> None:
        self.value = value
        self.calls = 0

    async def get_native_usd(self) -> float:
        self.calls += 1
        return self.value


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class FakeClock:
    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
