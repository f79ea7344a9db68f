"""Ledger de tokens: Hive-Engine.

Dos clases de servicio distintas:
- historial (`HEH`): GET `accountHistory?account&limit&offset&type=user`;
- RPC de contratos (`HE`): `find` sobre `market.metrics` para el último precio.

Nota:
- El precio de mercado está expresado en HIVE; el USD sale de multiplicar por
  el precio HIVE/USD vigente.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from adapters.http_client import build_url, request_json
from adapters.resilient import ResilientClient
from core.domain.errors import TransientNetworkError
from core.domain.service_class import ServiceClass
from core.interfaces.ledgers import TokenLedgerApi

logger = logging.getLogger(__name__)


def market_metrics_query(symbol: str) -> dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "method": "find",
        "params": {
            "contract": "market",
            "table": "metrics",
            "query": {"symbol": symbol},
            "limit": 1,
            "offset": 0,
        },
        "id": 1,
    }


def _last_price(payload: Any) -> float:
    if not isinstance(payload, dict):
        return 0.0
    rows = payload.get("result")
    if not isinstance(rows, list) or not rows or not isinstance(rows[0], dict):
        return 0.0
    try:
        return float(rows[0].get("lastPrice") or 0.0)
    except (TypeError, ValueError):
        return 0.0


class HiveEngineApi(TokenLedgerApi):
    def __init__(self, client: httpx.AsyncClient, resilient: ResilientClient, *, verbose: bool = False) -> None:
        self._client = client
        self._resilient = resilient
        self._verbose = verbose

    async def get_history(self, account: str, limit: int, offset: int) -> list[dict[str, Any]]:
        params = {"account": account, "limit": limit, "offset": offset, "type": "user"}
        if self._verbose:
            logger.debug("[HiveEngineApi][get_history] request: %s", params)

        async def call(endpoint: str, attempt: int) -> list[dict[str, Any]]:
            url = build_url(endpoint, "accountHistory")
            payload = await request_json(self._client, "GET", url, params=params)
            if not isinstance(payload, list):
                raise TransientNetworkError(f"HE history ({url}): unexpected payload")
            return payload

        result = await self._resilient.call(call, ServiceClass.HEH)
        if self._verbose:
            logger.debug("[HiveEngineApi][get_history] response: %d records", len(result))
        return result

    async def get_token_price_usd(self, symbol: str, hive_usd: float) -> float:
        if self._verbose:
            logger.debug("[HiveEngineApi][get_token_price_usd] request: %s", {"symbol": symbol, "hive_usd": hive_usd})

        async def call(endpoint: str, attempt: int) -> Any:
            url = build_url(endpoint, "contracts")
            return await request_json(self._client, "POST", url, json=market_metrics_query(symbol))

        payload = await self._resilient.call(call, ServiceClass.HE)
        price = _last_price(payload) * hive_usd
        if self._verbose:
            logger.debug("[HiveEngineApi][get_token_price_usd] response: %s", {"symbol": symbol, "price": price})
        return price
