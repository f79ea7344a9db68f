"""Ledger nativo: Hive (JSON-RPC).

Implementación:
- `condenser_api.get_account_history` vía POST al nodo elegido por el registro.
- Reintentos y rotación delegados en `ResilientClient`.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from adapters.http_client import request_json
from adapters.resilient import ResilientClient
from core.domain.errors import TransientNetworkError
from core.domain.service_class import ServiceClass
from core.interfaces.ledgers import NativeLedgerApi

logger = logging.getLogger(__name__)


class HiveApi(NativeLedgerApi):
    def __init__(self, client: httpx.AsyncClient, resilient: ResilientClient, *, verbose: bool = False) -> None:
        self._client = client
        self._resilient = resilient
        self._verbose = verbose

    async def _rpc(self, method: str, params: list[Any]) -> Any:
        body = {"jsonrpc": "2.0", "method": method, "params": params, "id": 1}

        async def call(endpoint: str, attempt: int) -> Any:
            payload = await request_json(self._client, "POST", endpoint, json=body)
            if not isinstance(payload, dict):
                raise TransientNetworkError(f"{method} ({endpoint}): unexpected payload")
            if payload.get("error"):
                message = payload["error"].get("message") if isinstance(payload["error"], dict) else payload["error"]
                raise TransientNetworkError(f"{method} ({endpoint}): {message}")
            return payload.get("result")

        return await self._resilient.call(call, ServiceClass.HIVE)

    async def get_account_history(self, account: str, start: int, limit: int) -> list[Any]:
        if self._verbose:
            logger.debug("[HiveApi][get_account_history] request: %s", {"account": account, "start": start, "limit": limit})
        result = await self._rpc("condenser_api.get_account_history", [account, start, limit])
        if self._verbose:
            logger.debug("[HiveApi][get_account_history] response: %s", result)
        return result or []
