"""Precio HIVE/USD con memo TTL.

Fuente única (formato CoinGecko `simple/price`), así que no hay rotación:
solo reintentos. El memo vive en la instancia, no en estado de módulo.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

import httpx

from adapters.beacon import Sleep
from adapters.http_client import request_json
from adapters.resilient import RETRYABLE_ERRORS, RetryConfig, with_retries
from core.config import AppSettings
from core.domain.models import PriceQuote
from core.interfaces.ledgers import NativePriceSource

logger = logging.getLogger(__name__)


def _extract_usd(payload: Any) -> float:
    if not isinstance(payload, dict):
        return 0.0
    entry = payload.get("hive")
    if not isinstance(entry, dict):
        return 0.0
    try:
        return float(entry.get("usd") or 0.0)
    except (TypeError, ValueError):
        return 0.0


class PriceCache(NativePriceSource):
    def __init__(
        self,
        client: httpx.AsyncClient,
        settings: AppSettings | None = None,
        *,
        clock: Callable[[], float] = time.time,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._client = client
        self._settings = settings or AppSettings()
        self._clock = clock
        self._sleep = sleep
        self._memo: PriceQuote | None = None

    @property
    def memo(self) -> PriceQuote | None:
        return self._memo

    def _is_fresh(self, now: float) -> bool:
        if self._memo is None:
            return False
        return (now - self._memo.fetched_at) < self._settings.price_cache_mins * 60

    async def get_native_usd(self) -> float:
        """Precio vigente; ante fallo devuelve el último conocido (o 0.0)."""

        now = self._clock()
        if self._is_fresh(now):
            assert self._memo is not None
            return self._memo.value

        url = self._settings.hive_price_url
        try:
            payload = await with_retries(
                lambda attempt: request_json(self._client, "GET", url),
                config=RetryConfig.from_settings(self._settings),
                sleep=self._sleep,
            )
        except RETRYABLE_ERRORS as exc:
            fallback = self._memo.value if self._memo else 0.0
            logger.warning("HIVE price fetch failed, using %s: %s", fallback, exc)
            return fallback

        value = _extract_usd(payload)
        if value:
            self._memo = PriceQuote(value=value, fetched_at=now)
        elif self._memo:
            return self._memo.value
        return value
