"""Registro de nodos sanos (beacon de PeakD).

Responsabilidad:
- Mantener, por clase de servicio, una lista cacheada (TTL) de nodos sanos.
- Elegir un nodo al azar y verificar conectividad con una sonda HEAD.
- Rotar: un nodo reportado como malo se expulsa antes de la siguiente elección.

Por qué un objeto y no estado de módulo:
- El ciclo de vida (refresco en segundo plano, cierre) queda ligado a la
  instancia: `start()` / `stop()` o `async with`.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime, timezone
from typing import Any

import httpx
from pydantic import ValidationError as PydanticValidationError

from adapters.http_client import build_url, request_json
from core.config import AppSettings
from core.domain.errors import NoConnectivityError, NoHealthyEndpointError, TransientNetworkError
from core.domain.models import BeaconNode, Endpoint, HealthCacheEntry
from core.domain.service_class import ServiceClass

logger = logging.getLogger(__name__)

MAX_PROBE_ATTEMPTS = 3
PERFECT_SCORE = 100

Sleep = Callable[[float], Awaitable[None]]


def eligible_endpoints(payload: Any, required_feature: str) -> list[str]:
    """Filtra el feed: score perfecto, cero fallos y feature requerida."""

    if not isinstance(payload, list):
        return []

    out: list[str] = []
    for raw in payload:
        try:
            node = BeaconNode.model_validate(raw)
        except PydanticValidationError:
            continue
        if node.score == PERFECT_SCORE and node.fail == 0 and required_feature in node.features:
            out.append(node.endpoint)
    return out


class EndpointHealthRegistry:
    """Lista de nodos sanos por `ServiceClass`, con sonda de vida y rotación."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        settings: AppSettings | None = None,
        *,
        pinned: Mapping[ServiceClass, str] | None = None,
        rng: random.Random | None = None,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._settings = settings or AppSettings()
        self._pinned = dict(pinned or {})
        self._rng = rng or random.Random()
        self._sleep = sleep
        self._clock = clock
        self._cache: dict[ServiceClass, HealthCacheEntry] = {sc: HealthCacheEntry() for sc in ServiceClass}
        self._locks: dict[ServiceClass, asyncio.Lock] = {sc: asyncio.Lock() for sc in ServiceClass}
        self._pollers: dict[ServiceClass, asyncio.Task[None]] = {}

    async def __aenter__(self) -> "EndpointHealthRegistry":
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Descubrimiento

    async def _discover(self, service_class: ServiceClass) -> list[str]:
        url = build_url(self._settings.beacon_url, service_class.discovery_path)
        try:
            payload = await asyncio.wait_for(
                request_json(self._client, "GET", url),
                timeout=self._settings.beacon_timeout_seconds,
            )
        except (TransientNetworkError, asyncio.TimeoutError) as exc:
            logger.warning(
                "Failed to query beacon for %s nodes, using defaults: %s",
                service_class.value,
                str(exc) or "timeout",
            )
            return list(service_class.default_nodes)

        healthy = eligible_endpoints(payload, service_class.required_feature)
        if not healthy:
            logger.info("Beacon returned no eligible %s nodes, using defaults", service_class.value)
            return list(service_class.default_nodes)
        return healthy

    async def refresh(self, service_class: ServiceClass) -> list[str]:
        """Vuelve a consultar el beacon. Nunca deja la lista vacía."""

        async with self._locks[service_class]:
            urls = await self._discover(service_class)
            self._cache[service_class] = HealthCacheEntry(
                endpoints=[Endpoint(url=u) for u in urls],
                last_refresh=self._clock(),
            )
            logger.debug("Refreshed %s nodes: %s", service_class.value, urls)
            return urls

    def _is_stale(self, service_class: ServiceClass) -> bool:
        entry = self._cache[service_class]
        if entry.last_refresh == 0.0:
            return True
        return (self._clock() - entry.last_refresh) > self._settings.health_stale_after_seconds

    # ------------------------------------------------------------------
    # Selección

    async def _probe(self, endpoint: Endpoint) -> bool:
        # Cualquier respuesta HTTP cuenta: solo verificamos conectividad.
        try:
            await self._client.head(endpoint.url, timeout=self._settings.request_timeout_seconds)
            alive = True
        except httpx.HTTPError as exc:
            logger.warning("Connectivity check failed for %s: %s", endpoint.url, exc)
            alive = False
        endpoint.healthy = alive
        endpoint.last_checked_at = datetime.now(timezone.utc)
        return alive

    def _evict(self, service_class: ServiceClass, url: str) -> None:
        entry = self._cache[service_class]
        entry.endpoints = [e for e in entry.endpoints if e.url != url]

    def report_bad(self, service_class: ServiceClass, endpoint: str) -> None:
        """Expulsa `endpoint`; si la lista queda vacía se redescubre en el próximo uso."""

        self._evict(service_class, endpoint)
        logger.debug("Discarded %s node %s", service_class.value, endpoint)

    async def get_endpoint(self, service_class: ServiceClass, prev: str | None = None) -> str:
        """Devuelve un nodo vivo, distinto de `prev` si se indica.

        Un nodo fijado por configuración (`*_url`) se devuelve siempre, sin sonda.
        """

        pinned = self._pinned.get(service_class)
        if pinned:
            return pinned

        if prev:
            self.report_bad(service_class, prev)

        base_delay = self._settings.retry_base_delay_ms / 1000
        for attempt in range(1, MAX_PROBE_ATTEMPTS + 1):
            candidates = self._candidates(service_class, prev)
            if not candidates or self._is_stale(service_class):
                await self.refresh(service_class)
                candidates = self._candidates(service_class, prev)
            if not candidates:
                raise NoHealthyEndpointError(f"No healthy {service_class.value} nodes available")

            chosen = self._rng.choice(candidates)
            if await self._probe(chosen):
                return chosen.url

            self._evict(service_class, chosen.url)
            if attempt < MAX_PROBE_ATTEMPTS:
                await self._sleep((2**attempt) * base_delay)

        logger.error("Connectivity checks failed %d times. Please verify your connection.", MAX_PROBE_ATTEMPTS)
        raise NoConnectivityError("client has no connectivity")

    def _candidates(self, service_class: ServiceClass, exclude: str | None) -> list[Endpoint]:
        return [e for e in self._cache[service_class].endpoints if e.url != exclude]

    def snapshot(self) -> dict[ServiceClass, HealthCacheEntry]:
        """Copia del estado actual (diagnóstico)."""

        return {sc: entry.model_copy(deep=True) for sc, entry in self._cache.items()}

    # ------------------------------------------------------------------
    # Refresco en segundo plano

    async def _poll(self, service_class: ServiceClass) -> None:
        interval = max(1.0, self._settings.health_stale_after_seconds - 0.5)
        while True:
            try:
                await self.refresh(service_class)
            except Exception:
                logger.exception("Background refresh of %s nodes failed", service_class.value)
            await asyncio.sleep(interval)

    def start(self) -> None:
        """Arranca un refresco periódico por clase (requiere event loop activo)."""

        for service_class in ServiceClass:
            if service_class in self._pinned or service_class in self._pollers:
                continue
            self._pollers[service_class] = asyncio.create_task(
                self._poll(service_class),
                name=f"beacon-refresh-{service_class.value}",
            )

    async def stop(self) -> None:
        pollers = list(self._pollers.values())
        self._pollers.clear()
        for task in pollers:
            task.cancel()
        await asyncio.gather(*pollers, return_exceptions=True)

    @property
    def running(self) -> bool:
        return bool(self._pollers)
