"""Ciclo de vida del proceso: cliente HTTP, registro de nodos y analizador.

Todo el estado compartido (cache de nodos, memo de precio, tareas de refresco)
vive en objetos creados aquí y se libera al salir del context manager; no hay
singletons de módulo.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import httpx

from adapters.beacon import EndpointHealthRegistry, Sleep
from adapters.http_client import build_async_client
from adapters.ledger_sources import HiveApi, HiveEngineApi
from adapters.price_source import PriceCache
from adapters.resilient import ResilientClient, RetryConfig
from core.config import AppSettings
from core.domain.errors import RewardsError
from core.domain.service_class import ServiceClass
from core.services.ledger_scanner import LedgerScanner
from core.services.orchestrator import AnalyzerHooks, EarningsAnalyzer

logger = logging.getLogger(__name__)


@dataclass
class RewardsRuntime:
    settings: AppSettings
    client: httpx.AsyncClient
    registry: EndpointHealthRegistry
    resilient: ResilientClient
    hive_api: HiveApi
    engine_api: HiveEngineApi
    prices: PriceCache
    analyzer: EarningsAnalyzer


@dataclass
class ServiceHealth:
    """Resultado de `healthy_endpoints` para una clase de servicio."""

    service_class: ServiceClass
    endpoint: str | None
    candidates: int
    pinned: bool
    error: str | None = None


def pinned_endpoints(settings: AppSettings) -> dict[ServiceClass, str]:
    """Nodos fijados por configuración; omiten descubrimiento y sondas."""

    overrides = {
        ServiceClass.HIVE: settings.hive_node_url,
        ServiceClass.HE: settings.hive_engine_rpc_url,
        ServiceClass.HEH: settings.hive_engine_history_url,
    }
    return {sc: url for sc, url in overrides.items() if url}


@asynccontextmanager
async def open_analyzer(
    settings: AppSettings | None = None,
    *,
    hooks: AnalyzerHooks | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    start_background_refresh: bool = True,
    sleep: Sleep = asyncio.sleep,
) -> AsyncIterator[RewardsRuntime]:
    """Arma el grafo completo y resuelve un nodo inicial por clase.

    Raises:
        NoConnectivityError / NoHealthyEndpointError: si alguna clase no tiene
            nodo inicial.
    """

    settings = settings or AppSettings()
    client = build_async_client(settings, transport=transport)
    registry = EndpointHealthRegistry(client, settings, pinned=pinned_endpoints(settings), sleep=sleep)
    try:
        if start_background_refresh:
            registry.start()

        resilient = ResilientClient(registry, RetryConfig.from_settings(settings), sleep=sleep)
        started = time.perf_counter()
        classes = list(ServiceClass)
        resolved = await asyncio.gather(*(resilient.endpoint(sc) for sc in classes))
        logger.info(
            "Endpoints initialized in %.2fs: %s",
            time.perf_counter() - started,
            {sc.value: url for sc, url in zip(classes, resolved)},
        )

        hive_api = HiveApi(client, resilient, verbose=settings.verbose)
        engine_api = HiveEngineApi(client, resilient, verbose=settings.verbose)
        prices = PriceCache(client, settings, sleep=sleep)
        scanner = LedgerScanner(
            hive_api,
            engine_api,
            native_page_limit=settings.hive_history_limit,
            token_page_limit=settings.he_history_limit,
            page_delay_ms=settings.api_calls_delay_ms,
            sleep=sleep,
        )
        analyzer = EarningsAnalyzer(settings, scanner, engine_api, prices, hooks=hooks)
        yield RewardsRuntime(
            settings=settings,
            client=client,
            registry=registry,
            resilient=resilient,
            hive_api=hive_api,
            engine_api=engine_api,
            prices=prices,
            analyzer=analyzer,
        )
    finally:
        await registry.stop()
        await client.aclose()


async def healthy_endpoints(
    settings: AppSettings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[ServiceHealth]:
    """Un nodo sano por clase de servicio (sin refresco en segundo plano)."""

    settings = settings or AppSettings()
    pinned = pinned_endpoints(settings)
    out: list[ServiceHealth] = []
    async with build_async_client(settings, transport=transport) as client:
        registry = EndpointHealthRegistry(client, settings, pinned=pinned)
        for sc in ServiceClass:
            try:
                endpoint = await registry.get_endpoint(sc)
            except RewardsError as exc:
                out.append(ServiceHealth(sc, None, 0, sc in pinned, error=str(exc)))
                continue
            candidates = len(registry.snapshot()[sc].endpoints)
            out.append(ServiceHealth(sc, endpoint, candidates, sc in pinned))
    return out
