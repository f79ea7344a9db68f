"""Reintentos con backoff exponencial y rotación de nodos.

Una llamada lógica (`ResilientClient.call`) envuelve una única llamada remota:
- intento 0 con el nodo que la sesión ya tiene;
- cada intento posterior pide un nodo nuevo al registro, excluyendo el usado
  en el intento anterior;
- entre intentos se espera `2^intento * base_delay`.

Bucle iterativo con contador de intentos explícito (sin recursión).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import httpx

from adapters.beacon import EndpointHealthRegistry, Sleep
from core.config import AppSettings
from core.domain.errors import ServiceUnavailableError, TransientNetworkError
from core.domain.service_class import ServiceClass

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    TransientNetworkError,
    httpx.HTTPError,
    asyncio.TimeoutError,
)


@dataclass(frozen=True)
class RetryConfig:
    """Configuración de reintentos (intentos totales, no reintentos extra)."""

    retries: int = 3
    base_delay_ms: int = 300
    timeout_seconds: float = 10.0

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "RetryConfig":
        return cls(
            retries=settings.retries,
            base_delay_ms=settings.retry_base_delay_ms,
            timeout_seconds=settings.request_timeout_seconds,
        )

    def delay_after(self, attempt: int) -> float:
        """Segundos a esperar tras fallar el intento `attempt` (base 0)."""

        return (2**attempt) * self.base_delay_ms / 1000


async def with_retries(
    fn: Callable[[int], Awaitable[T]],
    *,
    config: RetryConfig | None = None,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Reintenta `fn(attempt)` sin rotación (fuentes de un solo nodo).

    Propaga el último error tal cual tras agotar los intentos.
    """

    cfg = config or RetryConfig()
    last_err: BaseException | None = None
    for attempt in range(cfg.retries):
        try:
            return await asyncio.wait_for(fn(attempt), timeout=cfg.timeout_seconds)
        except RETRYABLE_ERRORS as exc:
            last_err = exc
            logger.debug("Attempt %d/%d failed: %s", attempt + 1, cfg.retries, exc)
            if attempt < cfg.retries - 1:
                await sleep(cfg.delay_after(attempt))
    assert last_err is not None
    raise last_err


class ResilientClient:
    """Sesión lógica con un nodo "actual" por clase de servicio."""

    def __init__(
        self,
        registry: EndpointHealthRegistry,
        config: RetryConfig | None = None,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._registry = registry
        self._config = config or RetryConfig()
        self._sleep = sleep
        self._current: dict[ServiceClass, str] = {}

    @property
    def config(self) -> RetryConfig:
        return self._config

    def current(self, service_class: ServiceClass) -> str | None:
        return self._current.get(service_class)

    async def endpoint(self, service_class: ServiceClass) -> str:
        """Nodo actual de la sesión; lo resuelve en el registro la primera vez."""

        held = self._current.get(service_class)
        if held is None:
            held = await self._registry.get_endpoint(service_class)
            self._current[service_class] = held
        return held

    async def call(
        self,
        fn: Callable[[str, int], Awaitable[T]],
        service_class: ServiceClass,
        *,
        retries: int | None = None,
        base_delay_ms: int | None = None,
    ) -> T:
        """Ejecuta `fn(endpoint, attempt)` con reintentos y rotación.

        Raises:
            ServiceUnavailableError: tras agotar los intentos (encadena el último error).
            NoConnectivityError / NoHealthyEndpointError: si el registro no puede
                ofrecer un nodo nuevo.
        """

        attempts = retries if retries is not None else self._config.retries
        base_ms = base_delay_ms if base_delay_ms is not None else self._config.base_delay_ms

        endpoint = await self.endpoint(service_class)
        last_err: BaseException | None = None
        for attempt in range(attempts):
            if attempt > 0:
                swapped = await self._registry.get_endpoint(service_class, prev=endpoint)
                logger.info("Swapped %s endpoint: %s -> %s", service_class.value, endpoint, swapped)
                endpoint = swapped
            try:
                result = await asyncio.wait_for(fn(endpoint, attempt), timeout=self._config.timeout_seconds)
            except RETRYABLE_ERRORS as exc:
                last_err = exc
                logger.warning(
                    "%s call failed on %s (attempt %d/%d): %s",
                    service_class.value,
                    endpoint,
                    attempt + 1,
                    attempts,
                    str(exc) or type(exc).__name__,
                )
                if attempt < attempts - 1:
                    await self._sleep((2**attempt) * base_ms / 1000)
                continue

            self._current[service_class] = endpoint
            return result

        raise ServiceUnavailableError(
            f"{service_class.label()} unavailable after {attempts} attempts: {last_err}"
        ) from last_err
