"""Wrapper de httpx.

Por qué un wrapper:
- Estandariza timeouts, headers y manejo de errores HTTP para todos los adaptadores.
- Facilita testeo: se puede sustituir por un cliente con `httpx.MockTransport`.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import urljoin

import httpx

from core.config import AppSettings
from core.domain.errors import TransientNetworkError


def build_async_client(
    settings: AppSettings | None = None,
    *,
    extra_headers: dict[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Crea un `httpx.AsyncClient` con defaults seguros.

    Por qué un builder:
    - Centraliza timeouts/headers para que todos los ledgers se comporten igual.
    - `transport` permite inyectar un `MockTransport` en tests.
    """

    settings = settings or AppSettings()
    headers: dict[str, str] = {
        "User-Agent": settings.user_agent,
        "Accept": "application/json",
    }
    if extra_headers:
        headers.update(extra_headers)
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.request_timeout_seconds),
        follow_redirects=True,
        headers=headers,
        transport=transport,
    )


def build_url(base: str, path: str) -> str:
    """Une base y path sin duplicar barras (`https://n.io/` + `contracts`)."""

    return urljoin(base.rstrip("/") + "/", path.lstrip("/"))


async def request_json(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    **kwargs: Any,
) -> Any:
    """Ejecuta una petición y devuelve el JSON.

    Cualquier fallo de transporte o status no-2xx se traduce a
    `TransientNetworkError` para que la capa de reintentos lo trate igual.
    """

    try:
        response = await client.request(method, url, **kwargs)
        response.raise_for_status()
        return response.json()
    except httpx.HTTPStatusError as exc:
        raise TransientNetworkError(f"{method} {url}: HTTP {exc.response.status_code}") from exc
    except httpx.HTTPError as exc:
        raise TransientNetworkError(f"{method} {url}: {type(exc).__name__}: {exc}") from exc
    except ValueError as exc:
        raise TransientNetworkError(f"{method} {url}: invalid JSON body") from exc
