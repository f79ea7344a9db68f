"""Taxonomía de errores del dominio.

Por qué aquí:
- Core y adaptadores comparten las mismas excepciones sin importarse entre sí.
- La CLI puede distinguir fallos de validación (exit code) de fallos remotos.
"""

from __future__ import annotations


class RewardsError(Exception):
    """Raíz de todos los errores propios de hive-rewards."""


class ValidationError(RewardsError, ValueError):
    """Petición mal formada: se lanza antes de cualquier I/O remoto."""


class TransientNetworkError(RewardsError):
    """Timeout, status no-2xx o fallo de conexión en una llamada remota."""


class ServiceUnavailableError(RewardsError):
    """Se agotaron los reintentos de una llamada lógica."""


class NoHealthyEndpointError(RewardsError):
    """Una clase de servicio quedó sin endpoints elegibles tras refrescar."""


class NoConnectivityError(RewardsError):
    """Todas las sondas de vida fallaron: probablemente el cliente no tiene red."""
