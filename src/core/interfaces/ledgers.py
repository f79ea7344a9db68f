"""Contratos de los ledgers remotos.

Por qué Protocol:
- Define un contrato estructural (duck typing) sin herencia rígida.
- El escáner y el orquestador dependen de estas abstracciones; los adaptadores
  HTTP concretos (Hive, Hive-Engine, CoinGecko) son intercambiables y los
  tests usan fakes en memoria.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class NativeLedgerApi(Protocol):
    """Historial del ledger nativo, paginado hacia atrás por índice."""

    async def get_account_history(self, account: str, start: int, limit: int) -> list[Any]:
        """Devuelve `[(index, {"op": [name, data], "timestamp": ...}), ...]`.

        `start = -1` pide lo más reciente. El orden es ascendente por índice.
        """

        ...


@runtime_checkable
class TokenLedgerApi(Protocol):
    """Historial y precios del ledger de tokens."""

    async def get_history(self, account: str, limit: int, offset: int) -> list[dict[str, Any]]:
        """Devuelve registros del más nuevo al más viejo a partir de `offset`."""

        ...

    async def get_token_price_usd(self, symbol: str, hive_usd: float) -> float:
        """Precio USD de `symbol` (`lastPrice * hive_usd`), 0 si no cotiza."""

        ...


@runtime_checkable
class NativePriceSource(Protocol):
    async def get_native_usd(self) -> float:
        ...
