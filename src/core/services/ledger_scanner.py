"""Escaneo paginado de historiales hacia atrás en el tiempo.

Este módulo concentra la paginación de ambos ledgers:
- Hive pagina por índice (`start = -1` es lo más reciente; la siguiente página
  empieza en `índice_mínimo - 1`).
- Hive-Engine pagina por `offset` y ya entrega las páginas de la más nueva a
  la más vieja.

En los dos casos se recorre cada página desde el registro más nuevo, así el
corte por `since` es un simple `break`: ese registro y todos los anteriores
quedan fuera. La clasificación (por categoría o por destinatario) la decide el
llamador con un `Classifier`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from core.domain.accounts import CategoryMapping
from core.domain.models import LedgerRecord
from core.interfaces.ledgers import NativeLedgerApi, TokenLedgerApi

logger = logging.getLogger(__name__)

NATIVE_ASSET = "HIVE"
TOKEN_OPERATIONS = frozenset({"tokens_transfer", "transfer", "tokens_stake", "stake"})


@dataclass(frozen=True)
class Classification:
    bucket: str | None
    include: bool


EXCLUDED = Classification(bucket=None, include=False)

Classifier = Callable[[LedgerRecord], Classification]
PageCallback = Callable[[str, str, int, int], None]
Sleep = Callable[[float], Awaitable[None]]


@dataclass
class AccumulatedSums:
    """Sumas y conteos por `bucket` y activo, en orden de aparición."""

    amounts: dict[str, dict[str, float]] = field(default_factory=dict)
    counts: dict[str, dict[str, int]] = field(default_factory=dict)

    def add(self, bucket: str, asset: str, amount: float) -> None:
        per_asset = self.amounts.setdefault(bucket, {})
        per_asset[asset] = per_asset.get(asset, 0.0) + amount
        per_count = self.counts.setdefault(bucket, {})
        per_count[asset] = per_count.get(asset, 0) + 1

    def buckets(self) -> list[str]:
        return list(self.amounts)

    def total(self, bucket: str) -> float:
        return sum(self.amounts.get(bucket, {}).values())

    def count(self, bucket: str) -> int:
        return sum(self.counts.get(bucket, {}).values())

    def grand_total(self) -> float:
        return sum(self.total(b) for b in self.amounts)

    def total_count(self) -> int:
        return sum(self.count(b) for b in self.counts)

    def is_empty(self) -> bool:
        return not self.amounts


def parse_native_timestamp(value: str) -> datetime:
    """`2024-05-01T10:00:00` (UTC implícito) -> datetime con tz UTC."""

    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_token_timestamp(value: Any) -> datetime:
    return datetime.fromtimestamp(float(value), tz=timezone.utc)


def native_record(index: int, entry: dict[str, Any]) -> LedgerRecord | None:
    """Solo las operaciones `transfer` en HIVE cuentan (HBD y el resto se ignoran)."""

    op = entry.get("op") or []
    if len(op) != 2 or op[0] != "transfer" or not isinstance(op[1], dict):
        return None
    data = op[1]
    amount = str(data.get("amount") or "")
    if not amount.endswith(f" {NATIVE_ASSET}"):
        return None
    return LedgerRecord(
        timestamp=parse_native_timestamp(entry["timestamp"]),
        actor_from=str(data.get("from") or ""),
        actor_to=str(data.get("to") or ""),
        asset=NATIVE_ASSET,
        amount=float(amount.split()[0]),
        kind=op[0],
        index=index,
    )


def token_record(raw: dict[str, Any]) -> LedgerRecord | None:
    if raw.get("operation") not in TOKEN_OPERATIONS or not raw.get("symbol"):
        return None
    try:
        quantity = float(raw.get("quantity") or 0)
    except (TypeError, ValueError):
        return None
    return LedgerRecord(
        timestamp=parse_token_timestamp(raw["timestamp"]),
        actor_from=str(raw.get("from") or ""),
        actor_to=str(raw.get("to") or ""),
        asset=str(raw["symbol"]),
        amount=quantity,
        kind=str(raw["operation"]),
    )


def inbound_classifier(receiver: str, mapping: CategoryMapping) -> Classifier:
    """Registros hacia `receiver` desde una cuenta rastreada, por categoría."""

    def classify(record: LedgerRecord) -> Classification:
        if record.actor_to != receiver:
            return EXCLUDED
        category = mapping.category_for(record.actor_from)
        if category is None:
            return EXCLUDED
        return Classification(bucket=category, include=True)

    return classify


def outbound_classifier(sender: str) -> Classifier:
    """Registros enviados por `sender`, agrupados por destinatario."""

    def classify(record: LedgerRecord) -> Classification:
        if record.actor_from != sender:
            return EXCLUDED
        return Classification(bucket=record.actor_to, include=True)

    return classify


class LedgerScanner:
    def __init__(
        self,
        native_api: NativeLedgerApi,
        token_api: TokenLedgerApi,
        *,
        native_page_limit: int = 500,
        token_page_limit: int = 250,
        page_delay_ms: int = 500,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._native = native_api
        self._tokens = token_api
        self._native_limit = native_page_limit
        self._token_limit = token_page_limit
        self._delay = page_delay_ms / 1000
        self._sleep = sleep

    @staticmethod
    def _accumulate(
        sums: AccumulatedSums,
        record: LedgerRecord,
        classify: Classifier,
        ignored: frozenset[str],
    ) -> bool:
        if record.actor_from == record.actor_to or record.actor_to in ignored:
            return False
        verdict = classify(record)
        if not verdict.include or verdict.bucket is None:
            return False
        sums.add(verdict.bucket, record.asset, record.amount)
        return True

    async def scan_native(
        self,
        account: str,
        since: datetime,
        classify: Classifier,
        *,
        ignored: Iterable[str] = (),
        on_page: PageCallback | None = None,
    ) -> AccumulatedSums:
        ignored_set = frozenset(ignored)
        sums = AccumulatedSums()
        start = -1
        page_no = 0
        while True:
            limit = self._native_limit if start < 0 else min(self._native_limit, start + 1)
            page = await self._native.get_account_history(account, start, limit)
            if not page:
                break
            page_no += 1

            matched = 0
            reached_cutoff = False
            for index, entry in reversed(page):
                if parse_native_timestamp(entry["timestamp"]) < since:
                    reached_cutoff = True
                    break
                record = native_record(index, entry)
                if record and self._accumulate(sums, record, classify, ignored_set):
                    matched += 1

            logger.debug("hive page %d for %s: %d records, %d matched", page_no, account, len(page), matched)
            if on_page:
                on_page(account, "hive", page_no, matched)
            if reached_cutoff:
                break
            start = min(int(index) for index, _ in page) - 1
            if start < 0:
                break
            await self._sleep(self._delay)
        return sums

    async def scan_tokens(
        self,
        account: str,
        since: datetime,
        classify: Classifier,
        *,
        ignored: Iterable[str] = (),
        on_page: PageCallback | None = None,
    ) -> AccumulatedSums:
        ignored_set = frozenset(ignored)
        sums = AccumulatedSums()
        offset = 0
        page_no = 0
        while True:
            page = await self._tokens.get_history(account, self._token_limit, offset)
            if not page:
                break
            page_no += 1

            matched = 0
            reached_cutoff = False
            for raw in page:
                if parse_token_timestamp(raw["timestamp"]) < since:
                    reached_cutoff = True
                    break
                record = token_record(raw)
                if record and self._accumulate(sums, record, classify, ignored_set):
                    matched += 1

            logger.debug("tokens page %d for %s: %d records, %d matched", page_no, account, len(page), matched)
            if on_page:
                on_page(account, "tokens", page_no, matched)
            if reached_cutoff:
                break
            offset += self._token_limit
            await self._sleep(self._delay)
        return sums
