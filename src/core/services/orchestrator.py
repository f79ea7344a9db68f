"""Orquestación de los análisis inbound/outbound.

Flujo por llamada: validar -> resolver ventana -> escanear cada cuenta ->
agregar -> devolver.

La ventana (`hours`/`days`) se resuelve por llamada y nunca se escribe en los
settings compartidos: llamadas concurrentes no ven overrides ajenos.

- Las cuentas de un lote se procesan de a una (carga acotada sobre los nodos y
  errores fáciles de atribuir).
- Dentro de una cuenta, los dos escaneos y el precio corren en paralelo.
- Un fallo en una cuenta queda registrado como `AccountError` y no detiene el
  resto del lote; solo los errores de validación escapan.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from core.config import AppSettings
from core.domain.accounts import CategoryMapping, validate_account_name
from core.domain.errors import ValidationError
from core.domain.models import (
    AccountError,
    InboundReport,
    InboundsResult,
    OutboundReport,
    OutboundsResult,
    SenderMappings,
)
from core.interfaces.ledgers import NativePriceSource, TokenLedgerApi
from core.services.aggregation import (
    SymbolPriceMemo,
    build_inbound_report,
    build_outbound_report,
    has_activity,
    no_activity_report,
    partition_inbounds,
)
from core.services.ledger_scanner import (
    AccumulatedSums,
    LedgerScanner,
    inbound_classifier,
    outbound_classifier,
)

logger = logging.getLogger(__name__)


@dataclass
class AnalyzerHooks:
    """Callbacks opcionales para la capa de UI (progreso y avisos)."""

    account_started: Callable[[str, str], None] | None = None
    account_finished: Callable[[str, str, float], None] | None = None
    page_scanned: Callable[[str, str, int, int], None] | None = None
    warning: Callable[[str], None] | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _dedupe(accounts: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for raw in accounts:
        account = (raw or "").strip().lower()
        if account:
            seen.setdefault(account, None)
    return list(seen)


def check_window(hours: float | None, days: float | None) -> None:
    if hours is not None and days is not None:
        raise ValidationError("Please provide either hours or days, not both")
    for name, value in (("hours", hours), ("days", days)):
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            raise ValidationError(f"'{name}' must be a positive number, got {value!r}")


async def _empty_sums() -> AccumulatedSums:
    return AccumulatedSums()


async def _fan_out(*aws: Awaitable[Any]) -> list[Any]:
    """`gather` que cancela a los hermanos si uno falla."""

    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


class EarningsAnalyzer:
    def __init__(
        self,
        settings: AppSettings,
        scanner: LedgerScanner,
        token_api: TokenLedgerApi,
        price_source: NativePriceSource,
        *,
        hooks: AnalyzerHooks | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._settings = settings
        self._scanner = scanner
        self._token_api = token_api
        self._prices = price_source
        self._hooks = hooks or AnalyzerHooks()
        self._clock = clock

    @property
    def settings(self) -> AppSettings:
        return self._settings

    # ------------------------------------------------------------------
    # Helpers

    def _warn(self, message: str) -> None:
        logger.warning(message)
        if self._hooks.warning:
            self._hooks.warning(message)

    def _check_names(self, accounts: Iterable[str]) -> None:
        # Un nombre inválido no aborta: el nodo devolverá vacío o un error.
        for account in accounts:
            problem = validate_account_name(account)
            if problem:
                self._warn(f"Invalid Hive username '{account}': {problem}")

    def _window_hours(self, hours: float | None, days: float | None) -> float:
        if hours is not None:
            return hours
        if days is not None:
            return days * 24
        return self._settings.hours

    def _since(self, window: float) -> datetime:
        return self._clock() - timedelta(hours=window)

    def _price_memo(self, native_usd: float) -> SymbolPriceMemo:
        return SymbolPriceMemo(lambda symbol: self._token_api.get_token_price_usd(symbol, native_usd))

    async def _timed(self, direction: str, account: str, work: Awaitable[Any]) -> Any:
        if self._hooks.account_started:
            self._hooks.account_started(direction, account)
        started = time.perf_counter()
        try:
            return await work
        finally:
            elapsed = time.perf_counter() - started
            logger.info("%s's %s scans completed in %.2f mins", account, direction, elapsed / 60)
            if self._hooks.account_finished:
                self._hooks.account_finished(direction, account, elapsed)

    # ------------------------------------------------------------------
    # Inbound

    async def _inbound_for(
        self,
        receiver: str,
        since: datetime,
        hive_senders: CategoryMapping,
        token_senders: CategoryMapping,
    ) -> InboundReport:
        on_page = self._hooks.page_scanned
        native_scan = (
            self._scanner.scan_native(receiver, since, inbound_classifier(receiver, hive_senders), on_page=on_page)
            if hive_senders
            else _empty_sums()
        )
        token_scan = (
            self._scanner.scan_tokens(receiver, since, inbound_classifier(receiver, token_senders), on_page=on_page)
            if token_senders
            else _empty_sums()
        )
        native, tokens, native_usd = await _fan_out(native_scan, token_scan, self._prices.get_native_usd())
        return await build_inbound_report(
            native,
            tokens,
            native_usd,
            self._price_memo(native_usd),
            hive_categories=hive_senders.keys(),
        )

    async def inbounds(
        self,
        receivers: Iterable[str],
        hive_senders: Mapping[str, str] | None = None,
        token_senders: Mapping[str, str] | None = None,
        *,
        hours: float | None = None,
        days: float | None = None,
    ) -> InboundsResult:
        """Lo recibido por cada `receiver` desde las cuentas rastreadas.

        Raises:
            ValidationError: antes de cualquier llamada remota.
        """

        accounts = _dedupe(receivers)
        hive_map = CategoryMapping(hive_senders)
        token_map = CategoryMapping(token_senders)
        if not accounts or (not hive_map and not token_map):
            raise ValidationError(
                "Please provide both the receiver(s) and the sender(s) accounts that you want to analyze"
            )
        check_window(hours, days)
        self._check_names([*accounts, *hive_map.accounts, *token_map.accounts])

        results: dict[str, InboundReport | AccountError] = {}
        window = self._window_hours(hours, days)
        since = self._since(window)
        logger.info(
            "Starting inbounds scans: hours=%s receivers=%s hive_senders=%s token_senders=%s",
            window,
            accounts,
            hive_map.as_dict(),
            token_map.as_dict(),
        )
        for receiver in accounts:
            try:
                results[receiver] = await self._timed(
                    "inbound",
                    receiver,
                    self._inbound_for(receiver, since, hive_map, token_map),
                )
            except Exception as exc:
                logger.error("Error analyzing inbounds of %s: %s", receiver, exc)
                results[receiver] = AccountError(error=str(exc) or type(exc).__name__)

        return InboundsResult(
            recipients=partition_inbounds(results),
            senders=SenderMappings(hive_senders=hive_map.as_dict(), token_senders=token_map.as_dict()),
        )

    # ------------------------------------------------------------------
    # Outbound

    async def _outbound_for(self, sender: str, since: datetime, ignored: frozenset[str]) -> OutboundReport:
        on_page = self._hooks.page_scanned
        classify = outbound_classifier(sender)
        native, tokens = await _fan_out(
            self._scanner.scan_native(sender, since, classify, ignored=ignored, on_page=on_page),
            self._scanner.scan_tokens(sender, since, classify, ignored=ignored, on_page=on_page),
        )
        if not has_activity(native, tokens):
            return no_activity_report()

        native_usd = await self._prices.get_native_usd()
        return await build_outbound_report(native, tokens, native_usd, self._price_memo(native_usd))

    async def outbounds(
        self,
        senders: Iterable[str],
        ignored_receivers: Iterable[str] = (),
        *,
        hours: float | None = None,
        days: float | None = None,
    ) -> OutboundsResult:
        """Lo enviado por cada `sender`, por destinatario.

        Raises:
            ValidationError: antes de cualquier llamada remota.
        """

        accounts = _dedupe(senders)
        if not accounts:
            raise ValidationError('"senders" argument missing - provide at least one account')
        check_window(hours, days)
        ignored = frozenset(_dedupe(ignored_receivers))
        self._check_names(accounts)

        results: dict[str, OutboundReport | AccountError] = {}
        window = self._window_hours(hours, days)
        since = self._since(window)
        logger.info(
            "Starting outbounds scans: hours=%s senders=%s ignored=%s",
            window,
            accounts,
            sorted(ignored),
        )
        for sender in accounts:
            try:
                results[sender] = await self._timed("outbound", sender, self._outbound_for(sender, since, ignored))
            except Exception as exc:
                logger.error("Error analyzing outbounds of %s: %s", sender, exc)
                results[sender] = AccountError(error=str(exc) or type(exc).__name__)

        return OutboundsResult(senders=results)
