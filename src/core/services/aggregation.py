"""Conversión a USD, redondeo y orden de los reportes.

Reglas de redondeo (aplicadas solo al emitir, nunca durante la acumulación):
- HIVE: cantidades a 3 decimales, USD a 2, precio HIVE/USD a 4.
- Tokens: cantidades a 2 decimales, precio y USD a 8 (tokens de muy bajo valor
  no deben redondearse a 0).
"""

from __future__ import annotations

import math
from collections.abc import Awaitable, Callable, Iterable, Mapping
from decimal import ROUND_HALF_UP, Decimal, localcontext

from core.domain.models import (
    AccountError,
    CategoryTotal,
    InboundReport,
    NativeInbound,
    OutboundReport,
    OutboundStats,
    RecipientNative,
    RecipientReport,
    RecipientTokens,
    TokenAmount,
    TokenInbound,
)
from core.services.ledger_scanner import AccumulatedSums

NO_OUTBOUND_MESSAGE = "No Hive/tokens outbound transfers found"

PriceLookup = Callable[[str], Awaitable[float]]


def round_half_up(value: float, places: int) -> float:
    """Redondeo decimal "de libro": `round_half_up(0.000000005, 8) == 1e-08`.

    `round()` de Python trabaja sobre el binario y redondea al par, lo que
    convierte cantidades de tokens minúsculas en 0.
    """

    if not math.isfinite(value):
        return value
    quantum = Decimal(1).scaleb(-places)
    with localcontext() as ctx:
        # quantize falla si el resultado supera la precisión del contexto.
        ctx.prec = 400
        return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


class SymbolPriceMemo:
    """Resuelve el precio de cada símbolo una sola vez por reporte."""

    def __init__(self, lookup: PriceLookup) -> None:
        self._lookup = lookup
        self._prices: dict[str, float] = {}

    async def __call__(self, symbol: str) -> float:
        if symbol not in self._prices:
            self._prices[symbol] = await self._lookup(symbol)
        return self._prices[symbol]

    @property
    def resolved(self) -> dict[str, float]:
        return dict(self._prices)


async def build_inbound_report(
    native: AccumulatedSums,
    tokens: AccumulatedSums,
    native_usd: float,
    price_for: PriceLookup,
    hive_categories: Iterable[str] = (),
) -> InboundReport:
    # Todas las categorías de Hive aparecen, aunque no hayan recibido nada.
    breakdown = {key: CategoryTotal() for key in hive_categories}
    for bucket in native.buckets():
        breakdown[bucket] = CategoryTotal(
            tot=round_half_up(native.total(bucket), 3),
            transactions=native.count(bucket),
        )
    tot_hive = native.grand_total()
    hive = NativeInbound(
        tot_hive_sent=round_half_up(tot_hive, 3),
        breakdown=breakdown,
        tot_hive_transactions=native.total_count(),
        hive_usd=round_half_up(native_usd, 4),
        tot_usd=round_half_up(tot_hive * native_usd, 2),
    )

    token_breakdown: dict[str, dict[str, TokenAmount]] = {}
    tokens_usd = 0.0
    for bucket, per_symbol in tokens.amounts.items():
        token_breakdown[bucket] = {}
        for symbol, amount in per_symbol.items():
            price = await price_for(symbol)
            usd = amount * price
            token_breakdown[bucket][symbol] = TokenAmount(
                amount=round_half_up(amount, 2),
                price=round_half_up(price, 8),
                usd=round_half_up(usd, 8),
                transactions=tokens.counts[bucket][symbol],
            )
            tokens_usd += usd

    return InboundReport(
        hive=hive,
        tokens=TokenInbound(
            breakdown=token_breakdown,
            tot_usd=round_half_up(tokens_usd, 8),
            transactions=tokens.total_count(),
        ),
    )


def has_activity(native: AccumulatedSums, tokens: AccumulatedSums) -> bool:
    return not (native.is_empty() and tokens.is_empty())


def no_activity_report() -> OutboundReport:
    return OutboundReport(recipients={}, message=NO_OUTBOUND_MESSAGE)


async def build_outbound_report(
    native: AccumulatedSums,
    tokens: AccumulatedSums,
    native_usd: float,
    price_for: PriceLookup,
) -> OutboundReport:
    """Reporte por destinatario, de mayor a menor USD combinado.

    Destinatarios en orden de aparición (primero Hive, después los que solo
    recibieron tokens) antes del orden estable por USD.
    """

    hive_usd = round_half_up(native_usd, 4)
    natives: dict[str, RecipientNative] = {}
    for recipient in native.buckets():
        amount = native.total(recipient)
        natives[recipient] = RecipientNative(
            tot_hive=round_half_up(amount, 3),
            hive_usd=hive_usd,
            tot_usd=round_half_up(amount * native_usd, 2),
            transactions=native.count(recipient),
        )

    token_reports: dict[str, RecipientTokens] = {}
    usd_in_tokens = 0.0
    for recipient, per_symbol in tokens.amounts.items():
        breakdown: dict[str, TokenAmount] = {}
        recipient_usd = 0.0
        for symbol, amount in per_symbol.items():
            price = await price_for(symbol)
            usd = round_half_up(amount * price, 8)
            breakdown[symbol] = TokenAmount(
                amount=round_half_up(amount, 2),
                usd=usd,
                transactions=tokens.counts[recipient][symbol],
            )
            recipient_usd += amount * price
            usd_in_tokens += amount * price
        token_reports[recipient] = RecipientTokens(
            breakdown=breakdown,
            tot_usd=round_half_up(recipient_usd, 8),
            transactions=tokens.count(recipient),
        )

    recipients: dict[str, RecipientReport] = {}
    for recipient in [*natives, *(r for r in token_reports if r not in natives)]:
        recipients[recipient] = RecipientReport(
            hive=natives.get(recipient) or RecipientNative(hive_usd=hive_usd),
            tokens=token_reports.get(recipient) or RecipientTokens(),
        )

    ordered = sorted(recipients.items(), key=lambda item: item[1].combined_usd, reverse=True)
    return OutboundReport(
        recipients=dict(ordered),
        stats=OutboundStats(
            tot_hive_transactions=native.total_count(),
            tot_tokens_transactions=tokens.total_count(),
            tot_usd_sent_in_hive=round_half_up(native.grand_total() * native_usd, 2),
            tot_usd_sent_in_tokens=round_half_up(usd_in_tokens, 2),
        ),
    )


def partition_inbounds(
    results: Mapping[str, InboundReport | AccountError],
) -> dict[str, InboundReport | AccountError]:
    """Éxitos ordenados por USD (orden estable); errores al final, en orden de petición."""

    successes = [(k, v) for k, v in results.items() if isinstance(v, InboundReport)]
    errors = [(k, v) for k, v in results.items() if not isinstance(v, InboundReport)]
    successes.sort(key=lambda item: item[1].combined_usd, reverse=True)
    return dict([*successes, *errors])
