"""Modelos del dominio (Pydantic v2).

Por qué Pydantic en el dominio:
- Nos da validación estricta y documentación autocontenida (Field) sin acoplar
  el Core a librerías de I/O.
- Facilita la serialización de los reportes (CLI, JSON) con un único contrato.

Nota:
- Estos modelos describen *qué* es la información, no *cómo* se obtiene.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict


class Endpoint(BaseModel):
    """Un nodo candidato para una clase de servicio."""

    url: str = Field(..., min_length=1, description="URL base del nodo.")
    healthy: bool = Field(default=True, description="Resultado de la última sonda de vida.")
    last_checked_at: datetime | None = Field(
        default=None,
        description="Momento de la última sonda (UTC).",
    )


class HealthCacheEntry(BaseModel):
    """Lista cacheada de nodos sanos para una clase de servicio."""

    endpoints: list[Endpoint] = Field(default_factory=list)
    last_refresh: float = Field(
        default=0.0,
        ge=0.0,
        description="Reloj monotónico del último refresco (0 = nunca).",
    )

    def urls(self) -> list[str]:
        return [e.url for e in self.endpoints]


class BeaconNode(BaseModel):
    """Entrada del feed de descubrimiento (beacon)."""

    model_config = ConfigDict(extra="ignore")

    endpoint: str = Field(..., min_length=1)
    score: int = Field(default=0)
    fail: int = Field(default=0)
    features: list[str] = Field(default_factory=list)


class LedgerRecord(BaseModel):
    """Un hecho inmutable leído de un ledger remoto.

    Tanto las operaciones `transfer` de Hive como las de Hive-Engine se
    normalizan a esta forma antes de clasificarse.
    """

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(..., description="Momento de la operación (UTC).")
    actor_from: str = Field(..., description="Cuenta que envía.")
    actor_to: str = Field(..., description="Cuenta que recibe.")
    asset: str = Field(..., min_length=1, description="`HIVE` o símbolo del token.")
    amount: float = Field(..., description="Cantidad transferida.")
    kind: str = Field(..., description="Nombre de la operación en el ledger de origen.")
    index: int | None = Field(
        default=None,
        description="Índice secuencial en el historial (solo ledger nativo).",
    )


class PriceQuote(BaseModel):
    value: float = Field(..., ge=0.0, description="Precio en USD.")
    fetched_at: float = Field(..., description="Reloj (segundos) del momento de la consulta.")


class CategoryTotal(BaseModel):
    tot: float = 0.0
    transactions: int = 0


class TokenAmount(BaseModel):
    """Suma de un símbolo para una categoría (inbound) o destinatario (outbound)."""

    amount: float = Field(..., description="Cantidad redondeada a 2 decimales.")
    price: float | None = Field(
        default=None,
        description="Precio USD por unidad (8 decimales); solo en reportes inbound.",
    )
    usd: float = Field(..., description="Valor USD redondeado a 8 decimales.")
    transactions: int = Field(default=0, ge=0)


class NativeInbound(BaseModel):
    tot_hive_sent: float = 0.0
    breakdown: dict[str, CategoryTotal] = Field(default_factory=dict)
    tot_hive_transactions: int = 0
    hive_usd: float = 0.0
    tot_usd: float = 0.0


class TokenInbound(BaseModel):
    breakdown: dict[str, dict[str, TokenAmount]] = Field(default_factory=dict)
    tot_usd: float = 0.0
    transactions: int = 0


class InboundReport(BaseModel):
    """Lo recibido por una cuenta, separado por ledger."""

    hive: NativeInbound
    tokens: TokenInbound

    @property
    def combined_usd(self) -> float:
        return self.hive.tot_usd + self.tokens.tot_usd


class RecipientNative(BaseModel):
    tot_hive: float = 0.0
    hive_usd: float = 0.0
    tot_usd: float = 0.0
    transactions: int = 0


class RecipientTokens(BaseModel):
    breakdown: dict[str, TokenAmount] = Field(default_factory=dict)
    tot_usd: float = 0.0
    transactions: int = 0


class RecipientReport(BaseModel):
    hive: RecipientNative
    tokens: RecipientTokens

    @property
    def combined_usd(self) -> float:
        return self.hive.tot_usd + self.tokens.tot_usd


class OutboundStats(BaseModel):
    tot_hive_transactions: int = 0
    tot_tokens_transactions: int = 0
    tot_usd_sent_in_hive: float = 0.0
    tot_usd_sent_in_tokens: float = 0.0


class OutboundReport(BaseModel):
    """Lo enviado por una cuenta, por destinatario (ordenado por USD)."""

    recipients: dict[str, RecipientReport] = Field(default_factory=dict)
    stats: OutboundStats | None = None
    message: str | None = None


class AccountError(BaseModel):
    """Fallo aislado de una cuenta dentro de un lote."""

    error: str = Field(..., description="Mensaje de la excepción original.")


class SenderMappings(BaseModel):
    hive_senders: dict[str, str] = Field(default_factory=dict)
    token_senders: dict[str, str] = Field(default_factory=dict)


class InboundsResult(BaseModel):
    recipients: dict[str, InboundReport | AccountError] = Field(default_factory=dict)
    senders: SenderMappings = Field(default_factory=SenderMappings)


class OutboundsResult(BaseModel):
    senders: dict[str, OutboundReport | AccountError] = Field(default_factory=dict)
