"""Componentes de UI para CLI (Rich).

Por qué separar componentes:
- Evita mezclar lógica de comandos con detalles visuales.
- Permite reutilizar tablas/paneles en múltiples comandos.
"""

from __future__ import annotations

from rich.align import Align
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from core.domain.models import (
    AccountError,
    InboundReport,
    InboundsResult,
    OutboundReport,
    OutboundsResult,
)
from core.services.bootstrap import ServiceHealth


def print_banner(console: Console) -> None:
    """Imprime el banner de bienvenida.

    Por qué aquí:
    - Evita dependencias circulares (main <-> doctor).
    - Permite desactivar banner en modos no interactivos (JSON/pipelines).
    """

    title = Text("HIVE-REWARDS", style="bold red")
    subtitle = Text("Hive • Hive-Engine • Inbound / Outbound", style="dim")
    body = Align.center(Text.assemble(title, "\n", subtitle), vertical="middle")
    console.print(Panel(body, border_style="red", padding=(1, 4)))


def _usd(value: float) -> str:
    return f"${value:,.2f}"


def _token_usd(value: float) -> str:
    return f"${value:,.8f}".rstrip("0").rstrip(".")


def build_inbound_table(account: str, report: InboundReport) -> Table:
    table = Table(title=f"Inbounds of @{account}  ({_usd(report.combined_usd)})")
    table.add_column("Ledger", style="cyan", no_wrap=True)
    table.add_column("Category", style="white")
    table.add_column("Asset", style="magenta")
    table.add_column("Amount", justify="right")
    table.add_column("USD", justify="right", style="green")
    table.add_column("Txs", justify="right", style="dim")

    hive = report.hive
    for category, total in hive.breakdown.items():
        table.add_row("hive", category, "HIVE", f"{total.tot:,.3f}", _usd(total.tot * hive.hive_usd), str(total.transactions))
    for category, symbols in report.tokens.breakdown.items():
        for symbol, entry in symbols.items():
            table.add_row("tokens", category, symbol, f"{entry.amount:,.2f}", _token_usd(entry.usd), str(entry.transactions))

    table.caption = (
        f"HIVE {hive.tot_hive_sent:,.3f} @ ${hive.hive_usd} = {_usd(hive.tot_usd)} · "
        f"tokens {_usd(report.tokens.tot_usd)} ({report.tokens.transactions} txs)"
    )
    return table


def build_outbound_table(account: str, report: OutboundReport) -> Table:
    table = Table(title=f"Outbounds of @{account}")
    table.add_column("Recipient", style="cyan", no_wrap=True)
    table.add_column("HIVE", justify="right")
    table.add_column("HIVE USD", justify="right", style="green")
    table.add_column("Tokens", style="magenta")
    table.add_column("Tokens USD", justify="right", style="green")
    table.add_column("Txs", justify="right", style="dim")

    for recipient, entry in report.recipients.items():
        tokens = ", ".join(f"{amount.amount:,.2f} {symbol}" for symbol, amount in entry.tokens.breakdown.items())
        table.add_row(
            recipient,
            f"{entry.hive.tot_hive:,.3f}",
            _usd(entry.hive.tot_usd),
            tokens or "-",
            _token_usd(entry.tokens.tot_usd),
            str(entry.hive.transactions + entry.tokens.transactions),
        )

    if report.stats:
        stats = report.stats
        table.caption = (
            f"{stats.tot_hive_transactions} HIVE txs ({_usd(stats.tot_usd_sent_in_hive)}) · "
            f"{stats.tot_tokens_transactions} token txs ({_usd(stats.tot_usd_sent_in_tokens)})"
        )
    return table


def _error_panel(account: str, error: AccountError) -> Panel:
    return Panel(Text(error.error, style="red"), title=f"@{account}", border_style="red")


def print_inbounds(console: Console, result: InboundsResult) -> None:
    for account, report in result.recipients.items():
        if isinstance(report, AccountError):
            console.print(_error_panel(account, report))
        else:
            console.print(build_inbound_table(account, report))


def print_outbounds(console: Console, result: OutboundsResult) -> None:
    for account, report in result.senders.items():
        if isinstance(report, AccountError):
            console.print(_error_panel(account, report))
        elif report.message:
            console.print(f"[yellow]@{account}:[/yellow] {report.message}")
        else:
            console.print(build_outbound_table(account, report))


def build_nodes_table(health: list[ServiceHealth]) -> Table:
    """Tabla del comando `doctor`: un nodo por clase de servicio."""

    table = Table(title="hive-rewards Doctor")
    table.add_column("Service", style="bright_green", no_wrap=True)
    table.add_column("Status", style="white")
    table.add_column("Endpoint", style="magenta")
    table.add_column("Details", style="dim")

    for entry in health:
        if entry.error:
            table.add_row(entry.service_class.label(), "FAIL", "-", entry.error)
        elif entry.pinned:
            table.add_row(entry.service_class.label(), "PINNED", entry.endpoint or "-", "set via environment")
        else:
            table.add_row(entry.service_class.label(), "OK", entry.endpoint or "-", f"{entry.candidates} candidates")
    return table
