"""CLI de hive-rewards (Typer + Rich).

Comandos:
- `inbound`: lo recibido por una o más cuentas desde cuentas rastreadas.
- `outbound`: lo enviado por una o más cuentas, por destinatario.
- `doctor`: diagnóstico de beacon y nodos.

La CLI solo traduce argumentos y pinta resultados; toda la lógica vive en
`core.services`.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import List, NoReturn, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from adapters.json_exporter import export_report_json
from cli import doctor
from cli.ui_components import print_banner, print_inbounds, print_outbounds
from core.config import AppSettings
from core.domain.accounts import CategoryMapping
from core.domain.errors import RewardsError, ValidationError
from core.services.bootstrap import open_analyzer
from core.services.orchestrator import AnalyzerHooks, check_window

app = typer.Typer(no_args_is_help=True, help="Hive / Hive-Engine inbound and outbound rewards analyzer.")
app.add_typer(doctor.app, name="doctor")

_console = Console()
_err_console = Console(stderr=True)

VALIDATION_EXIT_CODE = 2


def configure_logging(verbose: bool) -> None:
    """Logging a stderr vía Rich; `--verbose` activa DEBUG y trazas de peticiones."""

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=_err_console, show_path=verbose, rich_tracebacks=True)],
        force=True,
    )
    if not verbose:
        logging.getLogger("httpx").setLevel(logging.WARNING)


def parse_pairs(values: list[str]) -> dict[str, str]:
    """`["peakd=peakd.rewards", ...]` -> `{"peakd": "peakd.rewards", ...}`."""

    out: dict[str, str] = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key.strip() or not value.strip():
            raise typer.BadParameter(f"Expected key=account, got '{item}'", param_hint="--from")
        if key.strip() in out:
            raise typer.BadParameter(f"Category '{key.strip()}' given more than once", param_hint="--from")
        out[key.strip()] = value.strip()
    return out


def _settings(verbose: bool) -> AppSettings:
    settings = AppSettings()
    if verbose:
        settings.verbose = True
    return settings


def _hooks() -> AnalyzerHooks:
    return AnalyzerHooks(
        account_started=lambda direction, account: _err_console.print(
            f"[cyan]→[/cyan] scanning {direction} of [bold]@{account}[/bold]..."
        ),
        warning=lambda message: _err_console.print(f"[yellow]warning:[/yellow] {message}"),
    )


def _fail_validation(exc: Exception) -> NoReturn:
    _err_console.print(f"[red]Invalid request:[/red] {exc}")
    raise typer.Exit(code=VALIDATION_EXIT_CODE)


@app.command()
def inbound(
    accounts: List[str] = typer.Argument(..., help="Receiver account(s)."),
    senders: List[str] = typer.Option(
        ...,
        "--from",
        help="Tracked sender as category=account (repeatable). Applied to Hive and Hive-Engine.",
    ),
    hours: Optional[float] = typer.Option(None, "--hours", help="Window in hours."),
    days: Optional[float] = typer.Option(None, "--days", help="Window in days."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Trace ledger requests/responses."),
    json_path: Optional[Path] = typer.Option(None, "--json", help="Also write the report as JSON."),
    no_banner: bool = typer.Option(False, "--no-banner", help="Skip the banner."),
) -> None:
    """Analyze what ACCOUNTS received from the tracked senders."""

    configure_logging(verbose)
    try:
        mapping = parse_pairs(senders)
        CategoryMapping(mapping)
        check_window(hours, days)
    except (ValidationError, typer.BadParameter) as exc:
        _fail_validation(exc)

    if not no_banner:
        print_banner(_console)

    async def _run():
        async with open_analyzer(_settings(verbose), hooks=_hooks()) as runtime:
            return await runtime.analyzer.inbounds(accounts, mapping, mapping, hours=hours, days=days)

    try:
        result = asyncio.run(_run())
    except ValidationError as exc:
        _fail_validation(exc)
    except RewardsError as exc:
        _err_console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    print_inbounds(_console, result)
    if json_path:
        written = export_report_json(result, json_path)
        _console.print(f"[green]JSON saved to:[/green] {written}")


@app.command()
def outbound(
    accounts: List[str] = typer.Argument(..., help="Sender account(s)."),
    ignored: List[str] = typer.Option([], "--ignored", help="Recipient to leave out (repeatable)."),
    hours: Optional[float] = typer.Option(None, "--hours", help="Window in hours."),
    days: Optional[float] = typer.Option(None, "--days", help="Window in days."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Trace ledger requests/responses."),
    json_path: Optional[Path] = typer.Option(None, "--json", help="Also write the report as JSON."),
    no_banner: bool = typer.Option(False, "--no-banner", help="Skip the banner."),
) -> None:
    """Analyze what ACCOUNTS sent, grouped by recipient."""

    configure_logging(verbose)
    try:
        check_window(hours, days)
    except ValidationError as exc:
        _fail_validation(exc)

    if not no_banner:
        print_banner(_console)

    async def _run():
        async with open_analyzer(_settings(verbose), hooks=_hooks()) as runtime:
            return await runtime.analyzer.outbounds(accounts, ignored, hours=hours, days=days)

    try:
        result = asyncio.run(_run())
    except ValidationError as exc:
        _fail_validation(exc)
    except RewardsError as exc:
        _err_console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    print_outbounds(_console, result)
    if json_path:
        written = export_report_json(result, json_path)
        _console.print(f"[green]JSON saved to:[/green] {written}")


def run() -> None:
    app()


if __name__ == "__main__":
    run()
