"""Doctor command for environment diagnostics."""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console

from adapters.beacon import eligible_endpoints
from adapters.http_client import build_async_client, build_url, request_json
from cli.ui_components import build_nodes_table
from core.config import AppSettings, write_user_env_vars
from core.domain.errors import TransientNetworkError
from core.domain.service_class import ServiceClass
from core.services.bootstrap import healthy_endpoints

app = typer.Typer(no_args_is_help=True, help="Node diagnostics and configuration checks.")

_console = Console()

_PIN_VARS: dict[ServiceClass, str] = {
    ServiceClass.HIVE: "HIVE_REWARDS_HIVE_NODE_URL",
    ServiceClass.HE: "HIVE_REWARDS_HIVE_ENGINE_RPC_URL",
    ServiceClass.HEH: "HIVE_REWARDS_HIVE_ENGINE_HISTORY_URL",
}


async def _check_beacon(settings: AppSettings) -> tuple[bool, str]:
    url = build_url(settings.beacon_url, ServiceClass.HIVE.discovery_path)
    try:
        async with build_async_client(settings) as client:
            payload = await asyncio.wait_for(request_json(client, "GET", url), settings.beacon_timeout_seconds)
    except (TransientNetworkError, asyncio.TimeoutError) as exc:
        return False, str(exc) or "timeout"
    eligible = eligible_endpoints(payload, ServiceClass.HIVE.required_feature)
    return True, f"{len(eligible)} eligible Hive nodes"


@app.command()
def run() -> None:
    """Check the beacon and pick one live node per service."""

    settings = AppSettings()

    ok_beacon, detail_beacon = asyncio.run(_check_beacon(settings))
    _console.print(
        f"Beacon {settings.beacon_url}: "
        + ("[green]OK[/green]" if ok_beacon else "[red]FAIL[/red]")
        + f" [dim]{detail_beacon}[/dim]"
    )

    health = asyncio.run(healthy_endpoints(settings))
    _console.print(build_nodes_table(health))

    if not ok_beacon:
        _console.print("\n[yellow]Note:[/yellow] Without the beacon, the built-in default node lists are used.")
    if any(entry.error for entry in health):
        raise typer.Exit(code=1)


@app.command(name="pin")
def pin(
    service: ServiceClass = typer.Argument(..., help="Service class: hive, he or heh."),
    url: str | None = typer.Argument(None, help="Node URL; omit to unpin."),
) -> None:
    """Pin a node for a service class (stored in the user config .env)."""

    if url is not None:
        try:
            AppSettings(_env_file=None, hive_node_url=url)
        except ValueError as exc:
            raise typer.BadParameter(f"Invalid URL: {url}") from exc

    env_path = write_user_env_vars({_PIN_VARS[service]: url})
    if url is None:
        _console.print(f"[green]Unpinned {service.label()} in:[/green] {env_path}")
    else:
        _console.print(f"[green]Pinned {service.label()} to {url} in:[/green] {env_path}")
