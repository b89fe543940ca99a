"""Port commands for stackforge CLI."""

import asyncio
from typing import Annotated

import typer
from rich.table import Table

from stackforge.cli.commands._common import console, load_cli_config
from stackforge.kernel.domain.resources import ConflictReport, ResourceConflict
from stackforge.kernel.orchestration.conflict_resolver import (
    ConflictResolver,
    check_port_conflicts,
    default_strategies,
)
from stackforge.stdlib.adapters.network import PortOwnerTerminator, SocketResourceProbe
from stackforge.stdlib.adapters.process import SubprocessDriver

app = typer.Typer(help="Check and free required local ports")

PortsArgument = Annotated[list[int], typer.Argument(help="TCP ports to check")]


def _conflict_table(conflicts: list[ResourceConflict]) -> Table:
    table = Table(show_header=True, border_style="red")
    table.add_column("Port", justify="right")
    table.add_column("Held by")
    for conflict in conflicts:
        table.add_row(str(conflict.resource_id), conflict.owner_description or "unknown")
    return table


@app.command("check")
def check_ports(ports: PortsArgument) -> None:
    """Report which of the given ports are already in use."""
    probe = SocketResourceProbe(SubprocessDriver())
    conflicts = asyncio.run(check_port_conflicts(probe, ports))
    if not conflicts:
        console.print(f"[green]✓ All {len(ports)} port(s) are free[/green]")
        return
    console.print(f"[red]✗ {len(conflicts)} port(s) in use[/red]")
    console.print(_conflict_table(conflicts))
    raise typer.Exit(1)


@app.command("free")
def free_ports(
    ctx: typer.Context,
    ports: PortsArgument,
    kill: Annotated[
        bool,
        typer.Option("--kill", help="Terminate foreign processes holding the ports as last resort"),
    ] = False,
) -> None:
    """Try to free the given ports, escalating through remediation strategies."""
    config = load_cli_config(ctx)
    driver = SubprocessDriver()
    probe = SocketResourceProbe(driver)
    strategies = default_strategies(
        reclaimer=PortOwnerTerminator(driver) if kill else None,
        owned_prefix=config.conflicts.owned_prefix,
    )
    resolver = ConflictResolver(probe, strategies, config.conflicts)

    report: ConflictReport = asyncio.run(resolver.ensure_resources_free(ports))
    if report.success:
        console.print(f"[green]✓ {report.message}[/green]")
        return
    console.print("[red]✗ Some ports could not be freed[/red]")
    for conflict in report.conflicts:
        console.print(f"  [red]✗[/red] {conflict.describe()}")
    raise typer.Exit(1)
