"""Show the dependency-resolved execution order of the configured stack."""

from typing import Annotated

import typer
from rich.table import Table

from stackforge.cli.commands._common import console, load_cli_config
from stackforge.kernel.domain.dependency_graph import DependencyGraph
from stackforge.kernel.exceptions import CycleDetectedError, ResourceNotFoundError


def order(
    ctx: typer.Context,
    components: Annotated[
        list[str] | None,
        typer.Option("--component", "-C", help="Only units of these components (repeatable)"),
    ] = None,
) -> None:
    """Print the order in which the stack's units are processed.

    Examples
    --------
    stackforge order
    stackforge -c stack.yaml order --component core
    """
    config = load_cli_config(ctx)
    stack = config.stack

    try:
        units = stack.select_units(components)
        graph = DependencyGraph(
            {unit.id: sorted(unit.depends_on) for unit in units}, [unit.id for unit in units]
        )
        ordered = graph.resolve_order(stack.preference_order())
    except ResourceNotFoundError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(1) from e
    except CycleDetectedError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(1) from e

    if not ordered:
        console.print("[yellow]No units configured[/yellow]")
        return

    by_id = {unit.id: unit for unit in units}
    table = Table(title="Execution Order", show_header=True, header_style="bold magenta")
    table.add_column("#", justify="right")
    table.add_column("Unit", style="green")
    table.add_column("Depends on")
    table.add_column("Optional")
    for index, unit_id in enumerate(ordered, start=1):
        unit = by_id[unit_id]
        table.add_row(
            str(index),
            unit_id,
            ", ".join(sorted(unit.depends_on)) or "-",
            "yes" if unit.optional else "",
        )
    console.print(table)
