"""Apply pending SQL migrations to a SQLite database."""

import asyncio
from pathlib import Path
from typing import Annotated

import typer

from stackforge.cli.commands._common import console
from stackforge.kernel.domain.migration import MigrationResult, MigrationScript
from stackforge.kernel.exceptions import ResourceNotFoundError
from stackforge.kernel.orchestration.migration_runner import (
    MigrationRunner,
    load_migration_scripts,
)
from stackforge.stdlib.adapters.database.sqlite import SQLiteMigrationStore


async def _pending(store: SQLiteMigrationStore, scripts: list[MigrationScript]) -> list[str]:
    try:
        return [script.script_id for script in await MigrationRunner(store).pending(scripts)]
    finally:
        await store.close()


async def _run(store: SQLiteMigrationStore, scripts: list[MigrationScript]) -> MigrationResult:
    try:
        return await MigrationRunner(store).run_pending(
            scripts,
            on_progress=lambda script, i, n: console.print(f"[dim]({i}/{n})[/dim] {script}"),
        )
    finally:
        await store.close()


def migrate(
    database: Annotated[Path, typer.Argument(help="SQLite database file")],
    scripts_dir: Annotated[
        Path, typer.Argument(help="Directory of NNN_description.sql scripts")
    ],
    dry_run: Annotated[
        bool, typer.Option("--dry-run", help="List pending scripts without applying them")
    ] = False,
) -> None:
    """Apply every pending migration script in version order.

    Examples
    --------
    stackforge migrate app.db migrations/
    stackforge migrate app.db migrations/ --dry-run
    """
    try:
        scripts = load_migration_scripts(scripts_dir)
    except ResourceNotFoundError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(1) from e

    store = SQLiteMigrationStore(str(database))

    if dry_run:
        pending = asyncio.run(_pending(store, scripts))
        if not pending:
            console.print("[green]✓ Database is up to date[/green]")
            return
        console.print(f"[yellow]{len(pending)} pending migration(s):[/yellow]")
        for script_id in pending:
            console.print(f"  • {script_id}")
        return

    result = asyncio.run(_run(store, scripts))
    if result.success:
        console.print(f"[green]✓ {result.message}[/green]")
        return
    console.print(f"[red]✗ {result.message}[/red]")
    raise typer.Exit(1)
