"""Configuration management commands."""

import dataclasses
import json
from typing import Annotated, Any

import typer

from stackforge.cli.commands._common import console, load_cli_config

app = typer.Typer(help="Configuration management commands")


def _jsonable(value: Any) -> Any:
    if isinstance(value, frozenset | set):
        return sorted(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


@app.command("show")
def show_config(
    ctx: typer.Context,
    key: Annotated[
        str | None, typer.Argument(help="Top-level section to show, e.g. 'retry'")
    ] = None,
) -> None:
    """Show the effective configuration, or one section of it."""
    config = dataclasses.asdict(load_cli_config(ctx))
    if key is not None:
        if key not in config:
            console.print(f"[red]✗ Unknown section '{key}'[/red]. Available: {', '.join(config)}")
            raise typer.Exit(1)
        config = config[key]
    console.print_json(json.dumps(config, default=_jsonable))
