"""Helpers shared by CLI commands."""

import typer
from rich.console import Console

from stackforge.kernel.config import load_config
from stackforge.kernel.config.models import StackForgeConfig
from stackforge.kernel.exceptions import ConfigurationError

console = Console()


def load_cli_config(ctx: typer.Context) -> StackForgeConfig:
    """Load the configuration selected by the global ``--config`` flag."""
    path = (ctx.obj or {}).get("config_path")
    try:
        return load_config(path)
    except FileNotFoundError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(1) from e
    except ConfigurationError as e:
        console.print(f"[red]✗ Invalid configuration:[/red] {e}")
        raise typer.Exit(1) from e
