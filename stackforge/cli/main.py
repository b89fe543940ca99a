"""stackforge CLI - Main entrypoint."""

import os

import typer
from rich.console import Console

from stackforge import __version__
from stackforge.cli.commands import config_cmd, migrate_cmd, order_cmd, ports_cmd
from stackforge.kernel.logging import configure_logging

app = typer.Typer(
    name="stackforge",
    help="stackforge - dependency-ordered pipelines and safe updates for local service stacks.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_enable=False,
)

console = Console()


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"[bold blue]stackforge[/bold blue] version [green]{__version__}[/green]")
        raise typer.Exit()


app.add_typer(config_cmd.app, name="config", help="Configuration management")
app.add_typer(ports_cmd.app, name="ports", help="Check and free required local ports")
app.command("order")(order_cmd.order)
app.command("migrate")(migrate_cmd.migrate)


@app.callback()
def callback(
    ctx: typer.Context,
    *,
    config: str | None = typer.Option(
        None, "--config", "-c", help="Path to a kind: Config YAML or TOML file"
    ),
    verbose: bool = typer.Option(False, "-V", "--verbose", help="Enable debug logging"),
    log_level: str | None = typer.Option(
        None, "--log-level", help="Log level: debug|info|warning|error"
    ),
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """stackforge CLI.

    Global flags are parsed here and stored on `ctx.obj` for subcommands.
    """
    if ctx.obj is None:
        ctx.obj = {}

    effective_level = "DEBUG" if verbose else log_level.upper() if log_level else None
    ctx.obj.update({"config_path": config, "log_level": effective_level})

    # Results go to stdout; log records below WARNING only when asked for
    level = effective_level or os.getenv("STACKFORGE_LOG_LEVEL", "WARNING").upper()
    configure_logging(level=level, format="rich")  # type: ignore[arg-type]


def main() -> None:
    """Main CLI entrypoint."""
    app()


if __name__ == "__main__":
    main()
