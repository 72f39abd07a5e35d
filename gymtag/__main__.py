"""Entry point for gymtag."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from gymtag import __version__
from gymtag.commands.discover import discover_command
from gymtag.commands.resolve import resolve_command
from gymtag.commands.tag import tag_command
from gymtag.core.config import ConfigError, default_config_path, load_config, resolve_store_dir
from gymtag.core.state import CLIState

app = typer.Typer(
    add_completion=False,
    help="Tag logged workouts with the gym they happened at",
    invoke_without_command=True,
)


def configure_logging(console: Console, verbose: bool = False, quiet: bool = False) -> None:
    """Route library logging through rich on the CLI console's stderr side."""
    level = logging.DEBUG if verbose else logging.ERROR if quiet else logging.WARNING
    handler = RichHandler(
        console=Console(stderr=True, no_color=console.no_color),
        show_time=False,
        show_path=False,
        markup=False,
    )
    root = logging.getLogger("gymtag")
    root.handlers = [handler]
    root.setLevel(level)
    root.propagate = False


@app.callback()
def main_callback(
    ctx: typer.Context,
    json_output: bool = typer.Option(False, "--json", help="Output JSON where available"),
    plain_output: bool = typer.Option(
        False,
        "--plain",
        help="Output plain text (no rich formatting/tables)",
    ),
    config: Optional[Path] = typer.Option(None, "--config", help="Path to config file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Quiet output"),
    version: bool = typer.Option(False, "--version", help="Show version and exit"),
) -> None:
    """Initialize global CLI state."""
    if version:
        typer.echo(__version__)
        raise typer.Exit(code=0)

    if json_output and plain_output:
        typer.echo("Options --json and --plain are mutually exclusive.")
        raise typer.Exit(code=2)

    cfg_path = (config or default_config_path()).expanduser().resolve()
    try:
        cfg = load_config(cfg_path)
    except ConfigError as exc:
        typer.echo(f"Config error: {exc}")
        raise typer.Exit(code=2)

    console = Console(
        quiet=quiet,
        no_color=plain_output,
        log_time=False,
        log_path=False,
    )
    configure_logging(console, verbose=verbose, quiet=quiet)
    ctx.obj = CLIState(
        json_output=(json_output and not plain_output),
        plain_output=plain_output,
        verbose=verbose,
        quiet=quiet,
        config_path=cfg_path,
        config=cfg,
        data_dir=resolve_store_dir(cfg),
        console=console,
    )

    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit(code=0)


app.command("tag")(tag_command)
app.command("resolve")(resolve_command)
app.command("discover")(discover_command)


def main() -> None:
    """Console script entrypoint."""
    app()


if __name__ == "__main__":
    main()
