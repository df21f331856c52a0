"""Unified CLI entry point for stealthrun.

Config precedence: settings.default.toml -> settings.<env>.toml -> settings.local.toml -> env vars (STEALTHRUN_* with double underscores) -> CLI flags.
"""

from __future__ import annotations

import logging
import sys

import typer

from stealthrun.cli.run_cmd import compile_command, profile_command, run_command
from stealthrun.cli.settings_cmd import settings_app

try:
    from importlib.metadata import version

    VERSION = version("stealthrun")
except Exception:
    VERSION = "unknown"

APP_HELP = (
    "stealthrun — run automation scripts in a stealth browser session. "
    "Config precedence: settings.default.toml -> settings.local.toml -> env vars (STEALTHRUN_* with __) -> CLI flags."
)

app = typer.Typer(add_completion=True, help=APP_HELP)

app.command("compile")(compile_command)
app.command("run")(run_command)
app.command("profile")(profile_command)
app.add_typer(settings_app, name="settings")


def _configure_logging(log_level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        stream=sys.stderr,
    )
    # Quieten noisy libraries
    logging.getLogger("asyncio").setLevel(logging.WARNING)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", help="Show version and exit."),
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level (DEBUG, INFO, WARNING, ERROR)."),
) -> None:
    """Show help when no subcommand is provided."""
    if version:
        typer.echo(f"stealthrun {VERSION}")
        raise typer.Exit()
    _configure_logging(log_level)
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


if __name__ == "__main__":
    app()
