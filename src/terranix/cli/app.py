# src/terranix/cli/app.py
from __future__ import annotations

import logging
from importlib.metadata import PackageNotFoundError, version as dist_version
from pathlib import Path
from typing import List, Optional

import typer

from terranix.config.loader import load_settings
from terranix.config.models import Settings
from terranix.dispatcher import Command, CommandDispatcher
from terranix.errors import TerranixError
from terranix.logging.log import init_logging
from terranix.observers.jsonfile import JsonFileObserver
from terranix.observers.logger import LoggerObserver
from terranix.state.provider import install_input

log = logging.getLogger("terranix")


# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(
    help="Deploy NixOS machines described by Terraform/Terranix output.",
    no_args_is_help=True,
    add_completion=False,
)

NAMES_HELP = "Node names; all declared nodes when omitted"


def _version() -> str:
    try:
        return dist_version("terranix")
    except PackageNotFoundError:
        return "0.0.0+unknown"


@app.callback()
def main_callback(
    ctx: typer.Context,
    workdir: Path = typer.Option(
        Path("."), "--workdir", "-C", help="Directory holding config.nix and .terranix/"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug output on stderr"),
) -> None:
    ctx.obj = {"workdir": workdir.resolve(), "verbose": verbose}


def _settings(ctx: typer.Context) -> Settings:
    return load_settings(ctx.obj["workdir"])


def _run(ctx: typer.Context, command: Command, names: Optional[List[str]]) -> None:
    settings = _settings(ctx)
    logger, run_id, _ = init_logging(base_dir=settings.log_dir, verbose=ctx.obj["verbose"])

    observers = [
        LoggerObserver(logger),
        JsonFileObserver(settings.log_dir / f"{run_id}.jsonl"),
    ]
    dispatcher = CommandDispatcher(settings, observers=observers, run_id=run_id)
    report = dispatcher.dispatch(command, names or [])
    if not report.ok:
        raise typer.Exit(report.exit_code)


# ------------------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------------------

@app.command("init")
def init_cmd(ctx: typer.Context, names: Optional[List[str]] = typer.Argument(None, help=NAMES_HELP)) -> None:
    """Probe nodes and generate their configuration from the provider's configurator."""
    _run(ctx, Command.INIT, names)


@app.command("initFromJSON")
def init_from_json_cmd(ctx: typer.Context, names: Optional[List[str]] = typer.Argument(None, help=NAMES_HELP)) -> None:
    """Generate configuration from hardware profiles in the input document, offline."""
    _run(ctx, Command.INIT_FROM_JSON, names)


@app.command("input")
def input_cmd(
    ctx: typer.Context,
    json_path: Path = typer.Argument(..., help="Input document (JSON) to install"),
) -> None:
    """Install a JSON input document and the hook that serves it."""
    settings = _settings(ctx)
    init_logging(verbose=ctx.obj["verbose"])
    try:
        install_input(settings, json_path)
    except TerranixError as e:
        log.error("%s", e)
        raise typer.Exit(int(e.exit_code))
    log.info("Done!")


@app.command("check")
def check_cmd(ctx: typer.Context, names: Optional[List[str]] = typer.Argument(None, help=NAMES_HELP)) -> None:
    """Check that nodes accept SSH connections."""
    _run(ctx, Command.CHECK, names)


@app.command("build")
def build_cmd(ctx: typer.Context, names: Optional[List[str]] = typer.Argument(None, help=NAMES_HELP)) -> None:
    """Build the system closure of each node."""
    _run(ctx, Command.BUILD, names)


@app.command("push")
def push_cmd(ctx: typer.Context, names: Optional[List[str]] = typer.Argument(None, help=NAMES_HELP)) -> None:
    """Build, copy and activate each node, installing Nix where missing."""
    _run(ctx, Command.PUSH, names)


@app.command("version")
def version_cmd() -> None:
    """Print the terranix version."""
    typer.echo(f"terranix {_version()}")


@app.command("help")
def help_cmd(ctx: typer.Context) -> None:
    """Show this message."""
    typer.echo(ctx.parent.get_help())


def main() -> None:
    app()


if __name__ == "__main__":
    main()
