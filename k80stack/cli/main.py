"""
Main CLI entry point for k80stack.

This module defines the root CLI group and initializes the application.

Usage:
    k80stack --help
    k80stack install
    k80stack backup create
    k80stack backup restore
    k80stack verify
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler

from k80stack import __version__
from k80stack.config import Config, get_config
from k80stack.cli.commands import backup, install, verify

# Rich console for pretty output
console = Console()


def setup_logging(verbose: bool, debug: bool) -> None:
    """Configure logging based on verbosity flags."""
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


@click.group()
@click.version_option(version=__version__, prog_name="k80stack")
@click.option(
    "-v", "--verbose",
    is_flag=True,
    help="Enable verbose output.",
)
@click.option(
    "--debug",
    is_flag=True,
    help="Enable debug output (more verbose than -v).",
)
@click.option(
    "--config",
    type=click.Path(exists=False),
    help="Path to config file.",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    debug: bool,
    config: Optional[str],
) -> None:
    """
    k80stack - Tesla K80 host provisioning and offline dependency backups.

    Install the NVIDIA driver, CUDA, Docker and the NVIDIA Container
    Toolkit, capture them into an offline backup, and verify the host.

    Examples:

        Provision this host:
        $ sudo k80stack install

        Back up packages and images:
        $ k80stack backup create

        Restore on an offline host:
        $ sudo k80stack backup restore --dir ./backups

        Check the installed stack:
        $ k80stack verify
    """
    setup_logging(verbose, debug)

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["debug"] = debug
    ctx.obj["console"] = console

    if config:
        ctx.obj["config"] = Config.load(Path(config))
    else:
        ctx.obj["config"] = get_config()


# Register commands
cli.add_command(backup.backup)
cli.add_command(install.install)
cli.add_command(verify.verify)


def main() -> None:
    """Main entry point."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        if "--debug" in sys.argv:
            raise
        sys.exit(1)


if __name__ == "__main__":
    main()
