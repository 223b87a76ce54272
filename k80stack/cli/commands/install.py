"""
Install CLI command.

Applies the provisioning steps to the current host.
"""

from __future__ import annotations

import sys

import click

from k80stack.cli.output import echo_json, exit_for_report, get_console, print_report
from k80stack.config import Config
from k80stack.core.host import SystemHost
from k80stack.core.install import Installer
from k80stack.core.install.installer import STEP_IDS
from k80stack.exceptions import MissingCommandError


@click.command("install")
@click.option(
    "--step", "-s",
    "steps",
    multiple=True,
    type=click.Choice(STEP_IDS),
    help="Run only this step (repeatable).",
)
@click.option(
    "--keep-going",
    is_flag=True,
    help="Continue with later steps after a failure.",
)
@click.option(
    "--json", "as_json",
    is_flag=True,
    help="Output as JSON.",
)
@click.pass_context
def install(
    ctx: click.Context,
    steps: tuple[str, ...],
    keep_going: bool,
    as_json: bool,
) -> None:
    """Install the driver, CUDA, Docker and container toolkit."""
    console = get_console(ctx)
    config: Config = ctx.obj["config"]

    installer = Installer(SystemHost(), config)

    try:
        report = installer.run(only=list(steps) or None, stop_on_failure=not keep_going)
    except (MissingCommandError, ValueError) as e:
        console.print(f"[red]✗ {e}[/red]")
        sys.exit(1)

    if as_json:
        echo_json(report)
    else:
        print_report(console, report, "Install")
        if not report.has_failures:
            console.print("[green]✓ Installation steps applied[/green]")
            console.print("[dim]A reboot may be required before the driver loads.[/dim]")

    exit_for_report(report)
