"""
Verify CLI command.

Re-runs the check playbook and reports each capability.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Optional

import click
from rich.panel import Panel

from k80stack.cli.output import echo_json, get_console, print_report
from k80stack.config import Config
from k80stack.constants import CHECK_CAPABILITIES
from k80stack.core.verify import Verifier
from k80stack.exceptions import MissingCommandError, VerificationError


@click.command("verify")
@click.option(
    "--playbook",
    type=click.Path(path_type=Path),
    help="Check playbook (default: bundled verify-setup.yml).",
)
@click.option(
    "--ask-become-pass",
    is_flag=True,
    help="Prompt for the sudo password.",
)
@click.option(
    "--json", "as_json",
    is_flag=True,
    help="Output as JSON.",
)
@click.pass_context
def verify(
    ctx: click.Context,
    playbook: Optional[Path],
    ask_become_pass: bool,
    as_json: bool,
) -> None:
    """Verify GPU, driver, CUDA and Docker on this host."""
    console = get_console(ctx)
    config: Config = ctx.obj["config"]
    if ask_become_pass:
        config.verify.ask_become_pass = True

    if not as_json:
        user = os.environ.get("USER", "unknown")
        console.print("[blue]Tesla K80 AI System Verification[/blue]")
        console.print(f"[yellow]Running verification as user: {user}[/yellow]")
        console.print(f"[yellow]Home directory: {config.workspace_root}[/yellow]")
        console.print()

    try:
        report = Verifier(config).verify(playbook=playbook)
    except (VerificationError, MissingCommandError) as e:
        console.print(f"[red]✗ {e}[/red]")
        sys.exit(1)

    if as_json:
        echo_json(report)
    else:
        print_report(console, report, "Checks")
        if report.has_failures or not report.succeeded:
            console.print(
                Panel(
                    "Some components may need attention. Check the output above for details.",
                    title="❌ VERIFICATION FAILED",
                    border_style="red",
                )
            )
        else:
            lines = [
                f"• {CHECK_CAPABILITIES.get(o.name, o.name)}: Working"
                for o in report.succeeded
            ]
            console.print(
                Panel(
                    "\n".join(lines),
                    title="✅ VERIFICATION SUCCESSFUL",
                    border_style="green",
                )
            )

    if report.has_failures or not report.succeeded:
        sys.exit(1)
