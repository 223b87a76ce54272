"""
Backup-related CLI commands.

Commands for creating, restoring, inspecting and deleting offline
dependency backups.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Optional

import click
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn

from k80stack.cli.output import echo_json, exit_for_report, get_console, print_report
from k80stack.config import Config
from k80stack.core.backup import BackupCreator, BackupManager, BackupRestorer
from k80stack.core.host import SystemHost
from k80stack.exceptions import (
    BackupError,
    BackupNotFoundError,
    MissingCommandError,
)


def _progress(console, disable: bool) -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
        console=console,
        disable=disable,
    )


@click.group()
def backup() -> None:
    """Create and restore offline dependency backups."""
    pass


@backup.command("create")
@click.option(
    "--dir", "-d",
    "backup_dir",
    type=click.Path(path_type=Path),
    help="Backup directory (default from config).",
)
@click.option(
    "--yes", "-y",
    is_flag=True,
    help="Replace an existing backup without asking.",
)
@click.option(
    "--allow-partial",
    is_flag=True,
    help="Exit 0 even if some items failed.",
)
@click.option(
    "--json", "as_json",
    is_flag=True,
    help="Output as JSON.",
)
@click.pass_context
def create_cmd(
    ctx: click.Context,
    backup_dir: Optional[Path],
    yes: bool,
    allow_partial: bool,
    as_json: bool,
) -> None:
    """Back up packages, Docker images and repository keys."""
    console = get_console(ctx)
    config: Config = ctx.obj["config"]

    creator = BackupCreator(SystemHost(), config, backup_dir=backup_dir)
    root = creator.layout.root

    overwrite = False
    if root.exists():
        if not yes:
            console.print(f"[yellow]⚠ Directory {root} already exists![/yellow]")
            if not click.confirm("Remove and recreate?", default=False):
                console.print("[red]✗ Aborting[/red]")
                sys.exit(1)
        overwrite = True

    try:
        with _progress(console, disable=as_json) as progress:
            task = progress.add_task("Creating backup...", total=100)

            def progress_callback(percentage: float, item: str) -> None:
                progress.update(task, completed=percentage, description=f"Backed up {item}")

            report = creator.create(overwrite=overwrite, progress_callback=progress_callback)

    except MissingCommandError as e:
        console.print(f"[red]✗ {e}[/red]")
        sys.exit(1)

    except BackupError as e:
        console.print(f"[red]✗ Backup failed: {e}[/red]")
        sys.exit(1)

    if as_json:
        echo_json(report)
    else:
        print_report(console, report, "Backup")
        console.print(f"Location: {root}")
        if report.has_failures:
            console.print("[yellow]Backup is incomplete; see failed items above.[/yellow]")
        elif not report.succeeded:
            console.print("[yellow]Backup contains no artifacts.[/yellow]")
        else:
            console.print("[green]✓ Backup complete[/green]")

    exit_for_report(report, allow_partial)


@backup.command("restore")
@click.option(
    "--dir", "-d",
    "backup_dir",
    type=click.Path(path_type=Path),
    help="Backup directory (default from config).",
)
@click.option(
    "--system-root",
    type=click.Path(path_type=Path),
    help="Root for /etc/apt keyrings and source lists.",
)
@click.option(
    "--allow-partial",
    is_flag=True,
    help="Exit 0 even if some items failed.",
)
@click.option(
    "--json", "as_json",
    is_flag=True,
    help="Output as JSON.",
)
@click.pass_context
def restore_cmd(
    ctx: click.Context,
    backup_dir: Optional[Path],
    system_root: Optional[Path],
    allow_partial: bool,
    as_json: bool,
) -> None:
    """Install keys, packages and images from a backup, offline."""
    console = get_console(ctx)
    config: Config = ctx.obj["config"]

    restorer = BackupRestorer(
        SystemHost(),
        config,
        backup_dir=backup_dir,
        system_root=system_root,
    )

    try:
        with _progress(console, disable=as_json) as progress:
            task = progress.add_task("Restoring backup...", total=100)

            def progress_callback(percentage: float, item: str) -> None:
                progress.update(task, completed=percentage, description=f"Restored {item}")

            report = restorer.restore(progress_callback=progress_callback)

    except BackupNotFoundError as e:
        console.print(f"[red]✗ {e}[/red]")
        sys.exit(1)

    except MissingCommandError as e:
        console.print(f"[red]✗ {e}[/red]")
        sys.exit(1)

    except BackupError as e:
        console.print(f"[red]✗ Restore failed: {e}[/red]")
        sys.exit(1)

    if as_json:
        echo_json(report)
        exit_for_report(report, allow_partial)
        return

    if report.is_empty:
        console.print("[yellow]Nothing to restore.[/yellow]")
        return

    print_report(console, report, "Restore")
    if not report.has_failures:
        console.print("[green]✓ Offline installation completed[/green]")
        console.print("Next steps:")
        console.print("  1. Test: nvidia-smi")
        console.print("  2. Test: k80stack verify")

    exit_for_report(report, allow_partial)


@backup.command("info")
@click.option(
    "--dir", "-d",
    "backup_dir",
    type=click.Path(path_type=Path),
    help="Backup directory (default from config).",
)
@click.option(
    "--json", "as_json",
    is_flag=True,
    help="Output as JSON.",
)
@click.pass_context
def info_cmd(
    ctx: click.Context,
    backup_dir: Optional[Path],
    as_json: bool,
) -> None:
    """Show what a backup contains."""
    console = get_console(ctx)
    config: Config = ctx.obj["config"]

    try:
        manager = BackupManager(backup_dir or config.backup_dir)
        info = manager.get_backup_info()
    except BackupError as e:
        console.print(f"[red]Failed to read backup: {e}[/red]")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(info.to_dict(), indent=2))
        return

    content = [
        f"[bold]Path:[/bold] {info.path}",
        f"[bold]Size:[/bold] {info.size_human}",
        f"[bold]Package archives:[/bold] {info.package_files}",
        f"[bold]Image archives:[/bold] {info.image_files}",
        f"[bold]Repository keys:[/bold] {info.key_files}",
        f"[bold]Manifest:[/bold] {'Yes' if info.has_manifest else 'No'}",
    ]

    if info.manifest:
        failed = [e for e in info.manifest.entries if not e.ok]
        content.append(f"[bold]Items not captured:[/bold] {len(failed)}")
        for entry in failed:
            content.append(f"  {entry.kind.value} {entry.name}: {entry.message}")

    panel = Panel(
        "\n".join(content),
        title="Backup",
        border_style="cyan",
    )
    console.print(panel)


@backup.command("verify")
@click.option(
    "--dir", "-d",
    "backup_dir",
    type=click.Path(path_type=Path),
    help="Backup directory (default from config).",
)
@click.option(
    "--json", "as_json",
    is_flag=True,
    help="Output as JSON.",
)
@click.pass_context
def verify_cmd(
    ctx: click.Context,
    backup_dir: Optional[Path],
    as_json: bool,
) -> None:
    """Check backup artifacts against their recorded checksums."""
    console = get_console(ctx)
    config: Config = ctx.obj["config"]

    try:
        manager = BackupManager(backup_dir or config.backup_dir)
        report = manager.verify_backup()
    except BackupError as e:
        console.print(f"[red]✗ {e}[/red]")
        sys.exit(1)

    if as_json:
        echo_json(report)
    else:
        print_report(console, report, "Backup integrity")

    exit_for_report(report)


@backup.command("delete")
@click.option(
    "--dir", "-d",
    "backup_dir",
    type=click.Path(path_type=Path),
    help="Backup directory (default from config).",
)
@click.option(
    "--yes", "-y",
    is_flag=True,
    help="Skip confirmation prompt.",
)
@click.pass_context
def delete_cmd(
    ctx: click.Context,
    backup_dir: Optional[Path],
    yes: bool,
) -> None:
    """Delete a backup."""
    console = get_console(ctx)
    config: Config = ctx.obj["config"]
    path = backup_dir or config.backup_dir

    if not path.exists():
        console.print(f"[red]✗ Backup directory not found: {path}[/red]")
        sys.exit(1)

    if not yes:
        console.print(f"[yellow]About to delete backup at {path}[/yellow]")
        if not click.confirm("Delete this backup?"):
            console.print("Cancelled.")
            return

    try:
        BackupManager(path).delete_backup()
    except BackupError as e:
        console.print(f"[red]Failed to delete: {e}[/red]")
        sys.exit(1)

    console.print("[green]✓ Backup deleted[/green]")
