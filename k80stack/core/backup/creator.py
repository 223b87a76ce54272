"""
Backup creation.

Captures the configured packages, container images and repository keys
into a backup directory. Individual item failures never abort the run;
each attempted item yields an outcome, and every outcome is written to
the backup's manifest.
"""

from __future__ import annotations

import logging
import platform
import shutil
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Sequence

from k80stack.config import Config, get_config
from k80stack.constants import CREATE_REQUIRED_COMMANDS
from k80stack.core.backup.models import (
    BackupLayout,
    BackupManifest,
    ImageRef,
    ItemKind,
    ItemOutcome,
    OutcomeStatus,
    RepositoryKey,
    RunReport,
    sha256_file,
)
from k80stack.core.host import Host
from k80stack.exceptions import BackupExistsError, HostError, MissingCommandError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, str], None]


class BackupCreator:
    """
    Creates an offline backup of packages, images and repository keys.

    Example:
        creator = BackupCreator(SystemHost(), config)
        report = creator.create(overwrite=True)

        for outcome in report.failed:
            print(f"{outcome.name}: {outcome.message}")
    """

    def __init__(
        self,
        host: Host,
        config: Optional[Config] = None,
        backup_dir: Optional[Path] = None,
    ):
        """
        Initialize the creator.

        Args:
            host: Host capability implementation.
            config: Configuration; the global config if None.
            backup_dir: Backup root, overriding config.backup_dir.
        """
        self._host = host
        self._config = config or get_config()
        root = Path(backup_dir) if backup_dir else self._config.backup_dir
        self._layout = BackupLayout(root)
        logger.debug(f"BackupCreator initialized (backup_dir={root})")

    @property
    def layout(self) -> BackupLayout:
        return self._layout

    def create(
        self,
        overwrite: bool = False,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> RunReport:
        """
        Create the backup.

        Args:
            overwrite: Remove an existing backup directory first.
            progress_callback: Called with (percentage, item) after each item.

        Returns:
            RunReport with one outcome per package, image and key.

        Raises:
            MissingCommandError: If a required host command is absent.
            BackupExistsError: If the directory exists and overwrite is False.
        """
        missing = self._host.missing_commands(CREATE_REQUIRED_COMMANDS)
        if missing:
            raise MissingCommandError(missing)

        self._prepare_directory(overwrite)

        backup = self._config.backup
        packages = list(backup.packages)
        images = list(backup.images)
        keys = [RepositoryKey.from_dict(k) for k in backup.repository_keys]

        total = len(packages) + len(images) + len(keys)
        done = 0

        def tick(name: str) -> None:
            nonlocal done
            done += 1
            if progress_callback:
                progress_callback(done * 100.0 / total if total else 100.0, name)

        report = RunReport(operation="backup-create")
        self._write_package_list(packages)

        logger.info(f"Backing up {len(packages)} package(s)")
        for package in packages:
            report.add(self._backup_package(package))
            tick(package)

        logger.info(f"Backing up {len(images)} image(s)")
        for reference in images:
            report.add(self._backup_image(reference))
            tick(reference)

        logger.info(f"Backing up {len(keys)} repository key(s)")
        for key in keys:
            report.add(self._backup_key(key))
            tick(key.name)

        BackupManifest.from_report(report).save(self._layout.manifest_path)
        self._write_info(report)

        counts = report.counts()
        logger.info(
            f"Backup finished: {counts['succeeded']} succeeded, "
            f"{counts['failed']} failed, {counts['skipped']} skipped"
        )
        return report

    def _prepare_directory(self, overwrite: bool) -> None:
        root = self._layout.root
        if root.exists():
            if not overwrite:
                raise BackupExistsError(str(root))
            logger.info(f"Removing existing backup at {root}")
            shutil.rmtree(root)
        self._layout.create()
        logger.info(f"Backup directory: {root}")

    def _write_package_list(self, packages: Sequence[str]) -> None:
        lines = ["# Packages captured by this backup", *packages]
        self._layout.package_list_path.write_text("\n".join(lines) + "\n", encoding="utf-8")

    def _backup_package(self, package: str) -> ItemOutcome:
        try:
            if not self._host.is_installed(package):
                logger.warning(f"{package} not installed - skipping")
                return ItemOutcome(
                    ItemKind.PACKAGE, package, OutcomeStatus.SKIPPED, message="not installed"
                )

            logger.info(f"Downloading {package}")
            files = self._host.download_package(package, self._layout.packages_dir)
        except HostError as e:
            logger.warning(f"Failed to download {package}: {e}")
            return ItemOutcome(ItemKind.PACKAGE, package, OutcomeStatus.FAILED, message=str(e))

        if not files:
            logger.warning(f"Download of {package} produced no archive")
            return ItemOutcome(
                ItemKind.PACKAGE, package, OutcomeStatus.FAILED, message="no archive downloaded"
            )

        return self._artifact_outcome(ItemKind.PACKAGE, package, files)

    def _backup_image(self, reference: str) -> ItemOutcome:
        try:
            ref = ImageRef.parse(reference)
        except ValueError as e:
            logger.warning(f"Skipping invalid image reference {reference!r}: {e}")
            return ItemOutcome(ItemKind.IMAGE, reference, OutcomeStatus.FAILED, message=str(e))

        name = ref.reference
        archive = self._layout.images_dir / ref.archive_name

        try:
            logger.info(f"Pulling {name}")
            self._host.pull_image(name)
        except HostError as e:
            logger.warning(f"Failed to pull {name}: {e}")
            return ItemOutcome(
                ItemKind.IMAGE, name, OutcomeStatus.FAILED, message=f"pull failed: {e}"
            )

        try:
            digest = self._host.image_id(name)
            logger.info(f"Saving {name} ({digest}) to {archive.name}")
            self._host.save_image(name, archive)
        except (HostError, OSError) as e:
            logger.warning(f"Failed to save {name}: {e}")
            archive.unlink(missing_ok=True)
            return ItemOutcome(
                ItemKind.IMAGE, name, OutcomeStatus.FAILED, message=f"save failed: {e}"
            )

        outcome = self._artifact_outcome(ItemKind.IMAGE, name, [archive])
        outcome.digest = digest
        return outcome

    def _backup_key(self, key: RepositoryKey) -> ItemOutcome:
        dest = self._layout.repositories_dir / key.filename
        try:
            logger.info(f"Fetching {key.name} key from {key.url}")
            self._host.fetch_url(key.url, dest)
        except HostError as e:
            logger.warning(f"Failed to download {key.name} key: {e}")
            dest.unlink(missing_ok=True)
            return ItemOutcome(ItemKind.KEY, key.name, OutcomeStatus.FAILED, message=str(e))

        return self._artifact_outcome(ItemKind.KEY, key.name, [dest])

    def _artifact_outcome(
        self,
        kind: ItemKind,
        name: str,
        files: Sequence[Path],
    ) -> ItemOutcome:
        outcome = ItemOutcome(kind, name, OutcomeStatus.SUCCEEDED)
        for path in files:
            relative = path.relative_to(self._layout.root).as_posix()
            outcome.artifacts.append(relative)
            outcome.checksums[relative] = sha256_file(path)
            outcome.size_bytes += path.stat().st_size
        return outcome

    def _write_info(self, report: RunReport) -> None:
        """Write the human-readable backup-info.md next to the manifest."""
        layout = self._layout
        counts = report.counts()

        lines = [
            "# Backup Information",
            "",
            f"**Created**: {datetime.now().isoformat(timespec='seconds')}",
            f"**System**: {platform.platform()}",
            f"**Kernel**: {platform.release()}",
            f"**NVIDIA Driver**: {self._host.driver_version() or 'Not detected'}",
            "",
            "## Outcome",
            f"- Succeeded: {counts['succeeded']}",
            f"- Failed: {counts['failed']}",
            f"- Skipped: {counts['skipped']}",
            "",
        ]

        for outcome in report.failed:
            lines.append(f"- FAILED {outcome.kind.value} `{outcome.name}`: {outcome.message}")
        if report.failed:
            lines.append("")

        lines.append("## Package Archives")
        package_files = layout.package_files()
        lines.extend(f"- {p.name} ({p.stat().st_size} bytes)" for p in package_files)
        if not package_files:
            lines.append("No packages found")

        lines.extend(["", "## Docker Images"])
        image_files = layout.image_files()
        lines.extend(f"- {p.name} ({p.stat().st_size} bytes)" for p in image_files)
        if not image_files:
            lines.append("No images found")

        layout.info_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
