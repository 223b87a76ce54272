"""
Backup restoration.

Replays a backup directory onto the current host using only local
files: repository keys and source entries, package archives, and
compressed container images. Missing or corrupt items are reported per
item; only an absent backup directory or missing host tooling aborts.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional

from k80stack.config import Config, get_config
from k80stack.constants import RESTORE_REQUIRED_COMMANDS
from k80stack.core.backup.models import (
    BackupLayout,
    BackupManifest,
    ItemKind,
    ItemOutcome,
    OutcomeStatus,
    RepositoryKey,
    RunReport,
    package_name_from_file,
    sha256_file,
)
from k80stack.core.backup.repositories import RepositoryConfigurator
from k80stack.core.host import Host
from k80stack.exceptions import (
    ArtifactError,
    BackupNotFoundError,
    HostError,
    MissingCommandError,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, str], None]


class BackupRestorer:
    """
    Restores a backup directory onto the current host.

    Example:
        restorer = BackupRestorer(SystemHost(), config)
        report = restorer.restore()

        if report.is_empty:
            print("Nothing to restore")
    """

    def __init__(
        self,
        host: Host,
        config: Optional[Config] = None,
        backup_dir: Optional[Path] = None,
        system_root: Optional[Path] = None,
    ):
        """
        Initialize the restorer.

        Args:
            host: Host capability implementation.
            config: Configuration; the global config if None.
            backup_dir: Backup root, overriding config.backup_dir.
            system_root: Root for /etc/apt files, overriding config.restore.system_root.
        """
        self._host = host
        self._config = config or get_config()
        root = Path(backup_dir) if backup_dir else self._config.backup_dir
        self._layout = BackupLayout(root)
        self._system_root = (
            Path(system_root) if system_root else self._config.restore.system_root
        )
        self._repositories = RepositoryConfigurator(
            host, self._system_root, self._config.restore.architecture
        )
        self._manifest: Optional[BackupManifest] = None

    @property
    def layout(self) -> BackupLayout:
        return self._layout

    def restore(
        self,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> RunReport:
        """
        Restore keys, packages and images from the backup.

        Args:
            progress_callback: Called with (percentage, item) as work completes.

        Returns:
            RunReport; empty when the backup holds no packages or images.

        Raises:
            BackupNotFoundError: If the backup directory does not exist.
            MissingCommandError: If a required host command is absent.
            ManifestError: If manifest.json exists but cannot be read.
        """
        layout = self._layout
        if not layout.exists():
            logger.error(f"Backup directory not found: {layout.root}")
            raise BackupNotFoundError(str(layout.root))

        missing = self._host.missing_commands(RESTORE_REQUIRED_COMMANDS)
        if missing:
            raise MissingCommandError(missing)

        report = RunReport(operation="backup-restore")

        package_files = layout.package_files()
        image_files = layout.image_files()
        if not package_files and not image_files:
            logger.warning(f"Nothing to restore in {layout.root}")
            return report

        if layout.manifest_path.exists():
            self._manifest = BackupManifest.load(layout.manifest_path)
        else:
            logger.warning("No manifest.json found; checksums will not be verified")

        keys = [RepositoryKey.from_dict(k) for k in self._config.backup.repository_keys]
        total = len(keys) + 2 + len(image_files)
        done = 0

        def tick(name: str) -> None:
            nonlocal done
            done += 1
            if progress_callback:
                progress_callback(min(done * 100.0 / total, 100.0), name)

        logger.info("Installing repository configurations")
        for key in keys:
            report.add(self._restore_key(key))
            tick(key.name)

        report.add(self._update_index())
        tick("update-index")

        logger.info("Installing packages from backup")
        if package_files:
            report.extend(self._restore_packages(package_files))
        else:
            logger.warning("No .deb packages found")
        report.extend(self._missing_items(ItemKind.PACKAGE))
        tick("packages")

        logger.info("Restoring Docker images")
        for archive in image_files:
            report.add(self._restore_image(archive))
            tick(archive.name)
        report.extend(self._missing_items(ItemKind.IMAGE))

        counts = report.counts()
        logger.info(
            f"Restore finished: {counts['succeeded']} succeeded, "
            f"{counts['failed']} failed, {counts['skipped']} skipped"
        )
        return report

    def _check_artifact(self, path: Path) -> None:
        """Raise ArtifactError if path does not match the manifest checksum."""
        if self._manifest is None or not self._config.restore.verify_checksums:
            return
        relative = path.relative_to(self._layout.root).as_posix()
        expected = self._manifest.artifact_checksums().get(relative)
        if expected is None:
            return
        actual = sha256_file(path)
        if actual != expected:
            raise ArtifactError(relative, f"sha256 {actual} does not match recorded {expected}")

    def _restore_key(self, key: RepositoryKey) -> ItemOutcome:
        key_file = self._layout.repositories_dir / key.filename
        if not key_file.is_file():
            logger.warning(f"{key.filename} not in backup - skipping")
            return ItemOutcome(
                ItemKind.KEY, key.name, OutcomeStatus.SKIPPED, message="key file not in backup"
            )

        try:
            self._check_artifact(key_file)
            self._repositories.install(key, key_file)
        except (HostError, ArtifactError, OSError) as e:
            logger.warning(f"Failed to install {key.name} key: {e}")
            return ItemOutcome(ItemKind.KEY, key.name, OutcomeStatus.FAILED, message=str(e))

        return ItemOutcome(ItemKind.KEY, key.name, OutcomeStatus.SUCCEEDED)

    def _update_index(self) -> ItemOutcome:
        try:
            self._host.update_index()
        except HostError as e:
            # Expected on an offline host; local archives install without it.
            logger.warning(f"Package index refresh failed: {e}")
            return ItemOutcome(
                ItemKind.STEP,
                "update-index",
                OutcomeStatus.SKIPPED,
                message=f"index not refreshed: {e}",
            )
        return ItemOutcome(ItemKind.STEP, "update-index", OutcomeStatus.SUCCEEDED)

    def _restore_packages(self, package_files: list[Path]) -> list[ItemOutcome]:
        outcomes: list[ItemOutcome] = []
        usable: list[Path] = []

        for path in package_files:
            try:
                self._check_artifact(path)
            except ArtifactError as e:
                logger.warning(str(e))
                outcomes.append(
                    ItemOutcome(
                        ItemKind.PACKAGE,
                        package_name_from_file(path),
                        OutcomeStatus.FAILED,
                        message=str(e),
                    )
                )
                continue
            usable.append(path)

        if not usable:
            return outcomes

        try:
            self._host.install_package_files(usable)
        except HostError as e:
            logger.warning(f"dpkg reported errors, fixing dependencies: {e}")

        if self._config.restore.fix_dependencies:
            try:
                self._host.fix_dependencies()
            except HostError as e:
                logger.warning(f"Dependency fixup failed: {e}")

        names = list(dict.fromkeys(package_name_from_file(p) for p in usable))
        for name in names:
            try:
                installed = self._host.is_installed(name)
            except HostError as e:
                logger.warning(f"Could not query {name}: {e}")
                installed = False

            if installed:
                outcomes.append(ItemOutcome(ItemKind.PACKAGE, name, OutcomeStatus.SUCCEEDED))
            else:
                logger.warning(f"{name} is not installed after restore")
                outcomes.append(
                    ItemOutcome(
                        ItemKind.PACKAGE,
                        name,
                        OutcomeStatus.FAILED,
                        message="not installed after restore",
                    )
                )
        return outcomes

    def _restore_image(self, archive: Path) -> ItemOutcome:
        entry = self._manifest.image_for_archive(archive.name) if self._manifest else None
        name = entry.name if entry else archive.name

        try:
            self._check_artifact(archive)
            logger.info(f"Loading {archive.name}")
            loaded = self._host.load_image(archive)

            if entry and entry.digest and entry.digest not in loaded:
                actual = self._host.image_id(entry.name)
                if actual != entry.digest:
                    raise ArtifactError(
                        archive.name,
                        f"loaded image {actual} does not match saved {entry.digest}",
                    )
        except (HostError, ArtifactError, OSError, EOFError) as e:
            logger.warning(f"Failed to restore {name}: {e}")
            return ItemOutcome(ItemKind.IMAGE, name, OutcomeStatus.FAILED, message=str(e))

        return ItemOutcome(
            ItemKind.IMAGE,
            name,
            OutcomeStatus.SUCCEEDED,
            digest=entry.digest if entry else None,
        )

    def _missing_items(self, kind: ItemKind) -> list[ItemOutcome]:
        """Manifest entries not captured at creation or whose archives are gone."""
        if self._manifest is None:
            return []

        entries = self._manifest.packages if kind is ItemKind.PACKAGE else self._manifest.images
        outcomes = []
        for entry in entries:
            if not entry.ok:
                logger.warning(f"{entry.name} was not captured at creation - skipping")
                outcomes.append(
                    ItemOutcome(
                        kind,
                        entry.name,
                        OutcomeStatus.SKIPPED,
                        message=f"not captured at creation: {entry.message or entry.status.value}",
                    )
                )
                continue
            if all((self._layout.root / a).is_file() for a in entry.artifacts):
                continue
            logger.warning(f"{entry.name} recorded in manifest but missing from backup")
            outcomes.append(
                ItemOutcome(kind, entry.name, OutcomeStatus.SKIPPED, message="archive missing")
            )
        return outcomes
