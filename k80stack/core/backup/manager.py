"""
Backup inspection and housekeeping.

Summarizes an existing backup directory, checks its artifacts against
the checksums recorded at creation time, and deletes backups.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Optional

from k80stack.constants import DEFAULT_BACKUP_DIR
from k80stack.core.backup.models import (
    BackupInfo,
    BackupLayout,
    BackupManifest,
    ItemKind,
    ItemOutcome,
    OutcomeStatus,
    RunReport,
    sha256_file,
)
from k80stack.exceptions import BackupError, BackupNotFoundError, ManifestError

logger = logging.getLogger(__name__)


class BackupManager:
    """
    Reads and manages existing backup directories.

    Example:
        manager = BackupManager(Path("./backups"))
        info = manager.get_backup_info()
        print(f"{info.package_files} packages, {info.size_human}")

        report = manager.verify_backup()
        for outcome in report.failed:
            print(outcome.name, outcome.message)
    """

    def __init__(self, backup_dir: Optional[Path] = None):
        """
        Initialize the backup manager.

        Args:
            backup_dir: Default backup directory. If None, uses
                       ~/TeslaK80-dependency-backups/backups
        """
        self._backup_dir = Path(backup_dir) if backup_dir else DEFAULT_BACKUP_DIR
        logger.debug(f"BackupManager initialized (backup_dir={self._backup_dir})")

    @property
    def backup_dir(self) -> Path:
        """Get the default backup directory."""
        return self._backup_dir

    def _layout(self, backup_path: Optional[Path]) -> BackupLayout:
        layout = BackupLayout(Path(backup_path) if backup_path else self._backup_dir)
        if not layout.exists():
            raise BackupNotFoundError(str(layout.root))
        return layout

    def get_backup_info(self, backup_path: Optional[Path] = None) -> BackupInfo:
        """
        Get information about a backup.

        Args:
            backup_path: Backup root. If None, uses the default directory.

        Returns:
            BackupInfo with file counts, size and manifest.

        Raises:
            BackupNotFoundError: If the directory does not exist.
        """
        layout = self._layout(backup_path)

        manifest = None
        if layout.manifest_path.exists():
            try:
                manifest = BackupManifest.load(layout.manifest_path)
            except ManifestError as e:
                logger.warning(f"Failed to read manifest: {e}")

        key_files = (
            [p for p in layout.repositories_dir.iterdir() if p.is_file()]
            if layout.repositories_dir.is_dir()
            else []
        )
        size_bytes = sum(f.stat().st_size for f in layout.root.rglob("*") if f.is_file())

        return BackupInfo(
            path=layout.root,
            package_files=len(layout.package_files()),
            image_files=len(layout.image_files()),
            key_files=len(key_files),
            size_bytes=size_bytes,
            has_manifest=layout.manifest_path.exists(),
            manifest=manifest,
        )

    def verify_backup(self, backup_path: Optional[Path] = None) -> RunReport:
        """
        Check every recorded artifact against its checksum.

        Works offline and changes nothing on the host.

        Raises:
            BackupNotFoundError: If the directory does not exist.
            BackupError: If the backup has no manifest to verify against.
            ManifestError: If the manifest cannot be read.
        """
        layout = self._layout(backup_path)
        if not layout.manifest_path.exists():
            raise BackupError("Cannot verify backup", f"No manifest.json in {layout.root}")

        manifest = BackupManifest.load(layout.manifest_path)
        report = RunReport(operation="backup-verify")

        for entry in manifest.entries:
            if not entry.ok:
                report.add(
                    ItemOutcome(
                        entry.kind,
                        entry.name,
                        OutcomeStatus.SKIPPED,
                        message=f"not captured: {entry.message}",
                    )
                )
                continue
            report.add(self._verify_entry(layout, entry))

        return report

    def _verify_entry(self, layout: BackupLayout, entry: ItemOutcome) -> ItemOutcome:
        for relative, expected in sorted(entry.checksums.items()):
            path = layout.root / relative
            if not path.is_file():
                return ItemOutcome(
                    entry.kind, entry.name, OutcomeStatus.FAILED, message=f"{relative} missing"
                )
            actual = sha256_file(path)
            if actual != expected:
                logger.warning(f"Checksum mismatch for {relative}")
                return ItemOutcome(
                    entry.kind,
                    entry.name,
                    OutcomeStatus.FAILED,
                    message=f"{relative} checksum mismatch",
                )

        return ItemOutcome(
            entry.kind,
            entry.name,
            OutcomeStatus.SUCCEEDED,
            artifacts=list(entry.artifacts),
            checksums=dict(entry.checksums),
            size_bytes=entry.size_bytes,
            digest=entry.digest,
        )

    def delete_backup(self, backup_path: Optional[Path] = None) -> bool:
        """
        Delete a backup.

        Returns:
            True if deleted successfully, False if it did not exist.
        """
        path = Path(backup_path) if backup_path else self._backup_dir
        if not path.exists():
            return False

        try:
            shutil.rmtree(path)
        except OSError as e:
            logger.error(f"Failed to delete backup: {e}")
            raise BackupError("Failed to delete backup", str(e)) from e

        logger.info(f"Deleted backup at {path}")
        return True
