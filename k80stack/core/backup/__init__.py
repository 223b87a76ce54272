"""
Backup module for k80stack.

This module provides functionality for creating, restoring, and
inspecting offline backups of APT packages, Docker images and
repository signing keys.

Example:
    from k80stack.core.backup import BackupCreator, BackupRestorer
    from k80stack.core.host import SystemHost

    # Create a backup
    report = BackupCreator(SystemHost(), config).create(overwrite=True)

    # Restore it on another host
    report = BackupRestorer(SystemHost(), config).restore()
"""

from k80stack.core.backup.models import (
    BackupInfo,
    BackupLayout,
    BackupManifest,
    ImageRef,
    ItemKind,
    ItemOutcome,
    KeyKind,
    OutcomeStatus,
    RepositoryKey,
    RunReport,
)
from k80stack.core.backup.repositories import RepositoryConfigurator
from k80stack.core.backup.creator import BackupCreator
from k80stack.core.backup.restorer import BackupRestorer
from k80stack.core.backup.manager import BackupManager

__all__ = [
    "BackupCreator",
    "BackupInfo",
    "BackupLayout",
    "BackupManager",
    "BackupManifest",
    "BackupRestorer",
    "ImageRef",
    "ItemKind",
    "ItemOutcome",
    "KeyKind",
    "OutcomeStatus",
    "RepositoryConfigurator",
    "RepositoryKey",
    "RunReport",
]
