"""
k80stack - Tesla K80 host provisioning and offline dependency backups.

This package installs and verifies the NVIDIA driver, CUDA, Docker and
NVIDIA Container Toolkit stack on an Ubuntu host, and captures the
packages and container images it needs into a backup directory that
can be restored later without network access.
"""

__version__ = "0.1.0"
__author__ = "k80stack Contributors"

from k80stack.core.backup import (
    BackupCreator,
    BackupManager,
    BackupRestorer,
    RunReport,
)
from k80stack.core.host import Host, SystemHost

__all__ = [
    "BackupCreator",
    "BackupManager",
    "BackupRestorer",
    "Host",
    "RunReport",
    "SystemHost",
    "__version__",
]
