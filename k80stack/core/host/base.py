"""
Host capability interface.

Backup, restore and install logic talks to the package manager and the
container runtime only through this protocol, so it can be exercised
against an in-memory host in tests.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Protocol, Sequence


class Host(Protocol):
    """Operations k80stack needs from the machine it runs on.

    Methods raise HostCommandError when the underlying tool fails and
    MissingCommandError when the tool is not installed.
    """

    def missing_commands(self, names: Sequence[str]) -> list[str]:
        """Return the subset of names that are not on PATH."""
        ...

    # Packages
    def is_installed(self, package: str) -> bool:
        ...

    def download_package(self, package: str, dest_dir: Path) -> list[Path]:
        """Download the archive(s) for package into dest_dir."""
        ...

    def update_index(self) -> None:
        ...

    def install_packages(self, packages: Sequence[str]) -> None:
        ...

    def install_package_files(self, paths: Sequence[Path]) -> None:
        ...

    def fix_dependencies(self) -> None:
        ...

    # Container images
    def pull_image(self, reference: str) -> None:
        ...

    def image_id(self, reference: str) -> str:
        """Content-addressed ID of a local image (``sha256:...``)."""
        ...

    def save_image(self, reference: str, dest: Path) -> None:
        """Save image as a gzip-compressed tarball at dest."""
        ...

    def load_image(self, archive: Path) -> list[str]:
        """Load a gzip-compressed image tarball; return loaded names or IDs."""
        ...

    # Repository keys
    def fetch_url(self, url: str, dest: Path) -> None:
        ...

    def dearmor_key(self, src: Path, dest: Path) -> None:
        ...

    # Services
    def configure_container_runtime(self) -> None:
        ...

    def restart_service(self, name: str) -> None:
        ...

    # Facts
    def release_codename(self) -> str:
        ...

    def driver_version(self) -> Optional[str]:
        ...
