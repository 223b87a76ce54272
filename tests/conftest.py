"""
Pytest configuration and fixtures for k80stack tests.

This module provides common fixtures used across the test suite,
including an in-memory host and configurations rooted in tmp_path.
"""

from __future__ import annotations

import gzip
import hashlib
from pathlib import Path
from typing import Optional, Sequence

import pytest

from k80stack.config import Config
from k80stack.constants import DEFAULT_REPOSITORY_KEYS
from k80stack.core.backup.models import package_name_from_file
from k80stack.exceptions import HostCommandError


# Test data
TEST_PACKAGE = "docker-ce"
TEST_IMAGE = "hello-world:latest"
TEST_IMAGE_PAYLOAD = b"hello-world layers"
TEST_CODENAME = "jammy"
TEST_DRIVER_VERSION = "470.256.02"


def image_id_for(payload: bytes) -> str:
    return "sha256:" + hashlib.sha256(payload).hexdigest()


class FakeHost:
    """
    In-memory Host used in place of apt, dpkg and docker.

    Attributes:
        installed: Package names dpkg reports as installed
        repository: Package name -> archive bytes that apt can download
        registry: Image reference -> image content that docker can pull
        images: Local image reference -> image ID
        urls: URL -> bytes that wget can fetch
        missing: Command names reported as absent
        calls: Every call made, as (method, args) tuples
    """

    def __init__(self) -> None:
        self.installed: set[str] = set()
        self.repository: dict[str, bytes] = {}
        self.registry: dict[str, bytes] = {}
        self.images: dict[str, str] = {}
        self.urls: dict[str, bytes] = {}
        self.missing: set[str] = set()
        self.uninstallable: set[str] = set()
        self.fail_update = False
        self.fail_dpkg = False
        self.fail_save: set[str] = set()
        self.calls: list[tuple] = []

    def missing_commands(self, names: Sequence[str]) -> list[str]:
        return [name for name in names if name in self.missing]

    def is_installed(self, package: str) -> bool:
        self.calls.append(("is_installed", package))
        return package in self.installed

    def download_package(self, package: str, dest_dir: Path) -> list[Path]:
        self.calls.append(("download_package", package))
        if package not in self.repository:
            raise HostCommandError(f"apt download {package}", 100, "E: Unable to locate package")
        dest_dir.mkdir(parents=True, exist_ok=True)
        path = dest_dir / f"{package}_1.0_amd64.deb"
        path.write_bytes(self.repository[package])
        return [path]

    def update_index(self) -> None:
        self.calls.append(("update_index",))
        if self.fail_update:
            raise HostCommandError("apt-get update", 100, "Temporary failure resolving")

    def install_packages(self, packages: Sequence[str]) -> None:
        self.calls.append(("install_packages", tuple(packages)))
        for package in packages:
            if package not in self.repository:
                raise HostCommandError(f"apt-get install -y {package}", 100, "E: Unable to locate package")
            self.installed.add(package)

    def install_package_files(self, paths: Sequence[Path]) -> None:
        self.calls.append(("install_package_files", tuple(Path(p).name for p in paths)))
        for path in paths:
            name = package_name_from_file(Path(path))
            if name not in self.uninstallable:
                self.installed.add(name)
        if self.fail_dpkg:
            raise HostCommandError("dpkg -i", 1, "dependency problems")

    def fix_dependencies(self) -> None:
        self.calls.append(("fix_dependencies",))

    def pull_image(self, reference: str) -> None:
        self.calls.append(("pull_image", reference))
        if reference not in self.registry:
            raise HostCommandError(f"docker pull {reference}", 1, "manifest unknown")
        self.images[reference] = image_id_for(self.registry[reference])

    def image_id(self, reference: str) -> str:
        if reference not in self.images:
            raise HostCommandError(f"docker image inspect {reference}", 1, "No such image")
        return self.images[reference]

    def save_image(self, reference: str, dest: Path) -> None:
        self.calls.append(("save_image", reference))
        if reference in self.fail_save:
            dest.write_bytes(b"partial")
            raise HostCommandError(f"docker save {reference}", 1, "no space left on device")
        content = reference.encode() + b"\n" + self.registry[reference]
        with open(dest, "wb") as raw, gzip.GzipFile(
            filename="", mode="wb", fileobj=raw, mtime=0
        ) as gz:
            gz.write(content)

    def load_image(self, archive: Path) -> list[str]:
        self.calls.append(("load_image", archive.name))
        with gzip.open(archive, "rb") as gz:
            data = gz.read()
        reference, _, payload = data.partition(b"\n")
        name = reference.decode()
        self.images[name] = image_id_for(payload)
        return [name]

    def fetch_url(self, url: str, dest: Path) -> None:
        self.calls.append(("fetch_url", url))
        if url not in self.urls:
            raise HostCommandError(f"wget -q -O {dest} {url}", 8, "404 Not Found")
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(self.urls[url])

    def dearmor_key(self, src: Path, dest: Path) -> None:
        self.calls.append(("dearmor_key", src.name, dest.name))
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(b"dearmored:" + src.read_bytes())

    def configure_container_runtime(self) -> None:
        self.calls.append(("configure_container_runtime",))

    def restart_service(self, name: str) -> None:
        self.calls.append(("restart_service", name))

    def release_codename(self) -> str:
        return TEST_CODENAME

    def driver_version(self) -> Optional[str]:
        return TEST_DRIVER_VERSION

    def called(self, method: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == method]


@pytest.fixture
def fake_host() -> FakeHost:
    """An empty fake host."""
    return FakeHost()


@pytest.fixture
def source_host() -> FakeHost:
    """A host with docker-ce installed and every download available."""
    host = FakeHost()
    host.installed.add(TEST_PACKAGE)
    host.repository[TEST_PACKAGE] = b"docker-ce archive"
    host.registry[TEST_IMAGE] = TEST_IMAGE_PAYLOAD
    for key in DEFAULT_REPOSITORY_KEYS:
        host.urls[key["url"]] = f"{key['name']} key".encode()
    return host


@pytest.fixture
def test_config(tmp_path: Path) -> Config:
    """Create a test configuration with temporary directories."""
    config = Config(
        config_dir=tmp_path / "config",
        backup_dir=tmp_path / "backups",
        workspace_root=tmp_path / "home",
    )
    config.backup.packages = [TEST_PACKAGE]
    config.backup.images = [TEST_IMAGE]
    config.restore.system_root = tmp_path / "root"
    return config
