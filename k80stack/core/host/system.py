"""
Host implementation backed by the real system tools.

Wraps apt, dpkg, docker, wget, gpg and friends. Commands are run
sequentially and block until they finish; nothing here retries.
"""

from __future__ import annotations

import gzip
import logging
import shutil
import subprocess
from pathlib import Path
from typing import Callable, Optional, Sequence

from k80stack.constants import COPY_CHUNK_SIZE, DPKG_INSTALLED_STATUS
from k80stack.core.host.command import CommandResult, format_argv, run_cmd
from k80stack.exceptions import HostCommandError, MissingCommandError

logger = logging.getLogger(__name__)

APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}


class SystemHost:
    """
    Host operations for an Ubuntu machine.

    Example:
        host = SystemHost()
        if host.is_installed("docker-ce"):
            host.download_package("docker-ce", Path("./packages"))
    """

    def __init__(self, runner: Callable[..., CommandResult] = run_cmd):
        self._run = runner

    def missing_commands(self, names: Sequence[str]) -> list[str]:
        return [name for name in names if shutil.which(name) is None]

    # Packages

    def is_installed(self, package: str) -> bool:
        result = self._run(
            ["dpkg-query", "-W", "-f=${Status}", package],
            check=False,
        )
        return result.ok and result.stdout.strip() == DPKG_INSTALLED_STATUS

    def download_package(self, package: str, dest_dir: Path) -> list[Path]:
        dest_dir.mkdir(parents=True, exist_ok=True)
        before = set(dest_dir.glob("*.deb"))

        self._run(["apt", "download", package], cwd=dest_dir)

        downloaded = sorted(set(dest_dir.glob("*.deb")) - before)
        if not downloaded:
            # Same file name already present; apt overwrote it in place.
            downloaded = sorted(dest_dir.glob(f"{package}_*.deb"))
        return downloaded

    def update_index(self) -> None:
        self._run(["apt-get", "update"], env=APT_ENV)

    def install_packages(self, packages: Sequence[str]) -> None:
        if not packages:
            return
        self._run(["apt-get", "install", "-y", *packages], env=APT_ENV)

    def install_package_files(self, paths: Sequence[Path]) -> None:
        if not paths:
            return
        self._run(["dpkg", "-i", *paths], env=APT_ENV)

    def fix_dependencies(self) -> None:
        self._run(["apt-get", "install", "-f", "-y"], env=APT_ENV)

    # Container images

    def pull_image(self, reference: str) -> None:
        self._run(["docker", "pull", reference])

    def image_id(self, reference: str) -> str:
        result = self._run(
            ["docker", "image", "inspect", "--format", "{{.Id}}", reference]
        )
        return result.stdout.strip()

    def save_image(self, reference: str, dest: Path) -> None:
        argv = ["docker", "save", reference]
        logger.info("CMD %s | gzip > %s", format_argv(argv), dest)
        dest.parent.mkdir(parents=True, exist_ok=True)

        proc = self._popen(argv, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
        # mtime=0 keeps the gzip header identical between runs
        with open(dest, "wb") as raw, gzip.GzipFile(
            filename="", mode="wb", fileobj=raw, mtime=0
        ) as gz:
            shutil.copyfileobj(proc.stdout, gz, COPY_CHUNK_SIZE)
        stderr = proc.stderr.read().decode(errors="replace")
        proc.stdout.close()
        proc.stderr.close()
        returncode = proc.wait()

        if returncode != 0:
            raise HostCommandError(format_argv(argv), returncode, stderr)

    def load_image(self, archive: Path) -> list[str]:
        argv = ["docker", "load"]
        logger.info("CMD gunzip -c %s | %s", archive, format_argv(argv))

        proc = self._popen(
            argv,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
        try:
            with gzip.open(archive, "rb") as gz:
                shutil.copyfileobj(gz, proc.stdin, COPY_CHUNK_SIZE)
        except BrokenPipeError:
            logger.debug("docker load closed its input early")
        except (OSError, EOFError):
            proc.kill()
            proc.communicate()
            raise
        stdout, stderr = proc.communicate()

        if proc.returncode != 0:
            raise HostCommandError(
                format_argv(argv), proc.returncode, stderr.decode(errors="replace")
            )

        loaded = []
        for line in stdout.decode(errors="replace").splitlines():
            line = line.strip()
            for prefix in ("Loaded image ID:", "Loaded image:"):
                if line.startswith(prefix):
                    loaded.append(line[len(prefix):].strip())
                    break
        return loaded

    # Repository keys

    def fetch_url(self, url: str, dest: Path) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._run(["wget", "-q", "-O", dest, url])
        except HostCommandError:
            # wget leaves an empty file behind on failure
            dest.unlink(missing_ok=True)
            raise

    def dearmor_key(self, src: Path, dest: Path) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)
        self._run(["gpg", "--batch", "--yes", "--dearmor", "-o", dest, src])

    # Services

    def configure_container_runtime(self) -> None:
        self._run(["nvidia-ctk", "runtime", "configure", "--runtime=docker"])

    def restart_service(self, name: str) -> None:
        self._run(["systemctl", "restart", name])

    # Facts

    def release_codename(self) -> str:
        return self._run(["lsb_release", "-cs"]).stdout.strip()

    def driver_version(self) -> Optional[str]:
        try:
            result = self._run(
                [
                    "nvidia-smi",
                    "--query-gpu=driver_version",
                    "--format=csv,noheader,nounits",
                ],
                check=False,
            )
        except MissingCommandError:
            return None
        if not result.ok or not result.stdout.strip():
            return None
        return result.stdout.strip().splitlines()[0].strip()

    @staticmethod
    def _popen(argv: list[str], **kwargs) -> subprocess.Popen:
        try:
            return subprocess.Popen(argv, **kwargs)
        except FileNotFoundError as e:
            raise MissingCommandError([argv[0]]) from e
