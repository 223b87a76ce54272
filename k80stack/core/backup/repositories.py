"""
APT repository trust configuration.

Installs a saved repository signing key: keyring packages go through
dpkg, armored keys are dearmored into /etc/apt/keyrings and paired with
a source entry under /etc/apt/sources.list.d. All paths hang off a
configurable system root.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from k80stack.constants import APT_KEYRINGS_DIR, APT_SOURCES_DIR, DEFAULT_ARCHITECTURE
from k80stack.core.backup.models import KeyKind, RepositoryKey
from k80stack.core.host import Host

logger = logging.getLogger(__name__)


class RepositoryConfigurator:
    """Trusts repository keys on a host rooted at system_root."""

    def __init__(
        self,
        host: Host,
        system_root: Path,
        architecture: str = DEFAULT_ARCHITECTURE,
    ):
        self._host = host
        self._system_root = Path(system_root)
        self._architecture = architecture
        self._codename: Optional[str] = None

    def keyring_path(self, key: RepositoryKey) -> Path:
        return self._system_root / APT_KEYRINGS_DIR / (key.keyring or key.filename)

    def source_list_path(self, key: RepositoryKey) -> Optional[Path]:
        if not key.list_name:
            return None
        return self._system_root / APT_SOURCES_DIR / key.list_name

    def install(self, key: RepositoryKey, key_file: Path) -> None:
        """
        Install key_file as the signing key for key's repository.

        Raises:
            HostCommandError: If dpkg or gpg fails.
            OSError: If the source entry cannot be written.
        """
        if key.kind is KeyKind.KEYRING_PACKAGE:
            self._host.install_package_files([key_file])
            return

        self._host.dearmor_key(key_file, self.keyring_path(key))

        list_file = self.source_list_path(key)
        if key.source_line and list_file is not None:
            codename = self._release_codename() if "{codename}" in key.source_line else ""
            source = key.render_source(arch=self._architecture, codename=codename)
            list_file.parent.mkdir(parents=True, exist_ok=True)
            list_file.write_text(f"{source}\n", encoding="utf-8")
            logger.info(f"Wrote {list_file}")

    def _release_codename(self) -> str:
        if self._codename is None:
            self._codename = self._host.release_codename()
        return self._codename
