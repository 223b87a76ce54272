"""
Data models for backup operations.

This module contains dataclasses describing what a backup captures
(packages, images, repository keys), where it lives on disk, and the
per-item outcomes a backup, restore or install run produces.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Optional

from k80stack.constants import (
    COPY_CHUNK_SIZE,
    DEFAULT_REGISTRY,
    DEFAULT_TAG,
    IMAGES_DIR_NAME,
    INFO_FILE_NAME,
    KEY_KIND_ARMORED,
    KEY_KIND_KEYRING_PACKAGE,
    MANIFEST_FILE_NAME,
    MANIFEST_FORMAT_VERSION,
    PACKAGE_LIST_FILE_NAME,
    PACKAGES_DIR_NAME,
    REPOSITORIES_DIR_NAME,
)
from k80stack.exceptions import ManifestError


class OutcomeStatus(Enum):
    """Result of one attempted item."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class ItemKind(Enum):
    """What an outcome refers to."""

    PACKAGE = "package"
    IMAGE = "image"
    KEY = "key"
    STEP = "step"
    CHECK = "check"


class KeyKind(Enum):
    """How a saved repository key is installed."""

    KEYRING_PACKAGE = KEY_KIND_KEYRING_PACKAGE
    ARMORED_KEY = KEY_KIND_ARMORED


@dataclass(frozen=True)
class ImageRef:
    """
    A container image reference split into registry, repository and tag.

    Tags are mutable upstream; the image ID captured at save time is what
    pins the content.
    """

    registry: str
    repository: str
    tag: str

    @classmethod
    def parse(cls, reference: str) -> ImageRef:
        """Parse ``[registry/]repository[:tag]``."""
        name = reference.strip()
        if not name:
            raise ValueError("Empty image reference")

        registry = DEFAULT_REGISTRY
        first, _, rest = name.partition("/")
        if rest and ("." in first or ":" in first or first == "localhost"):
            registry = first
            name = rest

        # A colon after the last slash separates the tag
        last_slash = name.rfind("/")
        colon = name.rfind(":")
        if colon > last_slash:
            repository, tag = name[:colon], name[colon + 1:]
        else:
            repository, tag = name, DEFAULT_TAG

        if not repository or not tag:
            raise ValueError(f"Invalid image reference: {reference!r}")

        return cls(registry=registry, repository=repository, tag=tag)

    @property
    def reference(self) -> str:
        """Reference string as docker expects it."""
        if self.registry == DEFAULT_REGISTRY:
            return f"{self.repository}:{self.tag}"
        return f"{self.registry}/{self.repository}:{self.tag}"

    @property
    def archive_name(self) -> str:
        """File name of the compressed archive inside the backup."""
        return self.reference.replace("/", "_").replace(":", "_") + ".tar.gz"

    def __str__(self) -> str:
        return self.reference


@dataclass(frozen=True)
class RepositoryKey:
    """
    A package repository signing key and how to trust it.

    Attributes:
        name: Short identifier (e.g. "docker")
        url: Where the key is fetched from
        filename: File name inside the backup's repositories directory
        kind: Whether the file is a keyring package or an armored key
        keyring: Dearmored keyring file name under /etc/apt/keyrings
        list_name: Source list file name under /etc/apt/sources.list.d
        source_line: APT source entry; may use {arch} and {codename}
    """

    name: str
    url: str
    filename: str
    kind: KeyKind
    keyring: Optional[str] = None
    list_name: Optional[str] = None
    source_line: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RepositoryKey:
        return cls(
            name=data["name"],
            url=data["url"],
            filename=data["filename"],
            kind=KeyKind(data.get("kind", KEY_KIND_ARMORED)),
            keyring=data.get("keyring"),
            list_name=data.get("list_name"),
            source_line=data.get("source_line"),
        )

    def render_source(self, arch: str, codename: str) -> Optional[str]:
        """Source entry with {arch} and {codename} substituted; other text is left as is."""
        if not self.source_line:
            return None
        return self.source_line.replace("{arch}", arch).replace("{codename}", codename)


@dataclass(frozen=True)
class BackupLayout:
    """On-disk layout of a backup directory."""

    root: Path

    @property
    def packages_dir(self) -> Path:
        return self.root / PACKAGES_DIR_NAME

    @property
    def images_dir(self) -> Path:
        return self.root / IMAGES_DIR_NAME

    @property
    def repositories_dir(self) -> Path:
        return self.root / REPOSITORIES_DIR_NAME

    @property
    def manifest_path(self) -> Path:
        return self.root / MANIFEST_FILE_NAME

    @property
    def info_path(self) -> Path:
        return self.root / INFO_FILE_NAME

    @property
    def package_list_path(self) -> Path:
        return self.packages_dir / PACKAGE_LIST_FILE_NAME

    def exists(self) -> bool:
        return self.root.is_dir()

    def create(self) -> None:
        for directory in (self.packages_dir, self.images_dir, self.repositories_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def package_files(self) -> list[Path]:
        if not self.packages_dir.is_dir():
            return []
        return sorted(self.packages_dir.glob("*.deb"))

    def image_files(self) -> list[Path]:
        if not self.images_dir.is_dir():
            return []
        return sorted(self.images_dir.glob("*.tar.gz"))


def sha256_file(path: Path) -> str:
    """Hex SHA-256 of a file's contents."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(COPY_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def package_name_from_file(path: Path) -> str:
    """Package name of a ``name_version_arch.deb`` archive."""
    return path.name.split("_", 1)[0]


@dataclass
class ItemOutcome:
    """
    Outcome of one attempted item.

    Attributes:
        kind: What was attempted
        name: Package name, image reference, key name or step name
        status: Succeeded, failed or skipped
        message: Reason for a failure or skip
        artifacts: Files produced, relative to the backup root
        checksums: SHA-256 of each artifact, keyed by relative path
        size_bytes: Total size of the artifacts
        digest: Image ID recorded at save time
    """

    kind: ItemKind
    name: str
    status: OutcomeStatus
    message: Optional[str] = None
    artifacts: list[str] = field(default_factory=list)
    checksums: dict[str, str] = field(default_factory=dict)
    size_bytes: int = 0
    digest: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.SUCCEEDED

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "kind": self.kind.value,
            "name": self.name,
            "status": self.status.value,
            "message": self.message,
            "artifacts": list(self.artifacts),
            "checksums": dict(self.checksums),
            "size_bytes": self.size_bytes,
            "digest": self.digest,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ItemOutcome:
        return cls(
            kind=ItemKind(data["kind"]),
            name=data["name"],
            status=OutcomeStatus(data["status"]),
            message=data.get("message"),
            artifacts=list(data.get("artifacts", [])),
            checksums=dict(data.get("checksums", {})),
            size_bytes=int(data.get("size_bytes", 0)),
            digest=data.get("digest"),
        )


@dataclass
class RunReport:
    """
    Every outcome of a backup, restore, install or verify run.

    There is no overall "done" flag; callers inspect the outcomes.
    """

    operation: str
    outcomes: list[ItemOutcome] = field(default_factory=list)

    def add(self, outcome: ItemOutcome) -> ItemOutcome:
        self.outcomes.append(outcome)
        return outcome

    def extend(self, outcomes: Iterable[ItemOutcome]) -> None:
        self.outcomes.extend(outcomes)

    def _with_status(self, status: OutcomeStatus) -> list[ItemOutcome]:
        return [o for o in self.outcomes if o.status is status]

    @property
    def succeeded(self) -> list[ItemOutcome]:
        return self._with_status(OutcomeStatus.SUCCEEDED)

    @property
    def failed(self) -> list[ItemOutcome]:
        return self._with_status(OutcomeStatus.FAILED)

    @property
    def skipped(self) -> list[ItemOutcome]:
        return self._with_status(OutcomeStatus.SKIPPED)

    @property
    def has_failures(self) -> bool:
        return bool(self.failed)

    @property
    def is_empty(self) -> bool:
        """True when nothing was attempted."""
        return not self.outcomes

    def by_kind(self, kind: ItemKind) -> list[ItemOutcome]:
        return [o for o in self.outcomes if o.kind is kind]

    def counts(self) -> dict[str, int]:
        return {status.value: len(self._with_status(status)) for status in OutcomeStatus}

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation,
            "counts": self.counts(),
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


@dataclass
class BackupManifest:
    """
    Durable record of what a backup run produced.

    Written as manifest.json with sorted keys and no timestamps, so two
    runs against an unchanged host write identical bytes.
    """

    packages: list[ItemOutcome] = field(default_factory=list)
    images: list[ItemOutcome] = field(default_factory=list)
    repositories: list[ItemOutcome] = field(default_factory=list)
    format_version: int = MANIFEST_FORMAT_VERSION

    @classmethod
    def from_report(cls, report: RunReport) -> BackupManifest:
        return cls(
            packages=report.by_kind(ItemKind.PACKAGE),
            images=report.by_kind(ItemKind.IMAGE),
            repositories=report.by_kind(ItemKind.KEY),
        )

    @property
    def entries(self) -> list[ItemOutcome]:
        return [*self.packages, *self.images, *self.repositories]

    def artifact_checksums(self) -> dict[str, str]:
        """Recorded checksum for every artifact, keyed by relative path."""
        checksums: dict[str, str] = {}
        for entry in self.entries:
            checksums.update(entry.checksums)
        return checksums

    def image_for_archive(self, archive_name: str) -> Optional[ItemOutcome]:
        for entry in self.images:
            if any(Path(a).name == archive_name for a in entry.artifacts):
                return entry
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "format_version": self.format_version,
            "packages": [o.to_dict() for o in self.packages],
            "images": [o.to_dict() for o in self.images],
            "repositories": [o.to_dict() for o in self.repositories],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, sort_keys=True) + "\n"

    def save(self, path: Path) -> None:
        path.write_text(self.to_json(), encoding="utf-8")

    @classmethod
    def load(cls, path: Path) -> BackupManifest:
        """
        Read a manifest written by save().

        Raises:
            ManifestError: If the file is unreadable or malformed.
        """
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return cls(
                packages=[ItemOutcome.from_dict(d) for d in data.get("packages", [])],
                images=[ItemOutcome.from_dict(d) for d in data.get("images", [])],
                repositories=[
                    ItemOutcome.from_dict(d) for d in data.get("repositories", [])
                ],
                format_version=int(data.get("format_version", MANIFEST_FORMAT_VERSION)),
            )
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise ManifestError(str(path), str(e)) from e


@dataclass
class BackupInfo:
    """
    Summary of an existing backup directory.

    Attributes:
        path: Backup root
        package_files: Number of package archives present
        image_files: Number of image archives present
        key_files: Number of repository key files present
        size_bytes: Total size of all files
        has_manifest: Whether manifest.json exists
        manifest: Parsed manifest, if present and readable
    """

    path: Path
    package_files: int
    image_files: int
    key_files: int
    size_bytes: int
    has_manifest: bool
    manifest: Optional[BackupManifest] = None

    @property
    def size_human(self) -> str:
        """Get human-readable size string."""
        size = float(self.size_bytes)
        for unit in ["B", "KB", "MB", "GB", "TB"]:
            if abs(size) < 1024:
                return f"{size:.1f} {unit}"
            size /= 1024
        return f"{size:.1f} PB"

    @property
    def is_empty(self) -> bool:
        return self.package_files == 0 and self.image_files == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": str(self.path),
            "package_files": self.package_files,
            "image_files": self.image_files,
            "key_files": self.key_files,
            "size_bytes": self.size_bytes,
            "size_human": self.size_human,
            "has_manifest": self.has_manifest,
            "manifest": self.manifest.to_dict() if self.manifest else None,
        }
