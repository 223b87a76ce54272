"""
Configuration management for k80stack.

Handles loading, saving, and accessing configuration values from
environment variables, config files, and default values. Every operation
receives its paths and manifests from a Config instance rather than from
the working directory or exported shell variables.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from k80stack.constants import (
    CONTAINER_TOOLKIT_PACKAGES,
    CUDA_PACKAGES,
    DEFAULT_ARCHITECTURE,
    DEFAULT_BACKUP_DIR,
    DEFAULT_CONFIG_DIR,
    DEFAULT_CONFIG_FILE,
    DEFAULT_IMAGES,
    DEFAULT_PACKAGES,
    DEFAULT_PLAYBOOK,
    DEFAULT_REPOSITORY_KEYS,
    DEFAULT_SYSTEM_ROOT,
    DEFAULT_WORKSPACE_ROOT,
    DOCKER_PACKAGES,
    DRIVER_PACKAGES,
)

logger = logging.getLogger(__name__)


@dataclass
class BackupConfig:
    """What a backup run captures."""

    packages: list[str] = field(default_factory=lambda: list(DEFAULT_PACKAGES))
    images: list[str] = field(default_factory=lambda: list(DEFAULT_IMAGES))
    repository_keys: list[dict[str, Any]] = field(
        default_factory=lambda: [dict(k) for k in DEFAULT_REPOSITORY_KEYS]
    )


@dataclass
class RestoreConfig:
    """How a backup is replayed onto a host."""

    system_root: Path = field(default_factory=lambda: DEFAULT_SYSTEM_ROOT)
    architecture: str = DEFAULT_ARCHITECTURE
    fix_dependencies: bool = True
    verify_checksums: bool = True

    def __post_init__(self) -> None:
        self.system_root = Path(self.system_root)


@dataclass
class InstallConfig:
    """Package groups applied by the installer, in order."""

    driver_packages: list[str] = field(default_factory=lambda: list(DRIVER_PACKAGES))
    cuda_packages: list[str] = field(default_factory=lambda: list(CUDA_PACKAGES))
    docker_packages: list[str] = field(default_factory=lambda: list(DOCKER_PACKAGES))
    toolkit_packages: list[str] = field(
        default_factory=lambda: list(CONTAINER_TOOLKIT_PACKAGES)
    )
    configure_runtime: bool = True


@dataclass
class VerifyConfig:
    """Configuration for the verification playbook run."""

    playbook: Path = field(default_factory=lambda: DEFAULT_PLAYBOOK)
    ask_become_pass: bool = False
    create_workspace: bool = True

    def __post_init__(self) -> None:
        self.playbook = Path(self.playbook)


@dataclass
class Config:
    """
    Main configuration container for k80stack.

    Configuration is loaded from (in order of precedence):
    1. Environment variables (K80STACK_*)
    2. Config file (~/.k80stack/config.json)
    3. Default values

    Example:
        config = Config.load()
        print(config.backup_dir)

        # Or with custom config file
        config = Config.load(Path("/custom/config.json"))
    """

    # Directory paths
    config_dir: Path = field(default_factory=lambda: DEFAULT_CONFIG_DIR)
    backup_dir: Path = field(default_factory=lambda: DEFAULT_BACKUP_DIR)
    workspace_root: Path = field(default_factory=lambda: DEFAULT_WORKSPACE_ROOT)

    # Sub-configurations
    backup: BackupConfig = field(default_factory=BackupConfig)
    restore: RestoreConfig = field(default_factory=RestoreConfig)
    install: InstallConfig = field(default_factory=InstallConfig)
    verify: VerifyConfig = field(default_factory=VerifyConfig)

    # Logging
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        """Ensure paths are Path objects."""
        self.config_dir = Path(self.config_dir)
        self.backup_dir = Path(self.backup_dir)
        self.workspace_root = Path(self.workspace_root)

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> Config:
        """
        Load configuration from file and environment.

        Args:
            config_path: Optional path to config file. If not provided,
                        uses default location (~/.k80stack/config.json).

        Returns:
            Config instance with loaded values.
        """
        # Load environment variables from .env file if present
        load_dotenv()

        config_path = config_path or DEFAULT_CONFIG_FILE
        config_data: dict[str, Any] = {}

        if config_path.exists():
            try:
                with open(config_path) as f:
                    config_data = json.load(f)
                logger.debug(f"Loaded config from {config_path}")
            except (json.JSONDecodeError, OSError) as e:
                logger.warning(f"Failed to load config from {config_path}: {e}")

        config_data = cls._apply_env_overrides(config_data)

        return cls._from_dict(config_data)

    @classmethod
    def _apply_env_overrides(cls, config_data: dict[str, Any]) -> dict[str, Any]:
        """Apply environment variable overrides to config data."""
        env_mappings = {
            "K80STACK_CONFIG_DIR": "config_dir",
            "K80STACK_BACKUP_DIR": "backup_dir",
            "K80STACK_WORKSPACE_ROOT": "workspace_root",
            "K80STACK_LOG_LEVEL": "log_level",
            "K80STACK_SYSTEM_ROOT": ("restore", "system_root"),
            "K80STACK_ARCHITECTURE": ("restore", "architecture"),
            "K80STACK_PLAYBOOK": ("verify", "playbook"),
        }
        # Comma-separated manifests
        list_mappings = {
            "K80STACK_PACKAGES": ("backup", "packages"),
            "K80STACK_IMAGES": ("backup", "images"),
        }

        for env_var, config_key in env_mappings.items():
            value = os.environ.get(env_var)
            if value is not None:
                if isinstance(config_key, tuple):
                    section, key = config_key
                    config_data.setdefault(section, {})[key] = cls._parse_env_value(value)
                else:
                    config_data[config_key] = cls._parse_env_value(value)

        for env_var, (section, key) in list_mappings.items():
            value = os.environ.get(env_var)
            if value is not None:
                items = [item.strip() for item in value.split(",") if item.strip()]
                config_data.setdefault(section, {})[key] = items

        return config_data

    @staticmethod
    def _parse_env_value(value: str) -> Any:
        """Parse environment variable value to appropriate type."""
        if value.lower() in ("true", "yes", "1"):
            return True
        if value.lower() in ("false", "no", "0"):
            return False

        try:
            return int(value)
        except ValueError:
            pass

        return value

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> Config:
        """Create Config from dictionary."""
        backup_data = data.pop("backup", {})
        restore_data = data.pop("restore", {})
        install_data = data.pop("install", {})
        verify_data = data.pop("verify", {})

        return cls(
            config_dir=Path(data.get("config_dir", DEFAULT_CONFIG_DIR)),
            backup_dir=Path(data.get("backup_dir", DEFAULT_BACKUP_DIR)),
            workspace_root=Path(data.get("workspace_root", DEFAULT_WORKSPACE_ROOT)),
            backup=BackupConfig(**backup_data),
            restore=RestoreConfig(**restore_data),
            install=InstallConfig(**install_data),
            verify=VerifyConfig(**verify_data),
            log_level=data.get("log_level", "INFO"),
        )

    def save(self, config_path: Optional[Path] = None) -> None:
        """
        Save configuration to file.

        Args:
            config_path: Optional path to save to. If not provided,
                        uses default location.
        """
        config_path = config_path or DEFAULT_CONFIG_FILE
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, "w") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)

        logger.info(f"Saved config to {config_path}")

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary."""
        restore = asdict(self.restore)
        restore["system_root"] = str(self.restore.system_root)
        verify = asdict(self.verify)
        verify["playbook"] = str(self.verify.playbook)

        return {
            "config_dir": str(self.config_dir),
            "backup_dir": str(self.backup_dir),
            "workspace_root": str(self.workspace_root),
            "backup": asdict(self.backup),
            "restore": restore,
            "install": asdict(self.install),
            "verify": verify,
            "log_level": self.log_level,
        }


# Global config instance (lazy loaded)
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load()
    return _config


def reload_config(config_path: Optional[Path] = None) -> Config:
    """Reload configuration from file."""
    global _config
    _config = Config.load(config_path)
    return _config
