"""Tests for configuration loading and saving."""

import json
from pathlib import Path

import pytest

from k80stack.config import Config
from k80stack.constants import DEFAULT_IMAGES, DEFAULT_PACKAGES, DEFAULT_PLAYBOOK


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path: Path):
    """Keep K80STACK_* variables and .env files out of these tests."""
    for name in (
        "K80STACK_CONFIG_DIR",
        "K80STACK_BACKUP_DIR",
        "K80STACK_WORKSPACE_ROOT",
        "K80STACK_LOG_LEVEL",
        "K80STACK_SYSTEM_ROOT",
        "K80STACK_ARCHITECTURE",
        "K80STACK_PLAYBOOK",
        "K80STACK_PACKAGES",
        "K80STACK_IMAGES",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


class TestConfig:
    """Tests for Config."""

    def test_defaults(self, tmp_path: Path) -> None:
        config = Config.load(tmp_path / "missing.json")

        assert config.backup.packages == DEFAULT_PACKAGES
        assert config.backup.images == DEFAULT_IMAGES
        assert len(config.backup.repository_keys) == 3
        assert config.restore.system_root == Path("/")
        assert config.verify.playbook == DEFAULT_PLAYBOOK
        assert config.log_level == "INFO"

    def test_defaults_are_copies(self) -> None:
        config = Config()
        config.backup.packages.append("extra")
        assert "extra" not in Config().backup.packages

    def test_save_and_load(self, tmp_path: Path) -> None:
        path = tmp_path / "config.json"
        config = Config(backup_dir=tmp_path / "b", workspace_root=tmp_path / "home")
        config.backup.images = ["ubuntu:22.04"]
        config.restore.system_root = tmp_path / "root"
        config.install.configure_runtime = False

        config.save(path)
        loaded = Config.load(path)

        assert loaded.backup_dir == tmp_path / "b"
        assert loaded.workspace_root == tmp_path / "home"
        assert loaded.backup.images == ["ubuntu:22.04"]
        assert loaded.restore.system_root == tmp_path / "root"
        assert loaded.install.configure_runtime is False

    def test_partial_file(self, tmp_path: Path) -> None:
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"backup": {"packages": ["docker-ce"]}}))

        config = Config.load(path)

        assert config.backup.packages == ["docker-ce"]
        assert config.backup.images == DEFAULT_IMAGES

    def test_invalid_file_falls_back_to_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "config.json"
        path.write_text("{not json")

        config = Config.load(path)

        assert config.backup.packages == DEFAULT_PACKAGES

    def test_env_overrides(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.setenv("K80STACK_BACKUP_DIR", str(tmp_path / "env-backups"))
        monkeypatch.setenv("K80STACK_SYSTEM_ROOT", str(tmp_path / "sysroot"))
        monkeypatch.setenv("K80STACK_LOG_LEVEL", "DEBUG")

        config = Config.load(tmp_path / "missing.json")

        assert config.backup_dir == tmp_path / "env-backups"
        assert config.restore.system_root == tmp_path / "sysroot"
        assert config.log_level == "DEBUG"

    def test_env_lists(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.setenv("K80STACK_PACKAGES", "docker-ce, containerd.io,")
        monkeypatch.setenv("K80STACK_IMAGES", "hello-world:latest")

        config = Config.load(tmp_path / "missing.json")

        assert config.backup.packages == ["docker-ce", "containerd.io"]
        assert config.backup.images == ["hello-world:latest"]

    def test_env_overrides_file(self, tmp_path: Path, monkeypatch) -> None:
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"restore": {"architecture": "arm64"}}))
        monkeypatch.setenv("K80STACK_ARCHITECTURE", "amd64")

        assert Config.load(path).restore.architecture == "amd64"

    @pytest.mark.parametrize(
        "value, expected",
        [("true", True), ("No", False), ("42", 42), ("jammy", "jammy")],
    )
    def test_parse_env_value(self, value, expected) -> None:
        assert Config._parse_env_value(value) == expected
