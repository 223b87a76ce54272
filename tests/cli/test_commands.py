"""
Tests for CLI commands.

Tests the command-line interface for k80stack.
"""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from k80stack import __version__
from k80stack.cli.main import cli
from k80stack.config import Config
from k80stack.core.backup.models import ItemKind, ItemOutcome, OutcomeStatus, RunReport
from k80stack.exceptions import PlaybookNotFoundError

from conftest import TEST_IMAGE, TEST_PACKAGE, FakeHost


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def config_file(test_config: Config, tmp_path: Path) -> Path:
    """Write test_config to disk for --config."""
    path = tmp_path / "config.json"
    test_config.save(path)
    return path


def invoke(runner: CliRunner, config_file: Path, *args: str, **kwargs):
    return runner.invoke(cli, ["--config", str(config_file), *args], **kwargs)


class TestRootCommand:
    def test_version(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_lists_commands(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for name in ("backup", "install", "verify"):
            assert name in result.output


class TestBackupCreateCommand:
    """Tests for 'k80stack backup create'."""

    def test_create(
        self, cli_runner: CliRunner, config_file: Path, source_host: FakeHost, test_config: Config
    ) -> None:
        with patch("k80stack.cli.commands.backup.SystemHost", return_value=source_host):
            result = invoke(cli_runner, config_file, "backup", "create")

        assert result.exit_code == 0, result.output
        assert "Backup complete" in result.output
        assert (test_config.backup_dir / "manifest.json").exists()

    def test_create_json(
        self, cli_runner: CliRunner, config_file: Path, source_host: FakeHost
    ) -> None:
        with patch("k80stack.cli.commands.backup.SystemHost", return_value=source_host):
            result = invoke(cli_runner, config_file, "backup", "create", "--json")

        data = json.loads(result.output)
        assert data["operation"] == "backup-create"
        names = {o["name"] for o in data["outcomes"]}
        assert {TEST_PACKAGE, TEST_IMAGE} <= names

    def test_partial_backup_exit_code(
        self, cli_runner: CliRunner, config_file: Path, source_host: FakeHost
    ) -> None:
        """Failed items exit non-zero unless --allow-partial is given."""
        del source_host.registry[TEST_IMAGE]

        with patch("k80stack.cli.commands.backup.SystemHost", return_value=source_host):
            strict = invoke(cli_runner, config_file, "backup", "create", "--yes")
            partial = invoke(
                cli_runner, config_file, "backup", "create", "--yes", "--allow-partial"
            )

        assert strict.exit_code == 1
        assert "incomplete" in strict.output
        assert partial.exit_code == 0

    def test_existing_directory_declined(
        self, cli_runner: CliRunner, config_file: Path, source_host: FakeHost, test_config: Config
    ) -> None:
        test_config.backup_dir.mkdir(parents=True)
        (test_config.backup_dir / "keep").write_text("x")

        with patch("k80stack.cli.commands.backup.SystemHost", return_value=source_host):
            result = invoke(cli_runner, config_file, "backup", "create", input="n\n")

        assert result.exit_code == 1
        assert "Aborting" in result.output
        assert (test_config.backup_dir / "keep").exists()

    def test_existing_directory_confirmed(
        self, cli_runner: CliRunner, config_file: Path, source_host: FakeHost, test_config: Config
    ) -> None:
        test_config.backup_dir.mkdir(parents=True)
        (test_config.backup_dir / "stale").write_text("x")

        with patch("k80stack.cli.commands.backup.SystemHost", return_value=source_host):
            result = invoke(cli_runner, config_file, "backup", "create", input="y\n")

        assert result.exit_code == 0, result.output
        assert not (test_config.backup_dir / "stale").exists()

    def test_missing_tools(
        self, cli_runner: CliRunner, config_file: Path, source_host: FakeHost
    ) -> None:
        source_host.missing.add("docker")

        with patch("k80stack.cli.commands.backup.SystemHost", return_value=source_host):
            result = invoke(cli_runner, config_file, "backup", "create")

        assert result.exit_code == 1
        assert "docker" in result.output


class TestBackupRestoreCommand:
    """Tests for 'k80stack backup restore'."""

    def test_restore(
        self,
        cli_runner: CliRunner,
        config_file: Path,
        source_host: FakeHost,
        fake_host: FakeHost,
    ) -> None:
        with patch("k80stack.cli.commands.backup.SystemHost", return_value=source_host):
            invoke(cli_runner, config_file, "backup", "create")
        with patch("k80stack.cli.commands.backup.SystemHost", return_value=fake_host):
            result = invoke(cli_runner, config_file, "backup", "restore")

        assert result.exit_code == 0, result.output
        assert "Offline installation completed" in result.output
        assert fake_host.is_installed(TEST_PACKAGE)

    def test_restore_missing_backup(
        self, cli_runner: CliRunner, config_file: Path, fake_host: FakeHost
    ) -> None:
        with patch("k80stack.cli.commands.backup.SystemHost", return_value=fake_host):
            result = invoke(cli_runner, config_file, "backup", "restore")

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_restore_nothing(
        self, cli_runner: CliRunner, config_file: Path, fake_host: FakeHost, tmp_path: Path
    ) -> None:
        empty = tmp_path / "empty"
        (empty / "packages").mkdir(parents=True)

        with patch("k80stack.cli.commands.backup.SystemHost", return_value=fake_host):
            result = invoke(cli_runner, config_file, "backup", "restore", "--dir", str(empty))

        assert result.exit_code == 0
        assert "Nothing to restore" in result.output

    def test_restore_failures_exit_nonzero(
        self,
        cli_runner: CliRunner,
        config_file: Path,
        source_host: FakeHost,
        fake_host: FakeHost,
    ) -> None:
        fake_host.uninstallable.add(TEST_PACKAGE)
        with patch("k80stack.cli.commands.backup.SystemHost", return_value=source_host):
            invoke(cli_runner, config_file, "backup", "create")
        with patch("k80stack.cli.commands.backup.SystemHost", return_value=fake_host):
            strict = invoke(cli_runner, config_file, "backup", "restore")
            partial = invoke(cli_runner, config_file, "backup", "restore", "--allow-partial")

        assert strict.exit_code == 1
        assert partial.exit_code == 0


class TestBackupHousekeepingCommands:
    """Tests for 'backup info', 'backup verify' and 'backup delete'."""

    @pytest.fixture
    def created(self, cli_runner: CliRunner, config_file: Path, source_host: FakeHost) -> None:
        with patch("k80stack.cli.commands.backup.SystemHost", return_value=source_host):
            invoke(cli_runner, config_file, "backup", "create")

    def test_info(self, cli_runner: CliRunner, config_file: Path, created: None) -> None:
        result = invoke(cli_runner, config_file, "backup", "info")
        assert result.exit_code == 0
        assert "Package archives" in result.output

    def test_info_json(self, cli_runner: CliRunner, config_file: Path, created: None) -> None:
        result = invoke(cli_runner, config_file, "backup", "info", "--json")
        data = json.loads(result.output)
        assert data["package_files"] == 1
        assert data["image_files"] == 1

    def test_info_missing(self, cli_runner: CliRunner, config_file: Path) -> None:
        result = invoke(cli_runner, config_file, "backup", "info")
        assert result.exit_code == 1

    def test_verify(self, cli_runner: CliRunner, config_file: Path, created: None) -> None:
        result = invoke(cli_runner, config_file, "backup", "verify")
        assert result.exit_code == 0
        assert "5 succeeded" in result.output

    def test_verify_detects_corruption(
        self, cli_runner: CliRunner, config_file: Path, created: None, test_config: Config
    ) -> None:
        archive = test_config.backup_dir / "docker-images" / "hello-world_latest.tar.gz"
        archive.write_bytes(b"corrupt")

        result = invoke(cli_runner, config_file, "backup", "verify")

        assert result.exit_code == 1
        assert "1 failed" in result.output

    def test_delete_confirmed(
        self, cli_runner: CliRunner, config_file: Path, created: None, test_config: Config
    ) -> None:
        result = invoke(cli_runner, config_file, "backup", "delete", "--yes")
        assert result.exit_code == 0
        assert not test_config.backup_dir.exists()

    def test_delete_cancelled(
        self, cli_runner: CliRunner, config_file: Path, created: None, test_config: Config
    ) -> None:
        result = invoke(cli_runner, config_file, "backup", "delete", input="n\n")
        assert "Cancelled" in result.output
        assert test_config.backup_dir.exists()

    def test_delete_missing(self, cli_runner: CliRunner, config_file: Path) -> None:
        result = invoke(cli_runner, config_file, "backup", "delete", "--yes")
        assert result.exit_code == 1


class TestInstallCommand:
    """Tests for 'k80stack install'."""

    @pytest.fixture
    def install_host(self, source_host: FakeHost, test_config: Config) -> FakeHost:
        install = test_config.install
        for package in (
            install.driver_packages
            + install.cuda_packages
            + install.docker_packages
            + install.toolkit_packages
        ):
            source_host.repository[package] = b"deb"
        return source_host

    def test_install(
        self, cli_runner: CliRunner, config_file: Path, install_host: FakeHost
    ) -> None:
        with patch("k80stack.cli.commands.install.SystemHost", return_value=install_host):
            result = invoke(cli_runner, config_file, "install")

        assert result.exit_code == 0, result.output
        assert "Installation steps applied" in result.output

    def test_install_single_step(
        self, cli_runner: CliRunner, config_file: Path, install_host: FakeHost
    ) -> None:
        with patch("k80stack.cli.commands.install.SystemHost", return_value=install_host):
            result = invoke(cli_runner, config_file, "install", "--step", "workspace", "--json")

        data = json.loads(result.output)
        assert [o["name"] for o in data["outcomes"]] == ["workspace"]

    def test_install_disabled_step(
        self, cli_runner: CliRunner, test_config: Config, install_host: FakeHost, tmp_path: Path
    ) -> None:
        """A step turned off in config is accepted and reported as skipped."""
        test_config.install.configure_runtime = False
        path = tmp_path / "no-runtime.json"
        test_config.save(path)

        with patch("k80stack.cli.commands.install.SystemHost", return_value=install_host):
            result = invoke(cli_runner, path, "install", "--step", "container-runtime", "--json")

        assert result.exit_code == 0, result.output
        outcome = json.loads(result.output)["outcomes"][0]
        assert outcome["name"] == "container-runtime"
        assert outcome["status"] == "skipped"

    def test_install_unknown_step(self, cli_runner: CliRunner, config_file: Path) -> None:
        result = invoke(cli_runner, config_file, "install", "--step", "bogus")
        assert result.exit_code == 2

    def test_install_failure(
        self, cli_runner: CliRunner, config_file: Path, install_host: FakeHost
    ) -> None:
        del install_host.repository["cuda-toolkit-11-7"]

        with patch("k80stack.cli.commands.install.SystemHost", return_value=install_host):
            result = invoke(cli_runner, config_file, "install")

        assert result.exit_code == 1


class TestVerifyCommand:
    """Tests for 'k80stack verify'."""

    def _report(self, *statuses: OutcomeStatus) -> RunReport:
        report = RunReport(operation="verify")
        for name, status in zip(["gpu", "driver", "cuda", "docker", "workspace"], statuses):
            report.add(ItemOutcome(ItemKind.CHECK, name, status))
        return report

    def test_verify_success(self, cli_runner: CliRunner, config_file: Path) -> None:
        report = self._report(*[OutcomeStatus.SUCCEEDED] * 5)
        with patch("k80stack.cli.commands.verify.Verifier") as MockVerifier:
            MockVerifier.return_value.verify.return_value = report

            result = invoke(cli_runner, config_file, "verify")

        assert result.exit_code == 0, result.output
        assert "VERIFICATION SUCCESSFUL" in result.output
        assert "NVIDIA Tesla K80 GPUs: Working" in result.output

    def test_verify_failure(self, cli_runner: CliRunner, config_file: Path) -> None:
        report = self._report(OutcomeStatus.SUCCEEDED, OutcomeStatus.FAILED)
        with patch("k80stack.cli.commands.verify.Verifier") as MockVerifier:
            MockVerifier.return_value.verify.return_value = report

            result = invoke(cli_runner, config_file, "verify")

        assert result.exit_code == 1
        assert "VERIFICATION FAILED" in result.output

    def test_verify_json(self, cli_runner: CliRunner, config_file: Path) -> None:
        report = self._report(OutcomeStatus.SUCCEEDED)
        with patch("k80stack.cli.commands.verify.Verifier") as MockVerifier:
            MockVerifier.return_value.verify.return_value = report

            result = invoke(cli_runner, config_file, "verify", "--json")

        assert json.loads(result.output)["operation"] == "verify"

    def test_verify_missing_playbook(self, cli_runner: CliRunner, config_file: Path) -> None:
        with patch("k80stack.cli.commands.verify.Verifier") as MockVerifier:
            MockVerifier.return_value.verify.side_effect = PlaybookNotFoundError("/nope.yml")

            result = invoke(cli_runner, config_file, "verify")

        assert result.exit_code == 1
        assert "Playbook not found" in result.output
