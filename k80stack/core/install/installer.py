"""
Host installer.

Applies the fixed, ordered set of provisioning steps for a Tesla K80
host: repository keys, package index, NVIDIA driver, CUDA, Docker, the
NVIDIA Container Toolkit, the Docker GPU runtime, and the workspace
directory tree. Re-running is safe because every step is idempotent in
the package manager.
"""

from __future__ import annotations

import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Sequence

from k80stack.config import Config, get_config
from k80stack.constants import INSTALL_REQUIRED_COMMANDS, WORKSPACE_DIRS
from k80stack.core.backup.models import (
    ItemKind,
    ItemOutcome,
    OutcomeStatus,
    RepositoryKey,
    RunReport,
)
from k80stack.core.backup.repositories import RepositoryConfigurator
from k80stack.core.host import Host
from k80stack.exceptions import K80StackError, MissingCommandError

logger = logging.getLogger(__name__)

STEP_IDS = [
    "repositories",
    "update-index",
    "nvidia-driver",
    "cuda",
    "docker",
    "container-toolkit",
    "container-runtime",
    "workspace",
]


@dataclass(frozen=True)
class InstallStep:
    """A single idempotent provisioning step."""

    step_id: str
    description: str
    action: Callable[[], None]
    enabled: bool = True


def ensure_workspace(root: Path) -> list[Path]:
    """Create the workspace directory tree under root; return the paths."""
    created = []
    for relative in WORKSPACE_DIRS:
        path = Path(root) / relative
        path.mkdir(parents=True, exist_ok=True)
        created.append(path)
    logger.info(f"Workspace directories ensured under {root}")
    return created


class Installer:
    """
    Provisions the driver, CUDA and container stack on the current host.

    Example:
        installer = Installer(SystemHost(), config)
        report = installer.run()

        # Only refresh Docker and the toolkit
        report = installer.run(only=["docker", "container-toolkit"])
    """

    def __init__(self, host: Host, config: Optional[Config] = None):
        self._host = host
        self._config = config or get_config()
        self._repositories = RepositoryConfigurator(
            host,
            self._config.restore.system_root,
            self._config.restore.architecture,
        )

    def steps(self) -> list[InstallStep]:
        """All steps, in the order they are applied."""
        install = self._config.install
        return [
            InstallStep("repositories", "Trust package repositories", self._add_repositories),
            InstallStep("update-index", "Refresh package index", self._host.update_index),
            InstallStep(
                "nvidia-driver",
                "Install NVIDIA driver",
                lambda: self._host.install_packages(install.driver_packages),
            ),
            InstallStep(
                "cuda",
                "Install CUDA toolkit",
                lambda: self._host.install_packages(install.cuda_packages),
            ),
            InstallStep(
                "docker",
                "Install Docker",
                lambda: self._host.install_packages(install.docker_packages),
            ),
            InstallStep(
                "container-toolkit",
                "Install NVIDIA Container Toolkit",
                lambda: self._host.install_packages(install.toolkit_packages),
            ),
            InstallStep(
                "container-runtime",
                "Enable GPU runtime in Docker",
                self._configure_runtime,
                enabled=install.configure_runtime,
            ),
            InstallStep(
                "workspace",
                "Create workspace directories",
                lambda: ensure_workspace(self._config.workspace_root),
            ),
        ]

    def run(
        self,
        only: Optional[Sequence[str]] = None,
        stop_on_failure: bool = True,
        progress_callback: Optional[Callable[[float, str], None]] = None,
    ) -> RunReport:
        """
        Apply the steps in order.

        Args:
            only: Step IDs to run; every step if None.
            stop_on_failure: Skip the remaining steps after a failure.
            progress_callback: Called with (percentage, step_id) after each step.

        Returns:
            RunReport with one STEP outcome per step.

        Raises:
            MissingCommandError: If a required host command is absent.
            ValueError: If only names an unknown step.
        """
        steps = self.steps()
        if only:
            known = {s.step_id for s in steps}
            unknown = [name for name in only if name not in known]
            if unknown:
                raise ValueError(f"Unknown install step(s): {', '.join(unknown)}")
            steps = [s for s in steps if s.step_id in only]

        missing = self._host.missing_commands(INSTALL_REQUIRED_COMMANDS)
        if missing:
            raise MissingCommandError(missing)

        report = RunReport(operation="install")
        failed = False

        for index, step in enumerate(steps, start=1):
            if failed and stop_on_failure:
                report.add(
                    ItemOutcome(
                        ItemKind.STEP,
                        step.step_id,
                        OutcomeStatus.SKIPPED,
                        message="earlier step failed",
                    )
                )
                continue

            if not step.enabled:
                logger.info(f"Step {step.step_id} disabled in config")
                report.add(
                    ItemOutcome(
                        ItemKind.STEP,
                        step.step_id,
                        OutcomeStatus.SKIPPED,
                        message="disabled in config",
                    )
                )
                continue

            logger.info(f"Running step {step.step_id}: {step.description}")
            try:
                step.action()
            except (K80StackError, OSError) as e:
                logger.error(f"Step {step.step_id} failed: {e}")
                report.add(
                    ItemOutcome(ItemKind.STEP, step.step_id, OutcomeStatus.FAILED, message=str(e))
                )
                failed = True
            else:
                report.add(ItemOutcome(ItemKind.STEP, step.step_id, OutcomeStatus.SUCCEEDED))

            if progress_callback:
                progress_callback(index * 100.0 / len(steps), step.step_id)

        return report

    def _add_repositories(self) -> None:
        keys = [RepositoryKey.from_dict(k) for k in self._config.backup.repository_keys]
        with tempfile.TemporaryDirectory(prefix="k80stack-keys-") as tmp:
            for key in keys:
                key_file = Path(tmp) / key.filename
                self._host.fetch_url(key.url, key_file)
                self._repositories.install(key, key_file)

    def _configure_runtime(self) -> None:
        self._host.configure_container_runtime()
        self._host.restart_service("docker")
