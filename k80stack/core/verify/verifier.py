"""
System verification.

Runs the check playbook against the local host with Ansible's JSON
stdout callback and turns the task results into one pass/fail outcome
per capability (GPU, driver, CUDA, Docker, workspace). Nothing is
remediated; a failing check is only reported.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Callable, Optional

from k80stack.config import Config, get_config
from k80stack.constants import ANSIBLE_INVENTORY, CHECK_CAPABILITIES
from k80stack.core.backup.models import ItemKind, ItemOutcome, OutcomeStatus, RunReport
from k80stack.core.host import CommandResult, run_cmd
from k80stack.core.install import ensure_workspace
from k80stack.exceptions import PlaybookNotFoundError

logger = logging.getLogger(__name__)

PLAYBOOK_CHECK = "playbook"


def parse_task_results(output: str) -> Optional[list[tuple[str, dict[str, Any]]]]:
    """
    Extract (task name, host result) pairs from JSON callback output.

    Returns None when the output is not JSON callback output.
    """
    start = output.find("{")
    if start < 0:
        return None
    try:
        data = json.loads(output[start:])
    except ValueError:
        return None
    if not isinstance(data, dict) or "plays" not in data:
        return None

    results = []
    for play in data.get("plays", []):
        for task in play.get("tasks", []):
            name = task.get("task", {}).get("name", "")
            for host_result in task.get("hosts", {}).values():
                results.append((name, host_result))
    return results


def task_capability(task_name: str) -> Optional[str]:
    """Capability named by a ``capability: description`` task name."""
    prefix, sep, _ = task_name.partition(":")
    if not sep:
        return None
    prefix = prefix.strip().lower()
    return prefix if prefix in CHECK_CAPABILITIES else None


def _result_failed(result: dict[str, Any]) -> bool:
    if result.get("failed") or result.get("unreachable"):
        return True
    return any(item.get("failed") for item in result.get("results", []))


def _result_message(result: dict[str, Any]) -> str:
    message = result.get("msg") or result.get("stderr") or ""
    if not message:
        for item in result.get("results", []):
            if item.get("failed"):
                message = item.get("msg") or item.get("stderr") or ""
                break
    return str(message).strip()


class Verifier:
    """
    Re-runs the verification playbook and reports per-capability results.

    Example:
        verifier = Verifier(config)
        report = verifier.verify()

        for check in report.outcomes:
            print(check.name, check.status.value)
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        runner: Callable[..., CommandResult] = run_cmd,
    ):
        self._config = config or get_config()
        self._run = runner

    def build_command(self, playbook: Path) -> list[str]:
        home = str(self._config.workspace_root)
        argv = [
            "ansible-playbook",
            "-i",
            ANSIBLE_INVENTORY,
            str(playbook),
            "--extra-vars",
            f"ansible_user_dir={home}",
            "--connection=local",
        ]
        if self._config.verify.ask_become_pass:
            argv.append("--ask-become-pass")
        return argv

    def verify(self, playbook: Optional[Path] = None) -> RunReport:
        """
        Run the check playbook.

        Args:
            playbook: Playbook path, overriding config.verify.playbook.

        Returns:
            RunReport with one CHECK outcome per capability.

        Raises:
            PlaybookNotFoundError: If the playbook does not exist.
            MissingCommandError: If ansible-playbook is not installed.
        """
        playbook = Path(playbook) if playbook else self._config.verify.playbook
        if not playbook.is_file():
            raise PlaybookNotFoundError(str(playbook))

        report = RunReport(operation="verify")

        if self._config.verify.create_workspace:
            ensure_workspace(self._config.workspace_root)

        user = os.environ.get("USER", "unknown")
        logger.info(f"Running verification as {user} (home {self._config.workspace_root})")

        result = self._run(
            self.build_command(playbook),
            check=False,
            cwd=playbook.parent,
            env={
                "ANSIBLE_STDOUT_CALLBACK": "json",
                "ANSIBLE_NOCOLOR": "1",
                "ANSIBLE_USER_HOME": str(self._config.workspace_root),
            },
        )

        tasks = parse_task_results(result.stdout)
        if tasks is None:
            logger.warning("Could not parse playbook output; using exit status only")
            report.add(self._playbook_outcome(result))
            return report

        report.extend(self._capability_outcomes(tasks))

        if not result.ok and not report.has_failures:
            report.add(self._playbook_outcome(result))

        return report

    def _capability_outcomes(
        self,
        tasks: list[tuple[str, dict[str, Any]]],
    ) -> list[ItemOutcome]:
        seen: dict[str, list[dict[str, Any]]] = {}
        uncategorized_failures: list[str] = []

        for name, result in tasks:
            capability = task_capability(name)
            if capability is None:
                if _result_failed(result):
                    uncategorized_failures.append(f"{name}: {_result_message(result)}")
                continue
            seen.setdefault(capability, []).append({"task": name, **result})

        outcomes = []
        for capability, label in CHECK_CAPABILITIES.items():
            results = seen.get(capability)
            if not results:
                continue

            failures = [r for r in results if _result_failed(r)]
            if failures:
                first = failures[0]
                message = f"{first['task']}: {_result_message(first)}".rstrip(": ")
                logger.warning(f"{label}: FAILED ({message})")
                outcomes.append(
                    ItemOutcome(ItemKind.CHECK, capability, OutcomeStatus.FAILED, message=message)
                )
            elif all(r.get("skipped") for r in results):
                outcomes.append(
                    ItemOutcome(
                        ItemKind.CHECK, capability, OutcomeStatus.SKIPPED, message="all tasks skipped"
                    )
                )
            else:
                logger.info(f"{label}: Working")
                outcomes.append(
                    ItemOutcome(ItemKind.CHECK, capability, OutcomeStatus.SUCCEEDED, message=label)
                )

        if uncategorized_failures:
            outcomes.append(
                ItemOutcome(
                    ItemKind.CHECK,
                    PLAYBOOK_CHECK,
                    OutcomeStatus.FAILED,
                    message="; ".join(uncategorized_failures),
                )
            )
        return outcomes

    @staticmethod
    def _playbook_outcome(result: CommandResult) -> ItemOutcome:
        if result.ok:
            return ItemOutcome(ItemKind.CHECK, PLAYBOOK_CHECK, OutcomeStatus.SUCCEEDED)
        message = result.stderr.strip() or f"ansible-playbook exited with {result.returncode}"
        return ItemOutcome(ItemKind.CHECK, PLAYBOOK_CHECK, OutcomeStatus.FAILED, message=message)
