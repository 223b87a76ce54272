"""
External command execution with consistent logging.

Every call to apt, dpkg, docker, wget, gpg or ansible goes through
run_cmd so that the command line is logged before it runs and a failure
surfaces as a HostCommandError rather than a bare CalledProcessError.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Sequence, Union

from k80stack.exceptions import HostCommandError, MissingCommandError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Captured result of a finished command."""

    argv: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def format_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(str(a)) for a in argv)


def run_cmd(
    argv: Sequence[Union[str, Path]],
    *,
    check: bool = True,
    cwd: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
    input_text: Optional[str] = None,
) -> CommandResult:
    """Run a command and capture its output.

    Args:
        argv: Command and arguments.
        check: Raise HostCommandError on a non-zero exit status.
        cwd: Working directory for the child only.
        env: Extra environment variables merged over os.environ.
        input_text: Text written to the child's stdin.

    Raises:
        MissingCommandError: If the executable is not installed.
        HostCommandError: If check is set and the command fails.
    """
    argv_list = [str(a) for a in argv]
    logger.info("CMD %s", format_argv(argv_list))

    try:
        p = subprocess.run(
            argv_list,
            input=input_text,
            text=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=str(cwd) if cwd is not None else None,
            env=dict(os.environ, **(env or {})),
        )
    except FileNotFoundError as e:
        if e.filename == argv_list[0]:
            raise MissingCommandError([argv_list[0]]) from e
        raise

    if p.stdout:
        logger.debug("STDOUT %s", p.stdout.strip())
    if p.stderr:
        logger.debug("STDERR %s", p.stderr.strip())

    if check and p.returncode != 0:
        raise HostCommandError(format_argv(argv_list), p.returncode, p.stderr or "")

    return CommandResult(
        argv=argv_list,
        returncode=p.returncode,
        stdout=p.stdout or "",
        stderr=p.stderr or "",
    )
