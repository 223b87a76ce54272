"""
Host module for k80stack.

This module provides the capability interface the backup, restore and
install operations use to reach the package manager and the container
runtime, together with its implementation for a real Ubuntu host.

Example:
    from k80stack.core.host import SystemHost

    host = SystemHost()
    host.is_installed("docker-ce")
"""

from k80stack.core.host.base import Host
from k80stack.core.host.command import CommandResult, format_argv, run_cmd
from k80stack.core.host.system import SystemHost

__all__ = [
    "CommandResult",
    "Host",
    "SystemHost",
    "format_argv",
    "run_cmd",
]
