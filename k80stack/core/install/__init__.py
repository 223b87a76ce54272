"""
Install module for k80stack.

Example:
    from k80stack.core.install import Installer

    report = Installer(SystemHost(), config).run()
"""

from k80stack.core.install.installer import InstallStep, Installer, ensure_workspace

__all__ = [
    "InstallStep",
    "Installer",
    "ensure_workspace",
]
