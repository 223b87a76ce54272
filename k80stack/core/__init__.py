"""
k80stack core library modules.

This package contains the host capability layer and the backup,
restore, install and verification operations built on it.
"""

from k80stack.core.host import Host, SystemHost

__all__ = [
    "Host",
    "SystemHost",
]
