"""
k80stack command-line interface.

This package provides the CLI for provisioning, backing up, restoring
and verifying a Tesla K80 host.
"""

from k80stack.cli.main import cli

__all__ = ["cli"]
