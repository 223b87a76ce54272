"""
Custom exceptions for the k80stack package.

All k80stack-specific exceptions inherit from K80StackError to allow
catching all package exceptions with a single except clause.

Fatal conditions (missing backup directory, missing host command) abort
an operation. Host command failures and artifact mismatches are raised
by the host layer and reduced to per-item outcomes by the callers.
"""

from typing import Optional, Sequence


class K80StackError(Exception):
    """Base exception for all k80stack errors."""

    def __init__(self, message: str, details: Optional[str] = None):
        self.message = message
        self.details = details
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


# Host errors
class HostError(K80StackError):
    """Base class for errors talking to the host tooling."""

    pass


class HostCommandError(HostError):
    """An external command exited with a non-zero status."""

    def __init__(self, command: str, returncode: int, stderr: str = ""):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        details = f"'{command}' exited with {returncode}"
        if stderr.strip():
            details += f", stderr: {stderr.strip()}"
        super().__init__("Command failed", details)


class MissingCommandError(HostError):
    """One or more required host commands are not installed."""

    def __init__(self, commands: Sequence[str]):
        self.commands = list(commands)
        super().__init__(
            "Required command not found",
            f"Install or add to PATH: {', '.join(self.commands)}"
        )


# Backup errors
class BackupError(K80StackError):
    """Base class for backup-related errors."""

    pass


class BackupNotFoundError(BackupError):
    """Backup directory does not exist."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(
            "Backup directory not found",
            f"No backup found at: {path}"
        )


class BackupExistsError(BackupError):
    """Backup destination already exists and overwrite was not requested."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(
            "Backup directory already exists",
            f"{path} exists. Remove it or confirm overwrite."
        )


class ManifestError(BackupError):
    """The backup manifest could not be read."""

    def __init__(self, path: str, reason: Optional[str] = None):
        self.path = path
        details = f"Manifest: {path}"
        if reason:
            details += f", Reason: {reason}"
        super().__init__("Invalid backup manifest", details)


class ArtifactError(BackupError):
    """A backup artifact does not match what was recorded at creation."""

    def __init__(self, artifact: str, reason: str):
        self.artifact = artifact
        self.reason = reason
        super().__init__("Artifact mismatch", f"{artifact}: {reason}")


# Verification errors
class VerificationError(K80StackError):
    """Verification could not be run."""

    pass


class PlaybookNotFoundError(VerificationError):
    """The check playbook does not exist."""

    def __init__(self, path: str):
        self.path = path
        super().__init__("Playbook not found", f"Path: {path}")
