"""Error taxonomy for costreport-mirror.

Every error carries the process exit code the CLI reports for it.
"""
from typing import Optional


class MirrorError(Exception):
    """Base class for errors that end an invocation."""

    exit_code = 1

    def __init__(self, message: str, exit_code: Optional[int] = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigError(MirrorError):
    """Configuration file missing, unreadable or invalid."""

    exit_code = 2


class CredentialFetchError(MirrorError):
    """Secret store unreachable or the request was not authorized."""

    exit_code = 3


class CredentialFormatError(MirrorError):
    """Secret payload missing or not valid base64 text."""

    exit_code = 4


class BootstrapInstallError(MirrorError):
    """Package or sync tool installation failed."""

    exit_code = 5


class SyncTransferError(MirrorError):
    """rclone reported a failure; exit_code is rclone's own code."""


class NotificationError(MirrorError):
    """Alert publish failed. Never leaves the notifier."""


class AlreadyRunning(MirrorError):
    """Another run holds the run lock."""

    exit_code = 75
