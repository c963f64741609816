"""Exclusive run lock so scheduled runs never overlap."""
import fcntl
import logging
import os
from pathlib import Path
from typing import Optional

from ...errors import AlreadyRunning, MirrorError

logger = logging.getLogger(__name__)


class RunLock:
    """Non-blocking flock on a lock file, held for the life of a run.

    The kernel drops the lock when the process exits, so a crashed run
    never leaves a stale lock behind.
    """

    def __init__(self, path: str):
        self.path = Path(path)
        self._fd: Optional[int] = None

    def acquire(self) -> None:
        """
        Take the lock.

        Raises:
            AlreadyRunning: Another process holds it
            MirrorError: The lock file cannot be opened
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o644)
        except OSError as e:
            raise MirrorError(f"Cannot open lock file {self.path}: {e}") from e

        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            os.close(fd)
            raise AlreadyRunning(f"Another run holds {self.path}; skipping this one")

        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode())
        self._fd = fd
        logger.debug(f"Acquired run lock {self.path}")

    def release(self) -> None:
        if self._fd is None:
            return
        try:
            fcntl.flock(self._fd, fcntl.LOCK_UN)
        finally:
            os.close(self._fd)
            self._fd = None
        logger.debug(f"Released run lock {self.path}")

    @property
    def held(self) -> bool:
        return self._fd is not None

    def __enter__(self) -> "RunLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
