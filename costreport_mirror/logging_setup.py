"""Logging configuration shared by every entrypoint."""
import logging
import sys
from typing import Optional

FILE_FORMAT = "%(asctime)s %(process)d %(levelname)s %(name)s: %(message)s"


class _ConsoleFormatter(logging.Formatter):
    """Bare message; tracebacks are left to the log file."""

    def format(self, record: logging.LogRecord) -> str:
        return record.getMessage()


def configure_logging(log_file: Optional[str] = None, level: str = "INFO", verbose: bool = False) -> None:
    """
    Configure root logging.

    Console output goes to stderr with the bare message, WARNING and above
    unless verbose. When a log file is given, every record at `level` and
    above is appended to it with a timestamp, pid and traceback.

    Args:
        log_file: Shared append-only log file, or None for console only
        level: Minimum level written to the log file
        verbose: Show INFO records on the console too
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(logging.INFO if verbose else logging.WARNING)
    console.setFormatter(_ConsoleFormatter())
    root.addHandler(console)

    root.setLevel(logging.DEBUG)

    if log_file:
        # Other runs and rclone append to the same file; never truncate.
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setLevel(getattr(logging, level.upper(), logging.INFO))
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        root.addHandler(file_handler)

    # Google client libraries are chatty at DEBUG.
    for name in ("google", "urllib3", "grpc"):
        logging.getLogger(name).setLevel(logging.WARNING)
