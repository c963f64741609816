"""Periodic trigger registration in the user's crontab.

The crontab is read before it is written: the run line is added only when
absent, and replaced in place when the schedule or command changed.
"""
import logging
import shlex
import shutil
import sys
from typing import Callable, List, Optional

from ...errors import BootstrapInstallError
from .shell import run_command

logger = logging.getLogger(__name__)

CRON_MARKER = "# costreport-mirror"


def mirror_command(config_path: str, subcommand: str) -> str:
    """Shell command invoking the CLI, preferring the installed entrypoint."""
    entrypoint = shutil.which("costreport-mirror")
    if entrypoint:
        base = shlex.quote(entrypoint)
    else:
        base = f"{shlex.quote(sys.executable)} -m costreport_mirror.cli.main"
    return f"{base} --config {shlex.quote(config_path)} {subcommand}"


def cron_line(schedule: str, config_path: str, log_file: Optional[str] = None) -> str:
    """The crontab entry for periodic runs, tagged with CRON_MARKER."""
    command = mirror_command(config_path, "run")
    if log_file:
        # Errors raised before logging is configured still reach the log.
        command += f" >>{shlex.quote(log_file)} 2>&1"
    return f"{schedule} {command} {CRON_MARKER}"


def read_crontab(runner: Callable = run_command) -> List[str]:
    """
    Current crontab lines; empty when the user has no crontab yet.

    Raises:
        BootstrapInstallError: If crontab cannot be read for another reason
    """
    result = runner(["crontab", "-l"])
    if result.returncode == 0:
        return result.stdout.splitlines()
    if "no crontab" in (result.stderr or "").lower():
        return []
    raise BootstrapInstallError(f"crontab -l failed with code {result.returncode}: {result.stderr.strip()}")


def is_registered(line: str, runner: Callable = run_command) -> bool:
    return line in (existing.strip() for existing in read_crontab(runner))


def register(line: str, runner: Callable = run_command) -> bool:
    """
    Make sure `line` is in the crontab exactly once.

    Returns:
        True if the crontab was written, False if it already matched

    Raises:
        BootstrapInstallError: If crontab cannot be read or written
    """
    current = read_crontab(runner)
    stripped = [existing.strip() for existing in current]
    if stripped.count(line) == 1 and sum(CRON_MARKER in s for s in stripped) == 1:
        logger.info("Cron entry already registered")
        return False

    updated = [existing for existing in current if CRON_MARKER not in existing]
    updated.append(line)

    result = runner(["crontab", "-"], input="\n".join(updated) + "\n")
    if result.returncode != 0:
        raise BootstrapInstallError(f"crontab write failed with code {result.returncode}: {result.stderr.strip()}")

    logger.info(f"Cron entry registered: {line}")
    return True
