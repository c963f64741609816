"""Subprocess helper for bootstrap commands."""
import logging
import subprocess
from typing import Mapping, Optional, Sequence

logger = logging.getLogger(__name__)


def run_command(
    cmd: Sequence[str],
    input: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    timeout: Optional[float] = None,
) -> subprocess.CompletedProcess:
    """Run a command and capture output.

    Args:
        cmd: Command and arguments.
        input: Text fed to stdin.
        env: Full environment for the child, or None to inherit.
        timeout: Seconds before the command is killed.

    Returns:
        CompletedProcess with stdout/stderr. A missing executable is
        reported as returncode 127, like a shell would.
    """
    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        return subprocess.run(
            list(cmd),
            input=input,
            env=dict(env) if env is not None else None,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except FileNotFoundError as e:
        return subprocess.CompletedProcess(list(cmd), 127, stdout="", stderr=str(e))
