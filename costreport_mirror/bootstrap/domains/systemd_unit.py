"""The oneshot systemd unit that runs the deferred bootstrap.

The first-boot handler only has to install and start this unit; the unit
itself is not bound by the first-boot time budget.
"""
import logging
from pathlib import Path
from typing import Callable

from ...errors import BootstrapInstallError
from .shell import run_command

logger = logging.getLogger(__name__)

UNIT_TEMPLATE = """[Unit]
Description=costreport-mirror deferred bootstrap
Wants=network-online.target
After=network-online.target

[Service]
Type=oneshot
RemainAfterExit=yes
TimeoutStartSec=0
ExecStart={exec_start}

[Install]
WantedBy=multi-user.target
"""


def render_unit(exec_start: str) -> str:
    return UNIT_TEMPLATE.format(exec_start=exec_start)


def unit_installed(unit_dir: str, unit_name: str) -> bool:
    return (Path(unit_dir) / unit_name).is_file()


def install_unit(unit_dir: str, unit_name: str, exec_start: str, runner: Callable = run_command) -> dict:
    """Write, enable and start the bootstrap unit without waiting for it.

    Args:
        unit_dir: systemd unit directory.
        unit_name: Unit file name.
        exec_start: Command line for ExecStart.

    Returns:
        dict: 'written' (unit file changed) and 'started' bools.

    Raises:
        BootstrapInstallError: If the file cannot be written or systemctl fails.
    """
    target = Path(unit_dir) / unit_name
    content = render_unit(exec_start)
    result = {"written": False, "started": False}

    try:
        if not target.exists() or target.read_text() != content:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content)
            result["written"] = True
            logger.info(f"Wrote unit file {target}")
    except OSError as e:
        raise BootstrapInstallError(f"Cannot write unit file {target}: {e}") from e

    for cmd in (
        ["systemctl", "daemon-reload"],
        ["systemctl", "enable", "--now", "--no-block", unit_name],
    ):
        completed = runner(cmd)
        if completed.returncode != 0:
            raise BootstrapInstallError(
                f"{' '.join(cmd)} failed with code {completed.returncode}: {completed.stderr.strip()}"
            )

    result["started"] = True
    logger.info(f"Enabled and queued {unit_name}")
    return result
