"""Idempotent installation of OS packages and rclone."""
import logging
import os
import shutil
from typing import Callable, List, Sequence

from ...errors import BootstrapInstallError
from .shell import run_command

logger = logging.getLogger(__name__)

# rclone's install.sh exits 3 when the latest version is already present.
RCLONE_ALREADY_CURRENT = 3


def missing_packages(packages: Sequence[str], runner: Callable = run_command) -> List[str]:
    """Return the packages dpkg does not report as installed."""
    missing = []
    for package in packages:
        result = runner(["dpkg-query", "-W", "-f=${Status}", package])
        if result.returncode != 0 or "install ok installed" not in result.stdout:
            missing.append(package)
    return missing


def install_packages(packages: Sequence[str], runner: Callable = run_command) -> List[str]:
    """
    Install whichever of `packages` are missing.

    Returns:
        Packages that were installed (empty when nothing was missing)

    Raises:
        BootstrapInstallError: If apt-get fails
    """
    missing = missing_packages(packages, runner)
    if not missing:
        logger.info("All OS packages already installed")
        return []

    env = dict(os.environ, DEBIAN_FRONTEND="noninteractive")
    for cmd in (
        ["apt-get", "update", "-q"],
        ["apt-get", "install", "-y", "-q", "--no-install-recommends", *missing],
    ):
        result = runner(cmd, env=env)
        if result.returncode != 0:
            raise BootstrapInstallError(
                f"{' '.join(cmd[:2])} failed with code {result.returncode}: {result.stderr.strip()}"
            )

    logger.info(f"Installed OS packages: {', '.join(missing)}")
    return missing


def rclone_installed(binary: str = "rclone") -> bool:
    return shutil.which(binary) is not None


def install_rclone(
    install_url: str,
    runner: Callable = run_command,
    is_installed: Callable[[], bool] = rclone_installed,
) -> bool:
    """
    Install rclone with its official install script unless already present.

    Returns:
        True if an install was performed, False if rclone was already there

    Raises:
        BootstrapInstallError: If downloading or running the script fails
    """
    if is_installed():
        logger.info("rclone already installed")
        return False

    download = runner(["curl", "-fsSL", install_url], timeout=300)
    if download.returncode != 0 or not download.stdout:
        raise BootstrapInstallError(
            f"Downloading {install_url} failed with code {download.returncode}: {download.stderr.strip()}"
        )

    result = runner(["bash", "-s"], input=download.stdout, timeout=900)
    if result.returncode not in (0, RCLONE_ALREADY_CURRENT):
        raise BootstrapInstallError(
            f"rclone install script failed with code {result.returncode}: {result.stderr.strip()}"
        )
    if not is_installed():
        raise BootstrapInstallError("rclone install script finished but rclone is not on PATH")

    logger.info("rclone installed")
    return True
