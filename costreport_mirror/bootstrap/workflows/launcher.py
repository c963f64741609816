"""Workflow for the deferred bootstrap launched by the oneshot unit.

    deferred -> installing -> scheduling -> first run -> done

Every step checks current state before changing anything, so restarting the
unit repeats no installs and adds no second cron entry.
"""
import logging
from typing import Callable, Optional
from ..domains import installer, scheduler, systemd_unit
from ..domains.models import BootstrapState
from ..domains.readiness import wait_until_ready
from ..domains.shell import run_command
from ...config_loader import MirrorConfig
from ...errors import MirrorError
from ...notify.domains.pubsub_client import PubSubPublisher, topic_path
from ...notify.workflows.alerting import notify_if_failed
from ...run.workflows.run_operations import run

logger = logging.getLogger(__name__)


def install(config: MirrorConfig, runner: Callable = run_command,
            rclone_present: Callable[[], bool] = installer.rclone_installed) -> None:
    """Install OS packages and rclone, then register the cron entry."""
    logger.info("Bootstrap: installing")
    installer.install_packages(config.bootstrap.packages, runner)
    installer.install_rclone(config.bootstrap.rclone_install_url, runner, rclone_present)

    logger.info("Bootstrap: scheduling")
    line = scheduler.cron_line(config.bootstrap.schedule, config.path, config.log_file)
    scheduler.register(line, runner)


def bootstrap(
    config: MirrorConfig,
    runner: Callable = run_command,
    wait: Callable[..., bool] = wait_until_ready,
    run_once: Callable[[MirrorConfig], int] = run,
    rclone_present: Callable[[], bool] = installer.rclone_installed,
    publisher: Optional[PubSubPublisher] = None,
) -> int:
    """
    Wait for the network, install, schedule, then run once.

    Returns:
        Exit code of the first run, or of the failed bootstrap step
    """
    settings = config.bootstrap
    logger.info("Bootstrap: deferred, waiting for network")
    wait(
        settings.readiness_host,
        settings.readiness_port,
        max_wait_seconds=settings.max_wait_seconds,
        poll_interval_seconds=settings.poll_interval_seconds,
        min_delay_seconds=settings.min_delay_seconds,
    )

    try:
        install(config, runner, rclone_present)
    except MirrorError as e:
        logger.error(f"Bootstrap failed (exit code {e.exit_code}): {e}")
        topic = topic_path(config.topic, config.project_id) if config.topic else None
        notify_if_failed(e.exit_code, None, topic, message=f"bootstrap failed: {e}", publisher=publisher)
        return e.exit_code

    logger.info("Bootstrap: first run")
    exit_code = run_once(config)
    logger.info(f"Bootstrap: done (first run exit code {exit_code})")
    return exit_code


def bootstrap_state(config: MirrorConfig, runner: Callable = run_command,
                    rclone_present: Callable[[], bool] = installer.rclone_installed) -> BootstrapState:
    """Observe how far bootstrap has got on this machine."""
    line = scheduler.cron_line(config.bootstrap.schedule, config.path, config.log_file)
    return BootstrapState(
        tool_installed=rclone_present(),
        missing_packages=installer.missing_packages(config.bootstrap.packages, runner),
        schedule_registered=scheduler.is_registered(line, runner),
        unit_installed=systemd_unit.unit_installed(config.bootstrap.unit_dir, config.bootstrap.unit_name),
    )


def install_bootstrap_unit(config: MirrorConfig, runner: Callable = run_command) -> dict:
    """Install and start the oneshot unit; meant for the first-boot handler."""
    exec_start = scheduler.mirror_command(config.path, "bootstrap")
    return systemd_unit.install_unit(
        config.bootstrap.unit_dir,
        config.bootstrap.unit_name,
        exec_start,
        runner,
    )
