"""Workflow for one scheduled mirror run.

Steps, in order, stopping at the first failure:

    acquire lock -> fetch AWS_ACCESS_KEY_ID -> fetch AWS_SECRET_ACCESS_KEY -> sync

Every non-zero outcome alerts exactly once, including a run refused because
another one still holds the lock. Once the lock is held the alert hook runs
in `finally` with the final exit code.
"""
import logging
from typing import Dict, Optional
from ..domains.run_lock import RunLock
from ...config_loader import MirrorConfig
from ...errors import MirrorError
from ...notify.domains.pubsub_client import PubSubPublisher, topic_path
from ...notify.workflows.alerting import notify_if_failed
from ...secrets.domains.gcp_client import GCPSecretClient
from ...secrets.domains.models import Credential
from ...secrets.workflows.secret_operations import fetch_credential
from ...sync.domains.rclone_client import RcloneClient
from ...sync.workflows.mirror import sync

logger = logging.getLogger(__name__)

UNEXPECTED_ERROR_EXIT_CODE = 1


def run(
    config: MirrorConfig,
    secret_client: Optional[GCPSecretClient] = None,
    rclone_client: Optional[RcloneClient] = None,
    publisher: Optional[PubSubPublisher] = None,
    host_id: Optional[str] = None,
) -> int:
    """
    Fetch credentials and mirror once.

    Args:
        config: Loaded configuration
        secret_client, rclone_client, publisher: Injected collaborators
        host_id: Host name reported in alerts

    Returns:
        0 on success, otherwise the failing step's exit code
    """
    topic = topic_path(config.topic, config.project_id) if config.topic else None
    lock = RunLock(config.lock_file)
    try:
        lock.acquire()
    except MirrorError as e:
        logger.error(f"Run failed at lock (exit code {e.exit_code}): {e}")
        notify_if_failed(e.exit_code, host_id, topic, message=f"lock failed: {e}", publisher=publisher)
        return e.exit_code

    exit_code = UNEXPECTED_ERROR_EXIT_CODE
    detail = "run interrupted"
    step = "start"
    credentials: Dict[str, Credential] = {}
    try:
        logger.info(f"Run started: {config.job.source} -> {config.job.destination}")
        secret_client = secret_client or GCPSecretClient()

        for env_name, ref in config.secrets.items():
            step = f"fetch {env_name}"
            credentials[env_name] = fetch_credential(ref, secret_client)

        step = "sync"
        sync(config.job, credentials, rclone_client)

        exit_code = 0
        logger.info("Run finished successfully")
    except MirrorError as e:
        exit_code = e.exit_code
        detail = f"{step} failed: {e}"
        logger.error(f"Run failed at {step} (exit code {exit_code}): {e}")
    except Exception as e:
        exit_code = UNEXPECTED_ERROR_EXIT_CODE
        detail = f"{step} failed unexpectedly: {e}"
        logger.error(f"Run failed unexpectedly at {step}: {e}", exc_info=True)
    finally:
        credentials.clear()
        lock.release()
        notify_if_failed(exit_code, host_id, topic, message=detail, publisher=publisher)

    return exit_code
