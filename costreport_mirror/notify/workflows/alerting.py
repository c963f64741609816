"""Best-effort failure alerting."""
import logging
import socket
from typing import Optional
from ..domains.models import AlertEvent
from ..domains.pubsub_client import PubSubPublisher
from ...errors import NotificationError

logger = logging.getLogger(__name__)


def should_alert(exit_code, topic: Optional[str]) -> bool:
    """True only for a well-formed non-zero exit code with a topic configured."""
    if not topic:
        return False
    if isinstance(exit_code, bool) or not isinstance(exit_code, int):
        return False
    return exit_code > 0


def notify_if_failed(
    exit_code,
    host_id: Optional[str],
    topic: Optional[str],
    message: Optional[str] = None,
    publisher: Optional[PubSubPublisher] = None,
) -> None:
    """
    Publish a failure alert when a run ended badly.

    Never raises and never changes the caller's exit code. A missing topic
    means alerting is switched off. Publish failures are logged.

    Args:
        exit_code: Final exit code of the run
        host_id: Host name to report; defaults to this machine's
        topic: Full Pub/Sub topic path, or None
        message: Extra detail, usually the failing step's error
    """
    if not should_alert(exit_code, topic):
        return

    event = AlertEvent(
        exit_code=exit_code,
        host_id=host_id or socket.gethostname(),
        message=message or "costreport-mirror run failed",
        topic=topic,
    )

    try:
        publisher = publisher or PubSubPublisher()
        message_id = publisher.publish(event)
        logger.info(f"Failure alert published to {topic} (message {message_id})")
    except NotificationError as e:
        logger.warning(f"Failure alert not delivered (exit code {exit_code}): {e}")
    except Exception as e:  # a broken client must not mask the exit code
        logger.warning(f"Alert publisher error (exit code {exit_code}): {e}")
