"""GCP Pub/Sub publisher wrapper."""
import logging
from typing import Optional
from google.cloud import pubsub_v1

from ...errors import NotificationError
from .models import AlertEvent

logger = logging.getLogger(__name__)

PUBLISH_TIMEOUT_SECONDS = 30


def topic_path(topic: str, project_id: Optional[str] = None) -> str:
    """Expand a bare topic name to projects/{project}/topics/{topic}."""
    if topic.startswith("projects/") or not project_id:
        return topic
    return f"projects/{project_id}/topics/{topic}"


class PubSubPublisher:
    """Wrapper around the Pub/Sub publisher client."""

    def __init__(self, client: Optional[pubsub_v1.PublisherClient] = None, timeout: float = PUBLISH_TIMEOUT_SECONDS):
        self._client = client
        self.timeout = timeout

    @property
    def client(self) -> pubsub_v1.PublisherClient:
        """Lazy-initialize client."""
        if self._client is None:
            self._client = pubsub_v1.PublisherClient()
        return self._client

    def publish(self, event: AlertEvent) -> str:
        """
        Publish an alert and wait for the server to accept it.

        Returns:
            Server-assigned message id

        Raises:
            NotificationError: On any client, transport or timeout failure
        """
        try:
            future = self.client.publish(
                event.topic,
                event.body().encode("utf-8"),
                host=event.host_id,
                exit_code=str(event.exit_code),
            )
            return future.result(timeout=self.timeout)
        except Exception as e:
            raise NotificationError(f"Publish to {event.topic} failed: {e}") from e
