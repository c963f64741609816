"""GCP Secret Manager client wrapper."""
import logging
from typing import Optional
from google.cloud import secretmanager

from ...errors import CredentialFetchError, CredentialFormatError
from .models import SecretReference

logger = logging.getLogger(__name__)


class GCPSecretClient:
    """Wrapper around GCP Secret Manager client.

    The underlying client picks up Application Default Credentials, which
    on a VM resolve to the attached service account (no stored key).
    """

    def __init__(self, client: Optional[secretmanager.SecretManagerServiceClient] = None):
        self._client = client

    @property
    def client(self) -> secretmanager.SecretManagerServiceClient:
        """Lazy-initialize client."""
        if self._client is None:
            self._client = secretmanager.SecretManagerServiceClient()
        return self._client

    def fetch_payload(self, ref: SecretReference) -> bytes:
        """
        Fetch the raw payload of a secret version.

        Args:
            ref: Secret to fetch

        Returns:
            Payload bytes exactly as stored

        Raises:
            CredentialFetchError: On any transport, auth or API failure
            CredentialFormatError: If the response carries no payload data
        """
        try:
            response = self.client.access_secret_version(request={"name": ref.resource_name})
        except Exception as e:
            raise CredentialFetchError(f"Secret fetch failed for {ref.secret_name}: {e}") from e

        payload = getattr(response, "payload", None)
        data = getattr(payload, "data", None)
        if not data:
            raise CredentialFormatError(f"Secret {ref.secret_name} has no payload data")
        return data
