"""Workflow for fetching run credentials from the secret store."""
import base64
import binascii
import logging
import re
from typing import Dict, Mapping, Optional
from ..domains.models import Credential, SecretReference
from ..domains.gcp_client import GCPSecretClient
from ...errors import CredentialFormatError

logger = logging.getLogger(__name__)

# Padding the store or transport may add around (or inside) the value.
_WHITESPACE = re.compile(r"[ \t\r\n]")


def strip_whitespace(value: str) -> str:
    """Remove every space, tab, CR and LF, wherever it appears."""
    return _WHITESPACE.sub("", value)


def decode_payload(secret_name: str, data: bytes) -> str:
    """
    Decode a base64 secret payload into its trimmed text value.

    Args:
        secret_name: Used in error messages only
        data: Payload bytes as returned by the store

    Returns:
        Decoded value with all whitespace removed

    Raises:
        CredentialFormatError: If the payload is not base64 text or the
            decoded bytes are not UTF-8
    """
    try:
        encoded = strip_whitespace(data.decode("ascii"))
        if not encoded:
            raise CredentialFormatError(f"Secret {secret_name} is empty")
        decoded = base64.b64decode(encoded, validate=True).decode("UTF-8")
    except (UnicodeDecodeError, binascii.Error) as e:
        raise CredentialFormatError(f"Secret {secret_name} is not valid base64 text: {e}") from e

    value = strip_whitespace(decoded)
    if not value:
        raise CredentialFormatError(f"Secret {secret_name} decodes to an empty value")
    return value


def fetch_credential(ref: SecretReference, client: Optional[GCPSecretClient] = None) -> Credential:
    """
    Fetch one secret and return it as a Credential.

    Single attempt, no caching: every run fetches fresh values and keeps
    them in memory only.

    Raises:
        CredentialFetchError: Secret store unreachable or access denied
        CredentialFormatError: Payload missing or malformed
    """
    client = client or GCPSecretClient()
    data = client.fetch_payload(ref)
    credential = Credential(name=ref.secret_name, value=decode_payload(ref.secret_name, data))
    logger.info(f"Fetched secret {ref.secret_name} ({ref.version})")
    return credential


def fetch_credentials(
    refs: Mapping[str, SecretReference],
    client: Optional[GCPSecretClient] = None,
) -> Dict[str, Credential]:
    """
    Fetch several secrets in order, stopping at the first failure.

    Args:
        refs: Environment variable name -> secret to fetch for it

    Returns:
        Environment variable name -> Credential
    """
    client = client or GCPSecretClient()
    return {env_name: fetch_credential(ref, client) for env_name, ref in refs.items()}
