"""Domain models for secret retrieval."""
from dataclasses import dataclass, field
from enum import Enum


class AuthMode(str, Enum):
    """How the secret store and notification clients authenticate."""

    AMBIENT = "ambient"
    SERVICE_ACCOUNT = "service_account"


@dataclass(frozen=True)
class SecretReference:
    """Points at one stored secret; built from configuration only."""
    secret_name: str
    project_id: str
    auth_mode: AuthMode = AuthMode.AMBIENT
    version: str = "latest"

    @property
    def resource_name(self) -> str:
        return f"projects/{self.project_id}/secrets/{self.secret_name}/versions/{self.version}"


@dataclass(frozen=True)
class Credential:
    """A decoded secret value, kept in memory for one run only."""
    name: str
    value: str = field(repr=False)

    def __repr__(self) -> str:
        return f"Credential(name={self.name!r}, value='***')"
