"""Configuration loader for costreport-mirror."""
import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
import yaml

from .errors import ConfigError
from .secrets.domains.models import AuthMode, SecretReference
from .sync.domains.models import SyncJobDescriptor

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "COSTREPORT_MIRROR_CONFIG"
AUTH_MODE_ENV_VAR = "COSTREPORT_MIRROR_AUTH_MODE"
DEFAULT_CONFIG_PATH = Path("/etc/costreport-mirror/config.yml")

DEFAULT_LOCK_FILE = "/var/lock/costreport-mirror.lock"
DEFAULT_SCHEDULE = "0 */6 * * *"
DEFAULT_PACKAGES = ("curl", "unzip", "cron")
DEFAULT_RCLONE_INSTALL_URL = "https://rclone.org/install.sh"


@dataclass(frozen=True)
class AuthenticationConfig:
    mode: AuthMode = AuthMode.AMBIENT
    service_account_path: Optional[str] = None


@dataclass(frozen=True)
class BootstrapConfig:
    packages: Tuple[str, ...] = DEFAULT_PACKAGES
    readiness_host: str = "metadata.google.internal"
    readiness_port: int = 80
    min_delay_seconds: float = 0.0
    max_wait_seconds: float = 300.0
    poll_interval_seconds: float = 5.0
    schedule: str = DEFAULT_SCHEDULE
    unit_dir: str = "/etc/systemd/system"
    unit_name: str = "costreport-mirror-bootstrap.service"
    rclone_install_url: str = DEFAULT_RCLONE_INSTALL_URL


@dataclass(frozen=True)
class MirrorConfig:
    """Validated, read-only view of the config file."""
    path: str
    project_id: str
    authentication: AuthenticationConfig
    secrets: Dict[str, SecretReference]
    job: SyncJobDescriptor
    topic: Optional[str] = None
    lock_file: str = DEFAULT_LOCK_FILE
    log_file: Optional[str] = None
    log_level: str = "INFO"
    bootstrap: BootstrapConfig = field(default_factory=BootstrapConfig)


# Environment variable each configured secret is exported as for rclone.
SECRET_ENV_NAMES = {
    "access_key_id": "AWS_ACCESS_KEY_ID",
    "secret_access_key": "AWS_SECRET_ACCESS_KEY",
}


def get_config_path(override: Optional[str] = None) -> str:
    """
    Resolve the config file path.

    Priority order:
    1. Explicit override (the CLI --config option)
    2. COSTREPORT_MIRROR_CONFIG environment variable
    3. Default location: /etc/costreport-mirror/config.yml

    Returns:
        Path to the config file (not checked for existence)
    """
    if override:
        return str(override)

    env_path = os.getenv(CONFIG_ENV_VAR)
    if env_path:
        logger.debug(f"Using config path from {CONFIG_ENV_VAR}: {env_path}")
        return env_path

    return str(DEFAULT_CONFIG_PATH)


def _read_yaml(config_path: str) -> Dict[str, Any]:
    if not os.path.exists(config_path):
        raise ConfigError(
            f"Configuration file not found at: {config_path}\n"
            f"Create it, point {CONFIG_ENV_VAR} at it, or pass --config."
        )

    try:
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML config at {config_path}: {e}")
    except OSError as e:
        raise ConfigError(f"Failed to read config file at {config_path}: {e}")

    if not config:
        raise ConfigError(f"Config file at {config_path} is empty")
    if not isinstance(config, dict):
        raise ConfigError(f"Config file at {config_path} must contain a mapping")

    return config


def _section(config: Dict[str, Any], name: str, required: bool = True) -> Dict[str, Any]:
    value = config.get(name)
    if value is None:
        if required:
            raise ConfigError(f"Missing '{name}' section in config")
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{name}' section must be a mapping")
    return value


def _positive_int(section: Dict[str, Any], key: str, default: int, prefix: str) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ConfigError(f"'{prefix}.{key}' must be a positive integer, got: {value!r}")
    return value


def _non_negative_number(section: Dict[str, Any], key: str, default: float, prefix: str) -> float:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ConfigError(f"'{prefix}.{key}' must be a non-negative number, got: {value!r}")
    return float(value)


def _load_authentication(config: Dict[str, Any]) -> AuthenticationConfig:
    auth = _section(config, "authentication", required=False)

    raw_mode = os.getenv(AUTH_MODE_ENV_VAR) or auth.get("type", AuthMode.AMBIENT.value)
    try:
        mode = AuthMode(raw_mode)
    except ValueError:
        raise ConfigError(
            f"Unsupported authentication type: {raw_mode}\n"
            f"Supported types: {', '.join(m.value for m in AuthMode)}"
        )

    service_account_path = auth.get("service_account_path")
    if mode is AuthMode.SERVICE_ACCOUNT:
        if not service_account_path:
            raise ConfigError(
                "Missing 'authentication.service_account_path' in config\n"
                "Required when authentication.type is 'service_account'."
            )
        if not os.path.isfile(service_account_path):
            raise ConfigError(f"Service account file not found at: {service_account_path}")

    return AuthenticationConfig(mode=mode, service_account_path=service_account_path)


def _load_project_id(config: Dict[str, Any]) -> str:
    gcp_project_env = os.getenv("GCP_PROJECT")
    if gcp_project_env:
        logger.debug(f"Using GCP_PROJECT from environment: {gcp_project_env}")
        return gcp_project_env

    project_id = _section(config, "gcp").get("project_id")
    if not project_id:
        raise ConfigError("Missing 'gcp.project_id' in config")
    return str(project_id)


def _load_secrets(config: Dict[str, Any], project_id: str, mode: AuthMode) -> Dict[str, SecretReference]:
    section = _section(config, "secrets")
    refs = {}
    for key, env_name in SECRET_ENV_NAMES.items():
        secret_name = section.get(key)
        if not secret_name:
            raise ConfigError(f"Missing 'secrets.{key}' in config")
        refs[env_name] = SecretReference(
            secret_name=str(secret_name),
            project_id=project_id,
            auth_mode=mode,
            version=str(section.get("version", "latest")),
        )
    return refs


def _load_job(config: Dict[str, Any], log_file: Optional[str]) -> SyncJobDescriptor:
    section = _section(config, "sync")

    for key in ("source", "destination"):
        address = section.get(key)
        if not address or ":" not in str(address):
            raise ConfigError(
                f"'sync.{key}' must be an rclone address 'remote:container[/prefix]', got: {address!r}"
            )

    checksum = section.get("checksum", True)
    if checksum is not True:
        # Modification times are not comparable across providers.
        raise ConfigError("'sync.checksum' cannot be disabled")

    return SyncJobDescriptor(
        source=str(section["source"]),
        destination=str(section["destination"]),
        checksum=True,
        chunk_size=str(section.get("chunk_size", "64M")),
        upload_concurrency=_positive_int(section, "upload_concurrency", 4, "sync"),
        transfers=_positive_int(section, "transfers", 4, "sync"),
        prune=bool(section.get("prune", False)),
        log_file=log_file,
        verbose=bool(section.get("verbose", True)),
        rclone_config=section.get("rclone_config"),
    )


def _load_bootstrap(config: Dict[str, Any]) -> BootstrapConfig:
    section = _section(config, "bootstrap", required=False)
    defaults = BootstrapConfig()

    packages = section.get("packages", list(defaults.packages))
    if not isinstance(packages, list) or not all(isinstance(p, str) for p in packages):
        raise ConfigError("'bootstrap.packages' must be a list of package names")

    return BootstrapConfig(
        packages=tuple(packages),
        readiness_host=str(section.get("readiness_host", defaults.readiness_host)),
        readiness_port=_positive_int(section, "readiness_port", defaults.readiness_port, "bootstrap"),
        min_delay_seconds=_non_negative_number(section, "min_delay_seconds", defaults.min_delay_seconds, "bootstrap"),
        max_wait_seconds=_non_negative_number(section, "max_wait_seconds", defaults.max_wait_seconds, "bootstrap"),
        poll_interval_seconds=_non_negative_number(
            section, "poll_interval_seconds", defaults.poll_interval_seconds, "bootstrap"
        ),
        schedule=str(section.get("schedule", defaults.schedule)),
        unit_dir=str(section.get("unit_dir", defaults.unit_dir)),
        unit_name=str(section.get("unit_name", defaults.unit_name)),
        rclone_install_url=str(section.get("rclone_install_url", defaults.rclone_install_url)),
    )


def load_config(path: Optional[str] = None) -> MirrorConfig:
    """
    Load and validate configuration from YAML file.

    Args:
        path: Explicit config path; resolved with get_config_path() if omitted

    Returns:
        MirrorConfig with defaults applied

    Raises:
        ConfigError: If config file is missing, invalid, or references a
            service account file that doesn't exist
    """
    config_path = get_config_path(path)
    config = _read_yaml(config_path)

    authentication = _load_authentication(config)
    project_id = _load_project_id(config)

    logging_section = _section(config, "logging", required=False)
    log_file = logging_section.get("file")
    log_level = str(logging_section.get("level", "INFO")).upper()
    if log_level not in ("DEBUG", "INFO", "WARNING", "ERROR"):
        raise ConfigError(f"Unsupported logging.level: {log_level}")

    topic = _section(config, "notify", required=False).get("topic") or None

    mirror_config = MirrorConfig(
        path=config_path,
        project_id=project_id,
        authentication=authentication,
        secrets=_load_secrets(config, project_id, authentication.mode),
        job=_load_job(config, log_file),
        topic=topic,
        lock_file=str(_section(config, "run", required=False).get("lock_file", DEFAULT_LOCK_FILE)),
        log_file=log_file,
        log_level=log_level,
        bootstrap=_load_bootstrap(config),
    )

    logger.info(f"Configuration loaded successfully from {config_path}")
    logger.debug(f"Using project ID: {project_id}")
    logger.debug(f"Authentication mode: {authentication.mode.value}")

    return mirror_config


def apply_authentication(auth: AuthenticationConfig) -> None:
    """
    Point Google client libraries at the configured identity.

    Ambient mode leaves Application Default Credentials alone so the VM's
    attached service account is used. Service account mode sets
    GOOGLE_APPLICATION_CREDENTIALS to the key file.
    """
    if auth.mode is AuthMode.SERVICE_ACCOUNT and auth.service_account_path:
        os.environ['GOOGLE_APPLICATION_CREDENTIALS'] = auth.service_account_path
        logger.info(f"Set GOOGLE_APPLICATION_CREDENTIALS from config: {auth.service_account_path}")


def describe(config: MirrorConfig) -> List[str]:
    """Human-readable summary lines, without secret values."""
    lines = [
        f"Config path: {config.path}",
        f"Project: {config.project_id}",
        f"Authentication: {config.authentication.mode.value}",
        f"Source: {config.job.source}",
        f"Destination: {config.job.destination}",
        f"Prune destination: {'yes' if config.job.prune else 'no'}",
        f"Chunk size: {config.job.chunk_size}",
        f"Upload concurrency: {config.job.upload_concurrency}",
        f"Alert topic: {config.topic or '(alerting disabled)'}",
        f"Log file: {config.log_file or '(none)'}",
        f"Lock file: {config.lock_file}",
        f"Schedule: {config.bootstrap.schedule}",
    ]
    for env_name, ref in config.secrets.items():
        lines.append(f"Secret {env_name}: {ref.secret_name} ({ref.version})")
    return lines
