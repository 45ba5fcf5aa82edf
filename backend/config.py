"""
Process configuration settings.

Loads the webhook configuration from environment variables once at startup.
The resulting settings object is immutable and is handed to the sync
components at construction time.
"""
import logging
import os
import re
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, SecretStr, ValidationError, field_validator


logger = logging.getLogger(__name__)

# Linode object IDs are positive integers
_LINODE_ID_RE = re.compile(r"^[1-9][0-9]*$")

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Environment variable -> settings field
ENV_FIELDS = {
    "LINODE_TOKEN": "linode_token",
    "NODEBALANCER_ID": "nodebalancer_id",
    "HTTPS_CONFIG_ID": "https_config_id",
    "PORT": "port",
    "LOG_LEVEL": "log_level",
    "WEBHOOK_PATH": "webhook_path",
    "LINODE_API_URL": "linode_api_url",
    "FETCH_MAX_ATTEMPTS": "fetch_max_attempts",
    "FETCH_RETRY_DELAY": "fetch_retry_delay",
    "PUSH_MAX_ATTEMPTS": "push_max_attempts",
    "PUSH_BACKOFF_BASE": "push_backoff_base",
    "PUSH_BACKOFF_MAX": "push_backoff_max",
    "KUBE_TIMEOUT": "kube_timeout",
    "PUSH_TIMEOUT": "push_timeout",
    "CONNECT_TIMEOUT": "connect_timeout",
    "SKIP_UNCHANGED": "skip_unchanged",
    "MAX_PAYLOAD_BYTES": "max_payload_bytes",
}

REQUIRED_ENV = ("LINODE_TOKEN", "NODEBALANCER_ID", "HTTPS_CONFIG_ID")


class ConfigError(Exception):
    """Missing or invalid process configuration."""

    pass


class WebhookSettings(BaseModel):
    """Webhook process configuration."""

    model_config = ConfigDict(frozen=True)

    # Linode API credentials and target
    linode_token: SecretStr
    nodebalancer_id: str
    https_config_id: str
    linode_api_url: str = "https://api.linode.com/v4"

    # HTTP server
    port: int = 8080
    log_level: str = "INFO"
    webhook_path: str = "/update-nodebalancer-cert"
    max_payload_bytes: int = 256 * 1024

    # Secret fetch retry policy (total attempts, seconds between attempts)
    fetch_max_attempts: int = 3
    fetch_retry_delay: float = 0.5

    # Push retry policy (total attempts, exponential backoff in seconds)
    push_max_attempts: int = 3
    push_backoff_base: float = 0.5
    push_backoff_max: float = 8.0

    # Per-call timeouts in seconds
    kube_timeout: float = 10.0
    push_timeout: float = 30.0
    connect_timeout: float = 10.0

    # Skip the push when the balancer already serves the same certificate
    skip_unchanged: bool = True

    @field_validator("linode_token")
    @classmethod
    def validate_token(cls, v: SecretStr) -> SecretStr:
        if not v.get_secret_value().strip():
            raise ValueError("must not be empty")
        return v

    @field_validator("nodebalancer_id", "https_config_id")
    @classmethod
    def validate_linode_id(cls, v: str) -> str:
        v = v.strip()
        if not _LINODE_ID_RE.match(v):
            raise ValueError("must be a positive integer ID")
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not 1 <= v <= 65535:
            raise ValueError("must be in 1-65535")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.strip().upper()
        if v not in _LOG_LEVELS:
            raise ValueError(f"must be one of {', '.join(_LOG_LEVELS)}")
        return v

    @field_validator("webhook_path")
    @classmethod
    def validate_webhook_path(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith("/"):
            v = "/" + v
        if v in ("/", "/health", "/health/deep", "/metrics"):
            raise ValueError("collides with a built-in route")
        return v

    @field_validator("linode_api_url")
    @classmethod
    def validate_api_url(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if not v.startswith(("https://", "http://")):
            raise ValueError("must be an http(s) URL")
        return v

    @field_validator("fetch_max_attempts", "push_max_attempts")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @field_validator(
        "fetch_retry_delay",
        "push_backoff_base",
        "push_backoff_max",
    )
    @classmethod
    def validate_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError("must not be negative")
        return v

    @field_validator("kube_timeout", "push_timeout", "connect_timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @field_validator("max_payload_bytes")
    @classmethod
    def validate_payload_limit(cls, v: int) -> int:
        if v < 1024:
            raise ValueError("must be at least 1024")
        return v


def load_settings(environ: Optional[Mapping[str, str]] = None) -> WebhookSettings:
    """
    Build settings from environment variables.

    Args:
        environ: Mapping to read from (defaults to os.environ)

    Returns:
        Validated, immutable WebhookSettings

    Raises:
        ConfigError: If a required variable is missing or any value is invalid
    """
    if environ is None:
        environ = os.environ

    missing = [name for name in REQUIRED_ENV if not environ.get(name, "").strip()]
    if missing:
        raise ConfigError(f"Missing required environment variables: {', '.join(missing)}")

    data = {}
    for env_name, field_name in ENV_FIELDS.items():
        value = environ.get(env_name)
        if value is not None and value.strip() != "":
            data[field_name] = value.strip()

    try:
        settings = WebhookSettings(**data)
    except ValidationError as e:
        problems = []
        field_to_env = {v: k for k, v in ENV_FIELDS.items()}
        for err in e.errors():
            field = str(err["loc"][0]) if err.get("loc") else "?"
            problems.append(f"{field_to_env.get(field, field)}: {err['msg']}")
        raise ConfigError("Invalid configuration: " + "; ".join(problems)) from None

    logger.info(
        "[CONFIG] Loaded settings: nodebalancer=%s https_config=%s port=%s path=%s",
        settings.nodebalancer_id, settings.https_config_id, settings.port, settings.webhook_path,
    )
    return settings
