"""
Data model for the certificate sync pipeline.
"""
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .errors import SyncError, TriggerValidationError

# RFC 1123 label: namespaces must match this
_DNS_LABEL_RE = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
DNS_LABEL_MAX = 63
DNS_SUBDOMAIN_MAX = 253


def validate_namespace(value: str) -> str:
    """Validate a namespace is an RFC 1123 DNS label."""
    if not value:
        raise TriggerValidationError("namespace cannot be empty")
    if len(value) > DNS_LABEL_MAX or not _DNS_LABEL_RE.match(value):
        raise TriggerValidationError(f"namespace is not a valid DNS label: {value[:DNS_LABEL_MAX]!r}")
    return value


def validate_secret_name(value: str) -> str:
    """Validate a Secret name is an RFC 1123 DNS subdomain."""
    if not value:
        raise TriggerValidationError("secret name cannot be empty")
    if len(value) > DNS_SUBDOMAIN_MAX:
        raise TriggerValidationError("secret name is longer than 253 characters")
    labels = value.split(".")
    if not all(len(label) <= DNS_LABEL_MAX and _DNS_LABEL_RE.match(label) for label in labels):
        raise TriggerValidationError(f"secret name is not a valid DNS subdomain: {value[:DNS_LABEL_MAX]!r}")
    return value


@dataclass(frozen=True)
class TriggerRequest:
    """An inbound request to sync the certificate held in a Secret."""

    secret_name: str
    secret_namespace: str
    # Carried for logging only
    issuer: Optional[str] = None

    def validate(self) -> None:
        """Raise TriggerValidationError unless name and namespace are valid."""
        validate_namespace(self.secret_namespace)
        validate_secret_name(self.secret_name)

    @property
    def ref(self) -> str:
        return f"{self.secret_namespace}/{self.secret_name}"


@dataclass(frozen=True)
class CredentialMaterial:
    """Decoded certificate chain and private key read from a Secret."""

    certificate_pem: bytes = field(repr=False)
    private_key_pem: bytes = field(repr=False)
    namespace: str = ""
    name: str = ""
    # SHA-256 of the leaf certificate DER, colon separated upper-case hex
    fingerprint: Optional[str] = None

    @property
    def ref(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass(frozen=True)
class LoadBalancerTarget:
    """A NodeBalancer HTTPS config to receive certificate updates."""

    balancer_id: str
    https_config_id: str

    def __str__(self) -> str:
        return f"nodebalancer {self.balancer_id} config {self.https_config_id}"


@dataclass(frozen=True)
class PushResult:
    """Outcome of a successful push."""

    target: LoadBalancerTarget
    attempts: int = 1


class SyncStage(str, Enum):
    """Phase of a sync run."""

    VALIDATION = "validation"
    FETCH = "fetch"
    PUSH = "push"


@dataclass(frozen=True)
class SyncResult:
    """
    Outcome of one orchestration run.

    Either a success, or a failure carrying the stage that failed and the
    exception describing why.
    """

    success: bool
    stage: Optional[SyncStage] = None
    error: Optional[SyncError] = None
    # True when the balancer already served this certificate
    skipped: bool = False

    @classmethod
    def ok(cls, skipped: bool = False) -> "SyncResult":
        return cls(success=True, skipped=skipped)

    @classmethod
    def failure(cls, stage: SyncStage, error: SyncError) -> "SyncResult":
        return cls(success=False, stage=stage, error=error)

    @property
    def message(self) -> str:
        if self.success:
            return "certificate unchanged" if self.skipped else "certificate updated"
        return str(self.error) if self.error else "unknown error"
