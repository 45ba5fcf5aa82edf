"""
Exception hierarchy for the certificate sync pipeline.
"""
from typing import Optional


class SyncError(Exception):
    """Base class for certificate sync failures."""

    pass


class TriggerValidationError(SyncError):
    """The trigger does not identify a valid Secret."""

    pass


class FetchError(SyncError):
    """Reading the Secret from the cluster failed."""

    pass


class SecretNotFoundError(FetchError):
    """The Secret does not exist (yet)."""

    pass


class SecretMalformedError(FetchError):
    """The Secret exists but does not hold a usable certificate/key pair."""

    pass


class ClusterUnavailableError(FetchError):
    """The cluster API could not be reached or refused the request."""

    pass


class PushError(SyncError):
    """Pushing certificate material to the load balancer failed."""

    pass


class PushRejectedError(PushError):
    """The provider permanently refused the update (4xx other than 429)."""

    def __init__(self, reason: str, status_code: Optional[int] = None):
        super().__init__(reason)
        self.reason = reason
        self.status_code = status_code


class PushRetriesExhaustedError(PushError):
    """Every attempt failed with a transient error."""

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts
