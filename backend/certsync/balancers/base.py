"""
Base load-balancer client interface for certificate pushes.
"""
from abc import ABC, abstractmethod
from typing import Optional

from ..models import CredentialMaterial, LoadBalancerTarget, PushResult


class LoadBalancerClient(ABC):
    """
    Abstract base class for load-balancer providers.

    Implementations install certificate material on one HTTPS listener.
    Pushes must be idempotent: sending identical material twice leaves the
    listener in the same state as sending it once.
    """

    @abstractmethod
    async def push_certificate(
        self,
        target: LoadBalancerTarget,
        material: CredentialMaterial,
    ) -> PushResult:
        """
        Install certificate material on the target listener.

        Transient failures are retried inside the client.

        Args:
            target: Balancer and HTTPS config to update
            material: Certificate chain and private key

        Returns:
            PushResult describing the accepted update

        Raises:
            PushRejectedError: If the provider permanently refused the update
            PushRetriesExhaustedError: If every attempt failed transiently
        """
        pass

    async def current_fingerprint(self, target: LoadBalancerTarget) -> Optional[str]:
        """
        Fingerprint of the certificate the target currently serves.

        Returns:
            Colon separated upper-case SHA-256 hex, or None if unknown
        """
        return None

    @abstractmethod
    async def verify_credentials(self, target: LoadBalancerTarget) -> tuple[bool, Optional[str]]:
        """
        Verify that the credentials can see the target balancer.

        Returns:
            Tuple of (success, error_message)
        """
        pass

    async def close(self) -> None:
        """Release pooled connections."""
        return None
