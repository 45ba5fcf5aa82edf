"""
Sync Orchestrator: validate a trigger, fetch the Secret, push to the balancer.

Each run is an independent, stateless transaction. Nothing in the cluster
is ever modified, so a failed run has no effect other than "no update was
applied" and can safely be retried by the caller.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from .balancers.base import LoadBalancerClient
from .errors import (
    ClusterUnavailableError,
    FetchError,
    PushError,
    SecretNotFoundError,
    SyncError,
    TriggerValidationError,
)
from .models import (
    CredentialMaterial,
    LoadBalancerTarget,
    SyncResult,
    SyncStage,
    TriggerRequest,
)
from .secret_fetcher import SecretFetcher


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchRetryPolicy:
    """Bounded retry for Secrets that are not readable yet."""

    # Total attempts, including the first
    max_attempts: int = 3
    # Seconds between attempts
    delay: float = 0.5


# Errors worth retrying: issuance can race the trigger, and the API can blip
RETRYABLE_FETCH_ERRORS = (SecretNotFoundError, ClusterUnavailableError)


class SyncOrchestrator:
    """
    Runs the validate -> fetch -> push pipeline for one trigger at a time.

    Holds no mutable state, so a single instance serves concurrent requests.
    """

    def __init__(
        self,
        fetcher: SecretFetcher,
        balancer: LoadBalancerClient,
        target: LoadBalancerTarget,
        fetch_policy: Optional[FetchRetryPolicy] = None,
        skip_unchanged: bool = False,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.fetcher = fetcher
        self.balancer = balancer
        self.target = target
        self.fetch_policy = fetch_policy or FetchRetryPolicy()
        self.skip_unchanged = skip_unchanged
        self._sleep = sleep

    async def sync(self, request: TriggerRequest) -> SyncResult:
        """
        Sync the certificate referenced by a trigger.

        Never raises; every failure is reported through the SyncResult.
        """
        logger.info(
            "[SYNC] Processing certificate request for %s (issuer=%s)",
            request.ref, request.issuer or "-",
        )

        try:
            request.validate()
        except TriggerValidationError as e:
            logger.error("[SYNC] Validation error: %s", e)
            return SyncResult.failure(SyncStage.VALIDATION, e)

        try:
            material = await self._fetch_with_retry(request)
        except FetchError as e:
            logger.error("[SYNC] Failed to retrieve certificate data for %s: %s", request.ref, e)
            return SyncResult.failure(SyncStage.FETCH, e)
        except Exception as e:
            logger.exception("[SYNC] Unexpected error fetching %s", request.ref)
            return SyncResult.failure(SyncStage.FETCH, FetchError(f"unexpected error: {e}"))

        if self.skip_unchanged and await self._is_unchanged(material):
            logger.info(
                "[SYNC] %s already serves certificate %s from %s, skipping push",
                self.target, material.fingerprint, request.ref,
            )
            return SyncResult.ok(skipped=True)

        try:
            result = await self.balancer.push_certificate(self.target, material)
        except PushError as e:
            logger.error("[SYNC] Failed to update %s: %s", self.target, e)
            return SyncResult.failure(SyncStage.PUSH, e)
        except Exception as e:
            logger.exception("[SYNC] Unexpected error pushing to %s", self.target)
            return SyncResult.failure(SyncStage.PUSH, PushError(f"unexpected error: {e}"))

        logger.info(
            "[SYNC] Successfully updated certificate for %s on %s (%s push attempt(s))",
            request.ref, self.target, result.attempts,
        )
        return SyncResult.ok()

    async def _fetch_with_retry(self, request: TriggerRequest) -> CredentialMaterial:
        """Fetch the Secret, retrying not-found and unavailable errors up to the bound."""
        policy = self.fetch_policy
        last_error: Optional[SyncError] = None

        for attempt in range(1, policy.max_attempts + 1):
            try:
                return await self.fetcher.fetch(request.secret_namespace, request.secret_name)
            except RETRYABLE_FETCH_ERRORS as e:
                last_error = e
                logger.warning(
                    "[SYNC] Fetch of %s failed (attempt %s/%s): %s",
                    request.ref, attempt, policy.max_attempts, e,
                )
                if attempt < policy.max_attempts:
                    await self._sleep(policy.delay)

        raise last_error

    async def _is_unchanged(self, material: CredentialMaterial) -> bool:
        if not material.fingerprint:
            return False
        try:
            current = await self.balancer.current_fingerprint(self.target)
        except Exception as e:
            logger.debug("[SYNC] Could not read current fingerprint: %s", e)
            return False
        return current is not None and current.upper() == material.fingerprint.upper()
