"""
Linode NodeBalancer client for pushing TLS certificates.
"""
import asyncio
import logging
import re
from typing import Optional

import httpx

from ..errors import PushRejectedError, PushRetriesExhaustedError
from ..models import CredentialMaterial, LoadBalancerTarget, PushResult
from .base import LoadBalancerClient


logger = logging.getLogger(__name__)

# NodeBalancer and config IDs are positive integers
_LINODE_ID_RE = re.compile(r"^[1-9][0-9]*$")


def _validate_linode_id(value: str, label: str) -> str:
    """Validate a Linode ID before it is used in a URL path."""
    if not _LINODE_ID_RE.match(value):
        raise PushRejectedError(f"Invalid {label} format")
    return value


def _is_transient(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


def _parse_retry_after(response: httpx.Response) -> Optional[float]:
    """Seconds from a numeric Retry-After header, if present."""
    value = response.headers.get("Retry-After")
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def _error_reason(response: httpx.Response) -> str:
    """Summarize a Linode error response without echoing request data."""
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict) and data.get("errors"):
        reasons = []
        for err in data["errors"]:
            reason = err.get("reason", "Unknown error")
            if err.get("field"):
                reason = f"{err['field']}: {reason}"
            reasons.append(reason)
        return f"HTTP {response.status_code}: " + "; ".join(reasons)
    return f"HTTP {response.status_code}: {response.reason_phrase}"


class LinodeNodeBalancerClient(LoadBalancerClient):
    """
    Linode API v4 implementation of the load-balancer client.

    Updates an existing NodeBalancer config with
    ``PUT /nodebalancers/{id}/configs/{config_id}``. Requires a personal
    access token with NodeBalancers read/write scope.
    """

    BASE_URL = "https://api.linode.com/v4"

    def __init__(
        self,
        api_token: str,
        base_url: str = BASE_URL,
        max_attempts: int = 3,
        backoff_base: float = 0.5,
        backoff_max: float = 8.0,
        timeout: float = 30.0,
        connect_timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the Linode client.

        Args:
            api_token: Linode personal access token
            base_url: API base URL
            max_attempts: Total attempts per push, including the first
            backoff_base: Delay before the second attempt, doubled each retry
            backoff_max: Upper bound for any single delay
            timeout: Per-request timeout in seconds
            connect_timeout: Connection timeout in seconds
            transport: Optional httpx transport (tests use MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.max_attempts = max(1, max_attempts)
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self._headers = {
            "Authorization": f"Bearer {api_token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        self._timeout = httpx.Timeout(timeout, connect=connect_timeout)
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazily create the pooled httpx client."""
        if self._http is None:
            self._http = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._headers,
                timeout=self._timeout,
                transport=self._transport,
                limits=httpx.Limits(max_keepalive_connections=10, keepalive_expiry=60.0),
            )
        return self._http

    async def close(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    def _config_path(self, target: LoadBalancerTarget) -> str:
        # Build path from validated components only
        balancer_id = _validate_linode_id(target.balancer_id, "nodebalancer_id")
        config_id = _validate_linode_id(target.https_config_id, "https_config_id")
        return f"/nodebalancers/{balancer_id}/configs/{config_id}"

    def backoff_delay(self, attempt: int, retry_after: Optional[float] = None) -> float:
        """Delay after a failed attempt (1-based), honouring Retry-After up to the cap."""
        delay = self.backoff_base * (2 ** (attempt - 1))
        if retry_after is not None:
            delay = max(delay, retry_after)
        return min(delay, self.backoff_max)

    async def push_certificate(
        self,
        target: LoadBalancerTarget,
        material: CredentialMaterial,
    ) -> PushResult:
        path = self._config_path(target)
        payload = {
            "protocol": "https",
            "ssl_cert": material.certificate_pem.decode("utf-8"),
            "ssl_key": material.private_key_pem.decode("utf-8"),
        }

        logger.info("[LINODE] Updating HTTPS config on %s", target)
        last_error = "no attempt made"

        for attempt in range(1, self.max_attempts + 1):
            retry_after = None
            try:
                resp = await self.client.put(path, json=payload)
            except httpx.TransportError as e:
                # Timeouts are TransportErrors too; the update may or may not
                # have landed, which is safe because the PUT is idempotent
                last_error = f"{type(e).__name__}: {e}"
            else:
                if resp.is_success:
                    logger.info(
                        "[LINODE] Certificate installed on %s (attempt %s/%s)",
                        target, attempt, self.max_attempts,
                    )
                    return PushResult(target=target, attempts=attempt)

                reason = _error_reason(resp)
                if not _is_transient(resp.status_code):
                    logger.error("[LINODE] Update rejected for %s: %s", target, reason)
                    raise PushRejectedError(reason, status_code=resp.status_code)

                last_error = reason
                retry_after = _parse_retry_after(resp)

            logger.warning(
                "[LINODE] Update failed (attempt %s/%s): %s",
                attempt, self.max_attempts, last_error,
            )
            if attempt < self.max_attempts:
                delay = self.backoff_delay(attempt, retry_after)
                logger.debug("[LINODE] Retrying after %.2fs", delay)
                await asyncio.sleep(delay)

        raise PushRetriesExhaustedError(
            f"Failed to update {target} after {self.max_attempts} attempts: {last_error}",
            attempts=self.max_attempts,
        )

    async def current_fingerprint(self, target: LoadBalancerTarget) -> Optional[str]:
        """Read ``ssl_fingerprint`` from the config; any failure yields None."""
        try:
            resp = await self.client.get(self._config_path(target))
            if not resp.is_success:
                logger.debug("[LINODE] Config lookup returned %s", resp.status_code)
                return None
            fingerprint = resp.json().get("ssl_fingerprint")
        except (httpx.HTTPError, ValueError, PushRejectedError) as e:
            logger.debug("[LINODE] Config lookup failed: %s", e)
            return None
        if not fingerprint:
            return None
        return str(fingerprint).upper()

    async def verify_credentials(self, target: LoadBalancerTarget) -> tuple[bool, Optional[str]]:
        """Verify the token can read the target NodeBalancer."""
        try:
            balancer_id = _validate_linode_id(target.balancer_id, "nodebalancer_id")
            resp = await self.client.get(f"/nodebalancers/{balancer_id}")
            if resp.is_success:
                return True, None
            return False, f"Linode API responded with status: {resp.status_code}"
        except PushRejectedError as e:
            return False, str(e)
        except Exception as e:
            return False, f"Failed to connect to Linode API: {e}"
