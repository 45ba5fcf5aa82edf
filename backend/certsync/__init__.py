"""
Certificate sync pipeline.

Bridges cert-manager issuance events to a load balancer's TLS config:
- Secret Fetcher reads and validates ``tls.crt``/``tls.key`` from the cluster
- Load-balancer clients push the pair to the provider with bounded retries
- Sync Orchestrator ties the two together and reports a SyncResult
"""

from .balancers import LinodeNodeBalancerClient, LoadBalancerClient, get_balancer_client
from .errors import (
    ClusterUnavailableError,
    FetchError,
    PushError,
    PushRejectedError,
    PushRetriesExhaustedError,
    SecretMalformedError,
    SecretNotFoundError,
    SyncError,
    TriggerValidationError,
)
from .models import (
    CredentialMaterial,
    LoadBalancerTarget,
    PushResult,
    SyncResult,
    SyncStage,
    TriggerRequest,
)
from .orchestrator import FetchRetryPolicy, SyncOrchestrator
from .secret_fetcher import KubernetesSecretFetcher, SecretFetcher, build_core_v1_api

__all__ = [
    "ClusterUnavailableError",
    "CredentialMaterial",
    "FetchError",
    "FetchRetryPolicy",
    "KubernetesSecretFetcher",
    "LinodeNodeBalancerClient",
    "LoadBalancerClient",
    "LoadBalancerTarget",
    "PushError",
    "PushRejectedError",
    "PushResult",
    "PushRetriesExhaustedError",
    "SecretFetcher",
    "SecretMalformedError",
    "SecretNotFoundError",
    "SyncError",
    "SyncOrchestrator",
    "SyncResult",
    "SyncStage",
    "TriggerRequest",
    "TriggerValidationError",
    "build_core_v1_api",
    "get_balancer_client",
]
