"""
Secret Fetcher: reads TLS Secrets from the Kubernetes API.
"""
import asyncio
import functools
import logging
from abc import ABC, abstractmethod
from typing import Optional

import urllib3
from kubernetes import client as k8s_client
from kubernetes import config as k8s_config
from kubernetes.client.exceptions import ApiException

from .errors import ClusterUnavailableError, SecretNotFoundError
from .material import material_from_secret_data
from .models import CredentialMaterial


logger = logging.getLogger(__name__)


class SecretFetcher(ABC):
    """
    Abstract source of certificate material.

    Implementations do not retry; the orchestrator owns the retry policy.
    """

    @abstractmethod
    async def fetch(self, namespace: str, name: str) -> CredentialMaterial:
        """
        Read and decode the named Secret.

        Args:
            namespace: Secret namespace
            name: Secret name

        Returns:
            Validated CredentialMaterial

        Raises:
            SecretNotFoundError: If the Secret does not exist
            SecretMalformedError: If tls.crt/tls.key are absent or unusable
            ClusterUnavailableError: On transport, auth or timeout failures
        """
        pass

    async def verify_connection(self) -> tuple[bool, Optional[str]]:
        """
        Check the backing API is reachable.

        Returns:
            Tuple of (success, error_message)
        """
        return True, None


def build_core_v1_api() -> k8s_client.CoreV1Api:
    """
    Create a CoreV1Api client from in-cluster config, falling back to kubeconfig.

    Raises:
        ClusterUnavailableError: If neither configuration source is usable
    """
    configuration = k8s_client.Configuration()
    try:
        k8s_config.load_incluster_config(client_configuration=configuration)
        logger.info("[SECRETS] Using in-cluster Kubernetes configuration")
    except k8s_config.ConfigException:
        try:
            k8s_config.load_kube_config(client_configuration=configuration)
            logger.info("[SECRETS] Using local kubeconfig")
        except (k8s_config.ConfigException, OSError) as e:
            raise ClusterUnavailableError(f"No Kubernetes configuration available: {e}")

    # Retries belong to the orchestrator, not the transport
    configuration.retries = False
    return k8s_client.CoreV1Api(k8s_client.ApiClient(configuration))


class KubernetesSecretFetcher(SecretFetcher):
    """
    Secret Fetcher backed by the official Kubernetes client.

    The client is synchronous, so calls run in the default executor.
    Requires get on ``secrets`` in the target namespaces.
    """

    def __init__(self, core_v1: k8s_client.CoreV1Api, timeout: float = 10.0):
        """
        Args:
            core_v1: CoreV1Api instance to read Secrets with
            timeout: Per-call request timeout in seconds
        """
        self.core_v1 = core_v1
        self.timeout = timeout

    async def _call(self, func, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))

    async def fetch(self, namespace: str, name: str) -> CredentialMaterial:
        logger.debug("[SECRETS] Reading secret %s/%s", namespace, name)
        try:
            secret = await self._call(
                self.core_v1.read_namespaced_secret,
                name=name,
                namespace=namespace,
                _request_timeout=self.timeout,
            )
        except ApiException as e:
            if e.status == 404:
                raise SecretNotFoundError(f"secret {namespace}/{name} not found")
            # 401/403 and server-side errors all mean the cluster API is unusable to us
            raise ClusterUnavailableError(
                f"cluster API error reading {namespace}/{name}: {e.status} {e.reason}"
            )
        except (urllib3.exceptions.HTTPError, OSError) as e:
            raise ClusterUnavailableError(f"cluster API unreachable: {type(e).__name__}: {e}")

        return material_from_secret_data(secret.data, namespace, name)

    async def verify_connection(self) -> tuple[bool, Optional[str]]:
        """Check the API server answers a version request."""
        try:
            version_api = k8s_client.VersionApi(self.core_v1.api_client)
            info = await self._call(version_api.get_code, _request_timeout=self.timeout)
            logger.debug("[SECRETS] Kubernetes API server version %s", info.git_version)
            return True, None
        except ApiException as e:
            return False, f"Kubernetes API responded with status: {e.status}"
        except Exception as e:
            return False, f"Failed to connect to Kubernetes API: {e}"
