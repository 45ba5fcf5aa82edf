"""
Load-balancer provider implementations for certificate pushes.

Supported providers:
- Linode NodeBalancer
"""

from .base import LoadBalancerClient
from .linode import LinodeNodeBalancerClient

__all__ = [
    "LoadBalancerClient",
    "LinodeNodeBalancerClient",
    "get_balancer_client",
]


def get_balancer_client(provider_name: str, api_token: str, **options) -> LoadBalancerClient:
    """
    Get a load-balancer client instance by name.

    Args:
        provider_name: Name of the provider (e.g., "linode")
        api_token: API token for authentication
        **options: Provider-specific client options (retry bounds, timeouts)

    Returns:
        LoadBalancerClient instance

    Raises:
        ValueError: If provider is not supported
    """
    provider_name = provider_name.lower().strip()

    if provider_name == "linode":
        return LinodeNodeBalancerClient(api_token=api_token, **options)
    else:
        raise ValueError(f"Unsupported load balancer provider: {provider_name}")
