"""
FastAPI dependencies exposing the services built at startup.
"""
from fastapi import HTTPException, Request, status

from certsync import LoadBalancerClient, LoadBalancerTarget, SecretFetcher, SyncOrchestrator


def _state_attr(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is not initialized",
        )
    return value


def get_orchestrator(request: Request) -> SyncOrchestrator:
    return _state_attr(request, "orchestrator")


def get_secret_fetcher(request: Request) -> SecretFetcher:
    return _state_attr(request, "secret_fetcher")


def get_balancer_client(request: Request) -> LoadBalancerClient:
    return _state_attr(request, "balancer_client")


def get_target(request: Request) -> LoadBalancerTarget:
    return _state_attr(request, "target")
