"""
Health & metrics router - liveness, dependency checks and Prometheus scrape.
"""
import os

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse

from certsync import LoadBalancerClient, LoadBalancerTarget, SecretFetcher
from dependencies import get_balancer_client, get_secret_fetcher, get_target
from metrics import render_latest

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check():
    """Liveness/readiness probe. Makes no external calls."""
    return {
        "status": "healthy",
        "service": "nodebalancer-cert-webhook",
        "version": os.environ.get("APP_VERSION", "unknown"),
    }


@router.get("/health/deep")
async def deep_health_check(
    fetcher: SecretFetcher = Depends(get_secret_fetcher),
    balancer: LoadBalancerClient = Depends(get_balancer_client),
    target: LoadBalancerTarget = Depends(get_target),
):
    """Check that both the cluster API and the Linode API are reachable."""
    ok, error = await fetcher.verify_connection()
    if ok:
        ok, error = await balancer.verify_credentials(target)
    if not ok:
        return JSONResponse(
            status_code=503,
            content={"status": "degraded", "message": error},
        )
    return {"status": "healthy", "message": None}


@router.get("/metrics", tags=["Metrics"])
async def metrics():
    """Prometheus exposition."""
    payload, content_type = render_latest()
    return Response(content=payload, media_type=content_type)
