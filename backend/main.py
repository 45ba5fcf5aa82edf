"""
NodeBalancer certificate webhook - FastAPI application and entry point.

cert-manager calls the webhook after issuing or renewing a certificate;
the certificate is read from its Secret and installed on a Linode
NodeBalancer HTTPS config.
"""
import logging
import sys
import time
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from certsync import (
    ClusterUnavailableError,
    FetchRetryPolicy,
    KubernetesSecretFetcher,
    LoadBalancerTarget,
    SyncOrchestrator,
    build_core_v1_api,
    get_balancer_client,
)
from config import ConfigError, WebhookSettings, load_settings
from logging_config import set_log_level, setup_logging
from metrics import record_request
from middleware import PayloadLimitMiddleware
from routers import all_routers, create_webhook_router

logger = logging.getLogger(__name__)

tags_metadata = [
    {"name": "Webhook", "description": "Certificate update triggers"},
    {"name": "Health", "description": "Liveness and dependency checks"},
    {"name": "Metrics", "description": "Prometheus exposition"},
]


def build_services(app: FastAPI, settings: WebhookSettings) -> None:
    """
    Construct the Secret Fetcher, balancer client and orchestrator on app.state.

    Raises:
        ClusterUnavailableError: If no Kubernetes configuration can be loaded
    """
    target = LoadBalancerTarget(
        balancer_id=settings.nodebalancer_id,
        https_config_id=settings.https_config_id,
    )
    fetcher = KubernetesSecretFetcher(build_core_v1_api(), timeout=settings.kube_timeout)
    balancer = get_balancer_client(
        "linode",
        api_token=settings.linode_token.get_secret_value(),
        base_url=settings.linode_api_url,
        max_attempts=settings.push_max_attempts,
        backoff_base=settings.push_backoff_base,
        backoff_max=settings.push_backoff_max,
        timeout=settings.push_timeout,
        connect_timeout=settings.connect_timeout,
    )

    app.state.target = target
    app.state.secret_fetcher = fetcher
    app.state.balancer_client = balancer
    app.state.orchestrator = SyncOrchestrator(
        fetcher=fetcher,
        balancer=balancer,
        target=target,
        fetch_policy=FetchRetryPolicy(
            max_attempts=settings.fetch_max_attempts,
            delay=settings.fetch_retry_delay,
        ),
        skip_unchanged=settings.skip_unchanged,
    )


async def startup_event(app: FastAPI) -> None:
    """Build services unless they were injected already."""
    if getattr(app.state, "orchestrator", None) is not None:
        logger.info("[MAIN] Services already configured, skipping construction")
        return
    settings: WebhookSettings = app.state.settings
    build_services(app, settings)
    logger.info(
        "[MAIN] Webhook ready on %s for %s",
        settings.webhook_path, app.state.target,
    )


async def shutdown_event(app: FastAPI) -> None:
    """Close pooled HTTP connections."""
    balancer = getattr(app.state, "balancer_client", None)
    if balancer is not None:
        try:
            await balancer.close()
        except Exception as e:
            logger.warning("[MAIN] Error closing balancer client: %s", e)
    logger.info("[MAIN] Shutdown complete")


@asynccontextmanager
async def lifespan(app: FastAPI):
    await startup_event(app)
    yield
    await shutdown_event(app)


def create_app(settings: WebhookSettings) -> FastAPI:
    """Create the FastAPI application for the given settings."""
    app = FastAPI(
        title="NodeBalancer Certificate Webhook",
        openapi_tags=tags_metadata,
        lifespan=lifespan,
    )
    app.state.settings = settings

    for router in all_routers:
        app.include_router(router)
    app.include_router(create_webhook_router(settings.webhook_path))

    app.add_middleware(
        PayloadLimitMiddleware,
        path=settings.webhook_path,
        limit=settings.max_payload_bytes,
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.monotonic()
        response = await call_next(request)
        elapsed = time.monotonic() - start

        path = request.url.path
        route = request.scope.get("route")
        # Label by route template; unknown paths share one label
        label = getattr(route, "path", None) or (path if path == settings.webhook_path else "unmatched")
        record_request(request.method, label, response.status_code, elapsed)

        log = logger.debug if path in ("/health", "/metrics") else logger.info
        log(
            "[HTTP] %s %s -> %s (%.1fms)",
            request.method, path, response.status_code, elapsed * 1000,
        )
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        problems = []
        for err in exc.errors():
            loc = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
            problems.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
        logger.error("[WEBHOOK] Invalid request payload: %s", "; ".join(problems))
        return JSONResponse(
            status_code=400,
            content={
                "status": "error",
                "stage": "validation",
                "message": "Invalid request: " + "; ".join(problems),
            },
        )

    return app


def main() -> int:
    """Load configuration and serve until shutdown."""
    setup_logging("INFO")
    try:
        settings = load_settings()
    except ConfigError as e:
        logger.critical("[MAIN] %s", e)
        return 1
    set_log_level(settings.log_level)

    app = create_app(settings)
    try:
        build_services(app, settings)
    except ClusterUnavailableError as e:
        logger.critical("[MAIN] Failed to create Kubernetes client: %s", e)
        return 1

    logger.info("[MAIN] Starting webhook server on port %s", settings.port)
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=settings.port,
        log_config=None,
        timeout_keep_alive=75,
        timeout_graceful_shutdown=30,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
