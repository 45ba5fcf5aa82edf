"""
Prometheus metrics for certificate sync runs and HTTP requests.
"""
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

from certsync import SyncResult

SYNC_TOTAL = Counter(
    "cert_webhook_sync_total",
    "Certificate sync runs by outcome",
    ["result", "stage"],
)

SYNC_DURATION = Histogram(
    "cert_webhook_sync_duration_seconds",
    "Wall time of a certificate sync run",
    buckets=(0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30, 60, 120),
)

HTTP_REQUESTS = Counter(
    "cert_webhook_http_requests_total",
    "HTTP requests by method, route and status",
    ["method", "path", "status"],
)

HTTP_DURATION = Histogram(
    "cert_webhook_http_request_duration_seconds",
    "HTTP request latency by route",
    ["method", "path"],
)


def record_sync(result: SyncResult, duration: float) -> None:
    """Count one sync run and observe its duration."""
    if result.success:
        outcome, stage = ("skipped" if result.skipped else "success"), "none"
    else:
        outcome, stage = "failure", result.stage.value if result.stage else "unknown"
    SYNC_TOTAL.labels(result=outcome, stage=stage).inc()
    SYNC_DURATION.observe(duration)


def record_request(method: str, path: str, status: int, duration: float) -> None:
    HTTP_REQUESTS.labels(method=method, path=path, status=str(status)).inc()
    HTTP_DURATION.labels(method=method, path=path).observe(duration)


def render_latest() -> tuple[bytes, str]:
    """Exposition payload and its content type."""
    return generate_latest(), CONTENT_TYPE_LATEST
