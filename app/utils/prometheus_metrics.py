"""
Prometheus metrics for stability, availability and the share/export flows.

- FastAPI: request count, latency (Instrumentator)
- Node/instance: app_info
- Stability: exceptions_total, db_errors_total, external_request_errors_total
- HA: ready gauge (1=up, 0=shutting down)
- Shares: creation, public access outcomes, brute-force and bot traffic
- Exports: creation, render duration, downloads, cleanup
- Pushgateway: optional periodic push (PROMETHEUS_PUSHGATEWAY_URL)
"""
import asyncio
import logging
import socket
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from prometheus_client import REGISTRY, Counter, Gauge, Histogram, pushadd_to_gateway
from prometheus_fastapi_instrumentator import Instrumentator

from app.config import get_settings

logger = logging.getLogger(__name__)

# --- Stability ---
exceptions_total = Counter(
    "brand_share_api_exceptions_total",
    "Total unhandled exceptions",
    registry=REGISTRY,
)
db_errors_total = Counter(
    "brand_share_api_db_errors_total",
    "Total database session/transaction errors",
    registry=REGISTRY,
)
external_request_errors_total = Counter(
    "brand_share_api_external_request_errors_total",
    "Total external service request failures",
    ["service"],
    registry=REGISTRY,
)
external_request_total = Counter(
    "brand_share_api_external_request_total",
    "Total external service requests by service and outcome",
    ["service", "status"],  # status: success | failure
    registry=REGISTRY,
)

# --- HA ---
ready = Gauge(
    "brand_share_api_ready",
    "Application ready (1=up, 0=shutting down)",
    registry=REGISTRY,
)

# --- Performance ---
external_request_duration_seconds = Histogram(
    "brand_share_api_external_request_duration_seconds",
    "External service request duration in seconds",
    ["service", "result"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
    registry=REGISTRY,
)
login_duration_seconds = Histogram(
    "brand_share_api_login_duration_seconds",
    "Login request duration in seconds",
    ["result"],
    buckets=(0.05, 0.1, 0.2, 0.5, 1.0, 2.0, 3.0, 5.0),
    registry=REGISTRY,
)
in_flight_requests = Gauge(
    "brand_share_api_in_flight_requests",
    "Number of requests currently being processed",
    registry=REGISTRY,
)

# --- Rate Limiting ---
rate_limit_hits_total = Counter(
    "brand_share_api_rate_limit_hits_total",
    "Total number of rate limit hits (requests blocked)",
    ["endpoint", "client_id"],  # client_id is a truncated IP
    registry=REGISTRY,
)
rate_limit_requests_total = Counter(
    "brand_share_api_rate_limit_requests_total",
    "Total number of requests checked for rate limiting",
    ["endpoint", "status"],  # status: allowed | blocked
    registry=REGISTRY,
)
share_creation_throttled_total = Counter(
    "brand_share_api_share_creation_throttled_total",
    "Share creation attempts rejected by the per-owner limit",
    registry=REGISTRY,
)

# --- Shares ---
share_creation_total = Counter(
    "brand_share_api_share_creation_total",
    "Share creation attempts",
    ["share_type", "result"],  # result: success | invalid | throttled
    registry=REGISTRY,
)
share_access_total = Counter(
    "brand_share_api_share_access_total",
    "Public share access attempts",
    ["status"],  # ok | not_found | expired | password_required | invalid_password
    registry=REGISTRY,
)
share_access_duration_seconds = Histogram(
    "brand_share_api_share_access_duration_seconds",
    "Public share view duration in seconds",
    ["status"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
    registry=REGISTRY,
)
share_brute_force_attempts = Counter(
    "brand_share_api_share_brute_force_attempts_total",
    "Unknown uuid or wrong password attempts on public shares",
    ["client_id"],
    registry=REGISTRY,
)
share_suspicious_access_total = Counter(
    "brand_share_api_share_suspicious_access_total",
    "Accesses flagged by the per-IP burst check",
    registry=REGISTRY,
)
share_bot_access_total = Counter(
    "brand_share_api_share_bot_access_total",
    "Accesses whose user agent looks automated",
    registry=REGISTRY,
)

# --- Exports ---
export_creation_total = Counter(
    "brand_share_api_export_creation_total",
    "Export creation attempts",
    ["export_type", "result"],  # result: success | invalid | failed
    registry=REGISTRY,
)
export_render_duration_seconds = Histogram(
    "brand_share_api_export_render_duration_seconds",
    "Export rendering duration in seconds",
    ["export_type"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
    registry=REGISTRY,
)
export_download_total = Counter(
    "brand_share_api_export_download_total",
    "Export download attempts",
    ["result"],  # success | not_found | gone
    registry=REGISTRY,
)
export_cleanup_removed_total = Counter(
    "brand_share_api_export_cleanup_removed_total",
    "Exports removed by the expiry sweep",
    registry=REGISTRY,
)


def _node_identity() -> str:
    """Node/instance identifier: NODE_NAME env or hostname."""
    settings = get_settings()
    if settings.node_name:
        return settings.node_name
    try:
        return socket.gethostname()
    except OSError:
        return "unknown"


@asynccontextmanager
async def record_external_request(service: str) -> AsyncGenerator[None, None]:
    """
    Context manager to record external request duration, total count, and errors.
    Use around object storage calls.
    """
    start = time.perf_counter()
    exc_raised = None
    try:
        yield
    except Exception as e:
        exc_raised = e
        external_request_errors_total.labels(service=service).inc()
        external_request_total.labels(service=service, status="failure").inc()
        raise
    finally:
        duration = time.perf_counter() - start
        result = "failure" if exc_raised is not None else "success"
        if exc_raised is None:
            external_request_total.labels(service=service, status="success").inc()
        external_request_duration_seconds.labels(service=service, result=result).observe(duration)


def push_metrics_to_gateway() -> None:
    """
    Push current registry to Prometheus Pushgateway.
    Called periodically when PROMETHEUS_PUSHGATEWAY_URL is set.
    """
    settings = get_settings()
    url = (settings.prometheus_pushgateway_url or "").strip()
    if not url:
        return
    grouping_key = {"instance": settings.instance_ip or _node_identity()}
    if (settings.region or "").strip():
        grouping_key["region"] = settings.region.strip()
    try:
        # pushadd (POST) rather than push (PUT); some proxies reject PUT
        pushadd_to_gateway(url, job="brand-share-api", registry=REGISTRY, grouping_key=grouping_key)
    except Exception as e:
        logger.warning("Pushgateway push failed: %s", e, exc_info=False)


async def pushgateway_loop() -> None:
    """
    Background loop: push metrics to Pushgateway at configured interval.
    Returns immediately when PROMETHEUS_PUSHGATEWAY_URL is not set.
    """
    settings = get_settings()
    url = (settings.prometheus_pushgateway_url or "").strip()
    if not url:
        return
    interval = max(15, settings.prometheus_push_interval_seconds)
    logger.info(
        "Pushgateway enabled: url=%s interval=%ds",
        url,
        interval,
        extra={"event": "lifecycle"},
    )
    while True:
        await asyncio.sleep(interval)
        await asyncio.to_thread(push_metrics_to_gateway)


_app_info = Gauge(
    "brand_share_api_app_info",
    "Application and node identity (labels only, value is 1)",
    ["node", "app", "version", "environment", "region"],
    registry=REGISTRY,
)


def setup_prometheus(app) -> None:
    """
    Register Prometheus instrumentation and custom metrics.

    1. app_info gauge with node identity.
    2. Instrumentator (FastAPI request metrics).
    3. /metrics endpoint for scraping.
    """
    settings = get_settings()
    _app_info.labels(
        node=_node_identity(),
        app=settings.app_name,
        version=settings.app_version,
        environment=settings.environment.value,
        region=(settings.region or "").strip() or "unknown",
    ).set(1)

    # exact status codes (200, 404, 410...) instead of 2xx/4xx groups
    Instrumentator(should_group_status_codes=False).instrument(app).expose(
        app, endpoint="/metrics"
    )
