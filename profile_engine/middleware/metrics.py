"""
Prometheus Metrics Middleware

Provides request/response metrics for monitoring:
- HTTP request latency (p50, p95, p99)
- Request count by endpoint and status
- Active request gauge
- Recommendation engine outcomes (analyzer latency, dropped drafts,
  applied/skipped recommendations, versions created, rate-limit rejections)

Usage:
    from profile_engine.middleware.metrics import setup_metrics

    # In main.py
    app = FastAPI()
    setup_metrics(app)

Metrics Endpoint:
    GET /metrics - Prometheus-format metrics
"""

import time
import logging
from typing import Callable

from fastapi import FastAPI, Request, Response
from fastapi.responses import PlainTextResponse
from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    CONTENT_TYPE_LATEST,
    generate_latest,
    REGISTRY,
)
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

# ==================== HTTP Metrics ====================

REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint", "status"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0]
)

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"]
)

ACTIVE_REQUESTS = Gauge(
    "http_requests_active",
    "Number of active HTTP requests",
    ["method"]
)

# ==================== Engine Metrics ====================

ANALYZER_LATENCY = Histogram(
    "profile_analyzer_seconds",
    "External analyzer call latency",
    ["outcome"],  # ok, timeout, error
    buckets=[1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 45.0, 60.0]
)

RECOMMENDATION_DRAFTS = Counter(
    "profile_recommendation_drafts_total",
    "Analyzer drafts by validation outcome",
    ["outcome"]  # persisted, dropped
)

APPLY_OUTCOMES = Counter(
    "profile_recommendation_apply_total",
    "Recommendations processed by apply-all",
    ["outcome"]  # applied, skipped
)

VERSIONS_CREATED = Counter(
    "profile_versions_created_total",
    "Profile versions appended",
    ["source"]
)

RATE_LIMITED = Counter(
    "profile_generation_rate_limited_total",
    "Generation requests rejected by the rate limiter"
)


class PrometheusMiddleware(BaseHTTPMiddleware):
    """
    FastAPI middleware for Prometheus metrics collection.

    Records:
    - Request latency
    - Request count by status code
    - Active request count
    """

    def __init__(self, app: FastAPI, app_name: str = "profile_engine"):
        super().__init__(app)
        self.app_name = app_name

    async def dispatch(
        self,
        request: Request,
        call_next: Callable
    ) -> Response:
        """Process request and record metrics."""
        method = request.method

        if request.url.path == "/metrics":
            return await call_next(request)

        ACTIVE_REQUESTS.labels(method=method).inc()
        start_time = time.perf_counter()
        status = "500"

        try:
            response = await call_next(request)
            status = str(response.status_code)
        except Exception as e:
            logger.error(f"Request error: {e}")
            raise
        finally:
            duration = time.perf_counter() - start_time
            # The router stores the matched route in the scope while handling
            endpoint = self._get_endpoint(request)

            REQUEST_LATENCY.labels(
                method=method,
                endpoint=endpoint,
                status=status
            ).observe(duration)

            REQUEST_COUNT.labels(
                method=method,
                endpoint=endpoint,
                status=status
            ).inc()

            ACTIVE_REQUESTS.labels(method=method).dec()

        return response

    def _get_endpoint(self, request: Request) -> str:
        """
        Get normalized endpoint path from request.

        Uses the matched route's template (e.g. /projects/{project_id}/profile)
        instead of the actual path to avoid high cardinality. Requests that
        matched no route fall back to the raw path.
        """
        route = request.scope.get("route")
        template = getattr(route, "path_format", None) or getattr(route, "path", None)
        return template or request.url.path


def metrics_endpoint(request: Request) -> Response:
    """
    Endpoint handler for Prometheus metrics scraping.

    Returns metrics in Prometheus text format.
    """
    return PlainTextResponse(
        content=generate_latest(REGISTRY),
        media_type=CONTENT_TYPE_LATEST
    )


def setup_metrics(app: FastAPI) -> None:
    """
    Configure Prometheus metrics for FastAPI app.

    Args:
        app: FastAPI application instance
    """
    app.add_middleware(PrometheusMiddleware, app_name="profile_engine")
    app.add_route("/metrics", metrics_endpoint, methods=["GET"])

    logger.info("Prometheus metrics configured")


# ==================== Helper Functions ====================

def record_analyzer_latency(outcome: str, duration: float) -> None:
    ANALYZER_LATENCY.labels(outcome=outcome).observe(duration)


def record_draft_outcome(outcome: str, count: int = 1) -> None:
    if count:
        RECOMMENDATION_DRAFTS.labels(outcome=outcome).inc(count)


def record_apply_outcome(outcome: str, count: int = 1) -> None:
    if count:
        APPLY_OUTCOMES.labels(outcome=outcome).inc(count)


def record_version_created(source: str) -> None:
    VERSIONS_CREATED.labels(source=source).inc()


def record_rate_limited() -> None:
    RATE_LIMITED.inc()
