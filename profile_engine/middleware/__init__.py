"""
Middleware Package

Contains FastAPI middleware for:
- Prometheus metrics collection
- Recommendation engine outcome counters
"""

from profile_engine.middleware.metrics import (
    PrometheusMiddleware,
    setup_metrics,
    REQUEST_LATENCY,
    REQUEST_COUNT,
    ACTIVE_REQUESTS,
    ANALYZER_LATENCY,
    RECOMMENDATION_DRAFTS,
    APPLY_OUTCOMES,
    VERSIONS_CREATED,
    RATE_LIMITED,
)

__all__ = [
    "PrometheusMiddleware",
    "setup_metrics",
    "REQUEST_LATENCY",
    "REQUEST_COUNT",
    "ACTIVE_REQUESTS",
    "ANALYZER_LATENCY",
    "RECOMMENDATION_DRAFTS",
    "APPLY_OUTCOMES",
    "VERSIONS_CREATED",
    "RATE_LIMITED",
]
