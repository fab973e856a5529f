"""Prometheus metrics for the API and the ingestion pipeline."""

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    Info,
    CollectorRegistry,
    generate_latest,
    CONTENT_TYPE_LATEST,
    multiprocess,
)
import os

# Create a custom registry for our metrics
REGISTRY = CollectorRegistry()

# Check if running in multiprocess mode (e.g., with gunicorn)
if "prometheus_multiproc_dir" in os.environ:
    multiprocess.MultiProcessCollector(REGISTRY)


# ============================================
# Application Info
# ============================================
APP_INFO = Info(
    "tubely_app",
    "Application information",
    registry=REGISTRY,
)


# ============================================
# HTTP Request Metrics
# ============================================
HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
    registry=REGISTRY,
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
    registry=REGISTRY,
)

HTTP_REQUESTS_IN_PROGRESS = Gauge(
    "http_requests_in_progress",
    "Number of HTTP requests currently in progress",
    ["method", "endpoint"],
    registry=REGISTRY,
)


# ============================================
# Ingestion Pipeline Metrics
# ============================================
MEDIA_UPLOADS_TOTAL = Counter(
    "media_uploads_total",
    "Media uploads by kind and outcome",
    ["kind", "outcome"],
    registry=REGISTRY,
)

PIPELINE_STAGE_DURATION_SECONDS = Histogram(
    "video_pipeline_stage_duration_seconds",
    "Duration of each video ingestion stage in seconds",
    ["stage"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0],
    registry=REGISTRY,
)

SIGNED_URL_FAILURES_TOTAL = Counter(
    "signed_url_failures_total",
    "Stored references that could not be signed on read",
    registry=REGISTRY,
)


def set_app_info(version: str, environment: str) -> None:
    """Set application info metric."""
    APP_INFO.info({
        "version": version,
        "environment": environment,
    })


def record_upload(kind: str, outcome: str) -> None:
    """Count a finished media upload.

    Args:
        kind: "video" or "thumbnail"
        outcome: "success", "rejected" or "failed"
    """
    MEDIA_UPLOADS_TOTAL.labels(kind=kind, outcome=outcome).inc()


def observe_stage(stage: str, duration: float) -> None:
    """Record how long a pipeline stage took."""
    PIPELINE_STAGE_DURATION_SECONDS.labels(stage=stage).observe(duration)


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest(REGISTRY)


def get_metrics_content_type() -> str:
    """Get Prometheus metrics content type."""
    return CONTENT_TYPE_LATEST
