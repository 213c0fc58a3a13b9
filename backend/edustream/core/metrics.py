"""Prometheus metrics for the transcoding pipeline."""

from prometheus_client import (
    Counter,
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
if "PROMETHEUS_MULTIPROC_DIR" in os.environ or "prometheus_multiproc_dir" in os.environ:
    multiprocess.MultiProcessCollector(REGISTRY)


# ============================================
# Application Info
# ============================================
APP_INFO = Info(
    "edustream_transcoding_app",
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


# ============================================
# Transcoding Pipeline Metrics
# ============================================
TRANSCODE_JOBS_SUBMITTED = Counter(
    "transcode_jobs_submitted_total",
    "Transcoding jobs accepted by the job service",
    ["trigger"],
    registry=REGISTRY,
)

TRANSCODE_SUBMIT_FAILURES = Counter(
    "transcode_job_submit_failures_total",
    "Transcoding job submissions that raised",
    ["trigger"],
    registry=REGISTRY,
)

TRANSCODE_NOTIFICATIONS = Counter(
    "transcode_notifications_total",
    "Job lifecycle notifications by reported state and outcome",
    ["state", "outcome"],
    registry=REGISTRY,
)

TRANSCODE_CANCELLATIONS = Counter(
    "transcode_cancellations_total",
    "Cancellation requests by outcome of the job service call",
    ["outcome"],
    registry=REGISTRY,
)

STORAGE_CLEANUPS = Counter(
    "transcoded_storage_cleanups_total",
    "Prefix deletes of transcoded artifacts by outcome",
    ["outcome"],
    registry=REGISTRY,
)


def get_metrics() -> bytes:
    """Generate latest metrics in Prometheus format."""
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    """Get the content type for Prometheus metrics."""
    return CONTENT_TYPE_LATEST


def set_app_info(version: str, environment: str) -> None:
    """Set application info metrics.

    Args:
        version: Application version
        environment: Deployment environment
    """
    APP_INFO.info({
        "version": version,
        "environment": environment,
    })
