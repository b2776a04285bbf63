"""Prometheus metrics definitions and utilities for observability.

Metric Naming Conventions:
- All metrics are prefixed with 'relay_'
- Counters end with '_total'
- Histograms/durations end with '_seconds'

Usage:
    from captcha_relay.core.metrics import record_task_created, record_task_terminal

    record_task_created()
    record_task_terminal("completed")
"""

from prometheus_client import (
    REGISTRY,
    Counter,
    Histogram,
    generate_latest,
)

_registry = REGISTRY

# =============================================================================
# Task Lifecycle Counters
# =============================================================================

TASKS_CREATED_TOTAL = Counter(
    "relay_tasks_created_total",
    "Total number of tasks accepted by /submit",
    registry=_registry,
)

TASKS_TERMINAL_TOTAL = Counter(
    "relay_tasks_terminal_total",
    "Total number of tasks that reached a terminal state",
    labelnames=["status"],
    registry=_registry,
)

# =============================================================================
# Inference Provider
# =============================================================================

# Covers range from 100ms to 60s; a captcha answer is a handful of tokens
INFERENCE_DURATION_BUCKETS = (0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0)

INFERENCE_REQUEST_DURATION = Histogram(
    "relay_inference_request_duration_seconds",
    "Duration of inference provider requests",
    buckets=INFERENCE_DURATION_BUCKETS,
    registry=_registry,
)

INFERENCE_ERRORS_TOTAL = Counter(
    "relay_inference_errors_total",
    "Total number of failed inference provider requests by error type",
    labelnames=["error_type"],
    registry=_registry,
)

# =============================================================================
# Helper Functions
# =============================================================================


def record_task_created() -> None:
    """Increment the tasks created counter."""
    TASKS_CREATED_TOTAL.inc()


def record_task_terminal(status: str) -> None:
    """Increment the terminal state counter.

    Args:
        status: Terminal status ("completed" or "error")
    """
    TASKS_TERMINAL_TOTAL.labels(status=status).inc()


def observe_inference_duration(duration_seconds: float) -> None:
    """Record the duration of an inference provider request."""
    INFERENCE_REQUEST_DURATION.observe(duration_seconds)


def record_inference_error(error_type: str) -> None:
    """Increment the inference errors counter.

    Args:
        error_type: Type of error (e.g., "http_status", "malformed_response", "transport")
    """
    INFERENCE_ERRORS_TOTAL.labels(error_type=error_type).inc()


def get_metrics_response() -> bytes:
    """Generate the Prometheus metrics response.

    Returns:
        Bytes containing the metrics in Prometheus exposition format
    """
    return generate_latest(_registry)
